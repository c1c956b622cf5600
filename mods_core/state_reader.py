"""
Session state reader.

Reconstructs the modules, parameters, buttons and connections of a rendered
Mods program.  The in-page scripts only collect raw DOM facts; everything
that interprets them (link decoding, checkbox coercion, skipping decorative
nodes) happens in Python in ``parse_rendered_state``.

Host DOM layout:
    #modules          one child element per module instance, ``id`` = module
                      id, ``data-name`` = canonical module name
    #svg #links       one child per link, ``id`` = encoded link string
"""

import logging
from typing import Any, Dict, List, Optional

from .exceptions import LinkDecodeError
from .links import decode_link
from .models import Connection, ModuleInstance, Param, ParamKind, PeerLink

logger = logging.getLogger(__name__)


READ_STATE_SCRIPT = """
() => {
  const container = document.getElementById('modules');
  if (!container) return null;

  let links = null;
  const svg = document.getElementById('svg');
  const group = svg ? svg.querySelector('[id="links"]') : null;
  if (group) {
    links = [];
    for (const node of group.childNodes) {
      if (node.id) links.push(node.id);
    }
  }

  const modules = [];
  for (const mod of container.childNodes) {
    if (mod.nodeType !== 1) continue;
    const controls = [];
    for (const input of mod.querySelectorAll('input')) {
      const prev = input.previousSibling;
      controls.push({
        label: prev && prev.textContent ? prev.textContent.trim() : '',
        type: input.type,
        value: input.value,
        checked: !!input.checked
      });
    }
    const buttons = [];
    for (const btn of mod.querySelectorAll('button')) {
      buttons.push(btn.textContent.trim());
    }
    modules.push({
      id: mod.id || '',
      name: (mod.dataset && mod.dataset.name) || '',
      controls: controls,
      buttons: buttons
    });
  }
  return { modules: modules, links: links };
}
"""

READ_PROGRAM_SCRIPT = """
() => {
  const container = document.getElementById('modules');
  if (!container) return null;

  const modules = [];
  for (const mod of container.childNodes) {
    if (mod.nodeType !== 1 || !mod.id) continue;
    const data = mod.dataset || {};
    modules.push({
      id: mod.id,
      definition: data.definition || '',
      top: data.top || '0',
      left: data.left || '0',
      filename: data.filename || ''
    });
  }

  let links = null;
  const svg = document.getElementById('svg');
  const group = svg ? svg.querySelector('[id="links"]') : null;
  if (group) {
    links = [];
    for (const node of group.childNodes) {
      if (node.id) links.push(node.id);
    }
  }
  return { modules: modules, links: links };
}
"""


def control_to_param(control: Dict[str, Any]) -> Param:
    input_type = control.get('type') or 'text'
    kind = ParamKind.from_input_type(input_type)
    if kind == ParamKind.CHECKBOX:
        # the raw value of a checkbox is "on" whatever its state
        value = 'true' if control.get('checked') else 'false'
    else:
        value = control.get('value')
        value = '' if value is None else str(value)
    return Param(label=control.get('label') or '', value=value, kind=kind, input_type=input_type)


def parse_connections(raw_links: Optional[List[Any]]) -> List[Connection]:
    """Decode overlay link ids; decorative or legacy entries are skipped."""
    connections = []
    for raw in raw_links or []:
        try:
            connections.append(decode_link(raw))
        except LinkDecodeError as e:
            logger.debug(f"Skipping overlay entry: {e}")
    return connections


def parse_rendered_state(raw: Optional[Dict[str, Any]]) -> List[ModuleInstance]:
    """Build module instances, in container order, from a raw page read."""
    if not raw:
        return []

    connection_map: Dict[str, Dict[str, List[Connection]]] = {}
    for connection in parse_connections(raw.get('links')):
        connection_map.setdefault(connection.source_id, {'inputs': [], 'outputs': []})['outputs'].append(connection)
        connection_map.setdefault(connection.dest_id, {'inputs': [], 'outputs': []})['inputs'].append(connection)

    entries = [entry for entry in raw.get('modules') or [] if entry.get('id')]
    names = {entry['id']: entry.get('name') or '' for entry in entries}

    modules = []
    for entry in entries:
        module = ModuleInstance(
            id=entry['id'],
            name=entry.get('name') or '',
            params=[control_to_param(c) for c in entry.get('controls') or []],
            buttons=[str(b) for b in entry.get('buttons') or []],
        )
        links = connection_map.get(module.id)
        if links:
            module.connected_from = [
                PeerLink(peer_name=names.get(c.source_id, c.source_id), peer_id=c.source_id, port=c.descriptor)
                for c in links['inputs']
            ]
            module.connected_to = [
                PeerLink(peer_name=names.get(c.dest_id, c.dest_id), peer_id=c.dest_id, port=c.descriptor)
                for c in links['outputs']
            ]
        modules.append(module)
    return modules


class StateReader:
    """Reads the live program state from a rendered page."""

    def __init__(self, page):
        self.page = page

    def read_raw(self) -> Optional[Dict[str, Any]]:
        return self.page.evaluate(READ_STATE_SCRIPT)

    def read_state(self) -> List[ModuleInstance]:
        return parse_rendered_state(self.read_raw())

    def read_connections(self) -> List[Connection]:
        """Connections between modules that are currently in the container."""
        raw = self.read_raw()
        if not raw:
            return []
        live = {entry.get('id') for entry in raw.get('modules') or [] if entry.get('id')}
        return [c for c in parse_connections(raw.get('links'))
                if c.source_id in live and c.dest_id in live]

    def read_program(self) -> Optional[Dict[str, Any]]:
        """Raw container read in the shape ProgramCodec.decode expects."""
        return self.page.evaluate(READ_PROGRAM_SCRIPT)
