"""
Program codec.

Builds program documents from module scripts and a link specification,
decodes live container reads back into documents, and lists/saves programs
in the storage tree.

A program document looks like::

    {
      "modules": {
        "0.7432891654": {"definition": "<full module source>", "top": "100",
                          "left": "100", "filename": "modules/read/png.js",
                          "inputs": {}, "outputs": {}}
      },
      "links": ["{\\"source\\":\\"{...}\\",\\"dest\\":\\"{...}\\"}"]
    }
"""

import json
import logging
import random
from typing import Any, Dict, Iterable, List, Optional, Set

from .exceptions import LinkDecodeError, ProgramBuildError, StorageError
from .introspector import ModuleIntrospector
from .links import decode_link, encode_link
from .models import Connection, ProgramDocument, ProgramModule

logger = logging.getLogger(__name__)

DEFAULT_POSITION = "100"
CUSTOM_PROGRAMS_DIR = "programs/custom"


def new_module_id(used: Set[str]) -> str:
    """A fresh fractional id like the host's ``Math.random().toString()``."""
    while True:
        candidate = repr(random.random())
        if candidate.startswith('0.') and candidate not in used:
            used.add(candidate)
            return candidate


def parse_endpoint(spec: str, side: str) -> tuple:
    """Split ``"moduleName.portName"`` at the last dot."""
    if not isinstance(spec, str):
        raise ProgramBuildError(f"Invalid {side} endpoint {spec!r}: expected \"moduleName.portName\"",
                                side=side)
    module_name, dot, port_name = spec.rpartition('.')
    if not dot or not module_name or not port_name:
        raise ProgramBuildError(
            f"Invalid {side} endpoint {spec!r}: expected \"moduleName.portName\"",
            side=side, module_name=module_name or spec)
    return module_name, port_name


class ProgramCodec:
    """Encodes and decodes Mods program documents."""

    def __init__(self, introspector: Optional[ModuleIntrospector] = None):
        self.introspector = introspector or ModuleIntrospector()

    # ─────────────────────────────────────────────────────────────────
    # Build: module scripts + links -> document
    # ─────────────────────────────────────────────────────────────────

    def build(self, storage, module_paths: Iterable[str],
              links: Iterable[Dict[str, str]]) -> ProgramDocument:
        """Build a program document.

        Every module gets a fresh id and a verbatim copy of its source.  Links
        name modules by their declared name; the first module declaring a name
        owns it.  An unresolvable name fails the whole build.
        """
        document = ProgramDocument()
        name_to_id: Dict[str, str] = {}
        used_ids: Set[str] = set()

        for path in module_paths:
            if not isinstance(path, str):
                raise ProgramBuildError(f"Invalid module path {path!r}: expected a string",
                                        details={'path': path})
            source = storage.read_text(path)
            module_id = new_module_id(used_ids)
            document.modules[module_id] = ProgramModule(
                definition=source,
                top=DEFAULT_POSITION,
                left=DEFAULT_POSITION,
                filename=path,
            )
            name = self.introspector.module_name(source)
            if name is None:
                logger.warning(f"Could not read a module name from {path}; it cannot be linked by name")
            elif name not in name_to_id:
                name_to_id[name] = module_id

        for link in links:
            if not isinstance(link, dict):
                raise ProgramBuildError(f"Invalid link {link!r}: expected {{from, to}}",
                                        side='source', details={'link': link})
            source_name, source_port = parse_endpoint(link.get('from', ''), 'source')
            dest_name, dest_port = parse_endpoint(link.get('to', ''), 'dest')
            for side, label, name in (('source', 'source', source_name),
                                      ('dest', 'destination', dest_name)):
                if name not in name_to_id:
                    raise ProgramBuildError(
                        f"Module not found in link {label}: {name}",
                        side=side, module_name=name,
                        details={'available': sorted(name_to_id)})
            document.links.append(encode_link(Connection(
                source_id=name_to_id[source_name],
                source_port=source_port,
                dest_id=name_to_id[dest_name],
                dest_port=dest_port,
            )))

        logger.info(f"Built program with {len(document.modules)} modules and {len(document.links)} links")
        return document

    # ─────────────────────────────────────────────────────────────────
    # Decode: live container read -> document
    # ─────────────────────────────────────────────────────────────────

    def decode(self, snapshot: Dict[str, Any]) -> ProgramDocument:
        """Turn a raw read of the module container and link overlay into a document.

        ``snapshot`` is ``{"modules": [{id, definition, top, left, filename}],
        "links": [overlay id strings] | None}``.  Unparseable or dangling
        links are skipped.
        """
        document = ProgramDocument()
        for entry in snapshot.get('modules') or []:
            module_id = entry.get('id')
            if not module_id:
                continue
            document.modules[str(module_id)] = ProgramModule(
                definition=entry.get('definition') or '',
                top=str(entry.get('top') or '0'),
                left=str(entry.get('left') or '0'),
                filename=entry.get('filename') or '',
            )

        for raw in snapshot.get('links') or []:
            try:
                connection = decode_link(raw)
            except LinkDecodeError as e:
                logger.warning(f"Skipping unparseable link: {e}")
                continue
            if connection.source_id not in document.modules or connection.dest_id not in document.modules:
                logger.warning(f"Skipping dangling link {connection.source_id} -> {connection.dest_id}")
                continue
            document.links.append(raw)
        return document

    def connections(self, document: ProgramDocument) -> List[Connection]:
        """Decode a document's links, skipping entries that do not decode."""
        result = []
        for raw in document.links:
            try:
                result.append(decode_link(raw))
            except LinkDecodeError as e:
                logger.warning(f"Skipping unparseable link: {e}")
        return result

    # ─────────────────────────────────────────────────────────────────
    # Program catalogue
    # ─────────────────────────────────────────────────────────────────

    def list_programs(self, storage, category: Optional[str] = None) -> List[Dict[str, Any]]:
        """Nested category tree of programs under ``programs/``."""
        root = 'programs' if not category else f"programs/{category.strip('/')}"
        if not storage.exists(root):
            raise StorageError(f"Program category not found: {category}", {'category': category})

        def convert(entries):
            result = []
            for entry in entries:
                if entry['type'] == 'directory':
                    result.append({
                        'name': entry['name'],
                        'type': 'category',
                        'children': convert(entry['children']),
                    })
                elif entry['name'] != 'index.js' and not entry['name'].startswith('.'):
                    result.append({
                        'name': entry['name'],
                        'type': 'program',
                        'path': entry['path'],
                        'size': entry['size'],
                    })
            return result

        return convert(storage.list_tree(root))

    def save_program(self, storage, document: ProgramDocument, name: str) -> str:
        """Write a document under ``programs/custom/<name>``; returns the file path."""
        name = name.strip().strip('/')
        if not name:
            raise StorageError("Program name must not be empty")
        path = f"{CUSTOM_PROGRAMS_DIR}/{name}"
        full = storage.write_text(path, json.dumps(document.to_dict(), indent=2, ensure_ascii=False))
        logger.info(f"Saved program to {full}")
        return full
