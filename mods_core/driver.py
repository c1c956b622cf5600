"""
Session driver.

A Session is the explicit handle for one live, rendered Mods program: one
page, one download buffer, one set of settings.  Callers issue operations
sequentially; nothing here serializes concurrent calls.

Lookups that miss (module, parameter, button, file control) come back as
failed ActionResults listing the alternatives.  Timeouts raise
NavigationTimeoutError and end the operation; there is no retry loop.
"""

import json
import logging
import os
from typing import List, Optional, Tuple
from urllib.parse import quote

from .codec import ProgramCodec
from .config import Settings
from .exceptions import ModuleLookupError, SessionNotActiveError
from .models import ActionResult, CapturedDownload, Connection, ModuleInstance, ProgramDocument
from .page import PlaywrightPage
from .state_reader import StateReader, control_to_param

logger = logging.getLogger(__name__)

CREATED_PROGRAM = 'custom (created)'

CONTAINER_READY_SCRIPT = """
() => {
  const modules = document.getElementById('modules');
  return !!modules && modules.childNodes.length > 0;
}
"""

SET_CONTROL_SCRIPT = """
({moduleId, index, value, checked}) => {
  const mod = document.getElementById(moduleId);
  if (!mod) return null;
  const input = mod.querySelectorAll('input')[index];
  if (!input) return null;
  if (input.type === 'checkbox') {
    input.checked = checked;
  } else {
    input.value = value;
  }
  input.dispatchEvent(new Event('change'));
  return input.type === 'checkbox' ? (input.checked ? 'true' : 'false') : input.value;
}
"""

CLICK_BUTTON_SCRIPT = """
({moduleId, index}) => {
  const mod = document.getElementById(moduleId);
  if (!mod) return null;
  const button = mod.querySelectorAll('button')[index];
  if (!button) return null;
  button.click();
  return button.textContent.trim();
}
"""

INJECT_PROGRAM_SCRIPT = """
({entry, program}) => {
  window[entry](JSON.parse(program));
  return true;
}
"""

CHECKED_VALUES = ('true', '1', 'on')


def entry_point_script(entry: str) -> str:
    return f"() => typeof window[{json.dumps(entry)}] === 'function'"


def program_url(base_url: str, program_path: str) -> str:
    encoded = '/'.join(quote(part, safe='') for part in program_path.split('/'))
    return f"{base_url}?program={encoded}"


def parse_module_ref(reference: str) -> Tuple[str, Optional[str]]:
    """Split ``"name:0.123"`` into ``("name", "0.123")``; a bare name has no id."""
    index = reference.rfind(':0.')
    if index == -1:
        return reference, None
    return reference[:index], reference[index + 1:]


class DownloadBuffer:
    """Every download the host triggers, in capture order.

    Nothing expires on its own; clear it before an action whose download
    should be isolated.
    """

    def __init__(self):
        self._items: List[CapturedDownload] = []

    def add(self, download: CapturedDownload) -> None:
        self._items.append(download)

    def latest(self) -> Optional[CapturedDownload]:
        return self._items[-1] if self._items else None

    def clear(self) -> None:
        self._items = []

    def __len__(self) -> int:
        return len(self._items)


class Session:
    """Explicit handle for one rendered Mods program."""

    def __init__(self, page, settings: Settings, codec: Optional[ProgramCodec] = None):
        self.page = page
        self.settings = settings
        self.codec = codec or ProgramCodec()
        self.downloads = DownloadBuffer()
        self.loaded_program: Optional[str] = None
        self._reader = StateReader(page)
        page.on_download(self.downloads.add)

    @classmethod
    def launch(cls, settings: Settings) -> "Session":
        page = PlaywrightPage.launch(headless=settings.headless, channel=settings.browser_channel)
        return cls(page, settings)

    @property
    def active(self) -> bool:
        return self.page is not None

    def _require_page(self):
        if self.page is None:
            raise SessionNotActiveError("Browser session is not active")
        return self.page

    def close(self) -> None:
        if self.page is not None:
            self.page.close()
            self.page = None
            self.loaded_program = None

    # ─────────────────────────────────────────────────────────────────
    # Navigation
    # ─────────────────────────────────────────────────────────────────

    def open(self) -> None:
        """Load the bare editor and wait for the host's load entry point."""
        page = self._require_page()
        timeout = self.settings.navigation_timeout
        page.navigate(self.settings.base_url, timeout)
        page.wait_until(entry_point_script(self.settings.load_entry_point), timeout, 'load entry point')

    def navigate(self, program_path: str) -> None:
        """Load a program by path.

        Three waits in order, each with its own timeout: the load entry
        point is defined, the module container has children, then the
        render settle delay.
        """
        page = self._require_page()
        timeout = self.settings.navigation_timeout
        page.navigate(program_url(self.settings.base_url, program_path), timeout)
        page.wait_until(entry_point_script(self.settings.load_entry_point), timeout, 'load entry point')
        page.wait_until(CONTAINER_READY_SCRIPT, timeout, 'module container')
        page.settle(self.settings.render_settle)
        self.loaded_program = program_path
        logger.info(f"Loaded program {program_path}")

    def inject_program(self, document: ProgramDocument) -> None:
        """Hand a document straight to the host's load entry point.

        Waits for the entry point first, so an editor that never initialized
        surfaces as a NavigationTimeoutError rather than a page script error.
        """
        page = self._require_page()
        page.wait_until(entry_point_script(self.settings.load_entry_point),
                        self.settings.navigation_timeout, 'load entry point')
        page.evaluate(INJECT_PROGRAM_SCRIPT, {
            'entry': self.settings.load_entry_point,
            'program': json.dumps(document.to_dict(), ensure_ascii=False),
        })
        page.settle(self.settings.inject_settle)
        self.loaded_program = CREATED_PROGRAM
        logger.info(f"Injected program with {len(document.modules)} modules")

    # ─────────────────────────────────────────────────────────────────
    # State
    # ─────────────────────────────────────────────────────────────────

    def read_state(self) -> List[ModuleInstance]:
        self._require_page()
        return self._reader.read_state()

    def read_connections(self) -> List[Connection]:
        """Connections currently drawn between live modules."""
        self._require_page()
        return self._reader.read_connections()

    def extract_program(self) -> Optional[ProgramDocument]:
        """Persisted form of the current program, or None without a module container."""
        self._require_page()
        raw = self._reader.read_program()
        if raw is None:
            return None
        return self.codec.decode(raw)

    def resolve_module(self, reference: str) -> ModuleInstance:
        """Resolve ``"name"`` or ``"name:0.123"`` against the live modules."""
        name, module_id = parse_module_ref(reference)
        modules = self.read_state()
        if module_id is not None:
            for module in modules:
                if module.id == module_id:
                    return module
            raise ModuleLookupError(f'Module with ID "{module_id}" not found.', reference,
                                    [f"{m.name}:{m.id}" for m in modules])

        needle = name.lower()
        for module in modules:
            if needle in module.name.lower():
                return module
        available = [m.name for m in modules if m.name]
        raise ModuleLookupError(f'Module "{name}" not found. Available: {", ".join(available)}',
                                reference, available)

    def _raw_module(self, module_id: str) -> Optional[dict]:
        raw = self._reader.read_raw() or {}
        for entry in raw.get('modules') or []:
            if entry.get('id') == module_id:
                return entry
        return None

    # ─────────────────────────────────────────────────────────────────
    # Actions
    # ─────────────────────────────────────────────────────────────────

    def read_input(self, module_id: str, label_substring: str) -> ActionResult:
        self._require_page()
        entry = self._raw_module(module_id)
        if entry is None:
            return ActionResult.fail(f"Module {module_id} not found", module_id=module_id)
        params = [control_to_param(c) for c in entry.get('controls') or []]
        for param in params:
            if label_substring in param.label:
                return ActionResult.ok(module_id=module_id, label=param.label,
                                       kind=param.kind.value, value=param.value)
        return ActionResult.fail(f'Parameter "{label_substring}" not found in module {module_id}',
                                 module_id=module_id, available=[p.label for p in params])

    def set_input(self, module_id: str, label_substring: str, value: str) -> ActionResult:
        """Set the first control whose label contains ``label_substring`` (case-sensitive)."""
        page = self._require_page()
        entry = self._raw_module(module_id)
        if entry is None:
            return ActionResult.fail(f"Module {module_id} not found", module_id=module_id)

        value = str(value)
        controls = entry.get('controls') or []
        for index, control in enumerate(controls):
            param = control_to_param(control)
            if label_substring not in param.label:
                continue
            new_value = page.evaluate(SET_CONTROL_SCRIPT, {
                'moduleId': module_id,
                'index': index,
                'value': value,
                'checked': value.lower() in CHECKED_VALUES,
            })
            if new_value is None:
                return ActionResult.fail(f'Control "{param.label}" disappeared from module {module_id}',
                                         module_id=module_id, label=param.label)
            logger.info(f"Set {module_id} [{param.label}] = {new_value}")
            return ActionResult.ok(module_id=module_id, label=param.label,
                                   kind=param.kind.value, new_value=new_value)

        return ActionResult.fail(f'Parameter "{label_substring}" not found in module {module_id}',
                                 module_id=module_id,
                                 available=[control_to_param(c).label for c in controls])

    def click_button(self, module_id: str, text_substring: str) -> ActionResult:
        """Click the first button whose text contains ``text_substring`` (case-insensitive)."""
        page = self._require_page()
        entry = self._raw_module(module_id)
        if entry is None:
            return ActionResult.fail(f"Module {module_id} not found", module_id=module_id)

        buttons = [str(b) for b in entry.get('buttons') or []]
        needle = text_substring.lower()
        for index, text in enumerate(buttons):
            if needle not in text.lower():
                continue
            clicked = page.evaluate(CLICK_BUTTON_SCRIPT, {'moduleId': module_id, 'index': index})
            if clicked is None:
                return ActionResult.fail(f'Button "{text}" disappeared from module {module_id}',
                                         module_id=module_id, available=buttons)
            logger.info(f"Clicked {module_id} [{clicked}]")
            return ActionResult.ok(module_id=module_id, clicked=clicked)

        return ActionResult.fail(f'Button "{text_substring}" not found', module_id=module_id, available=buttons)

    def trigger_action(self, module_id: str, text_substring: str) -> ActionResult:
        """Click a button and report the download it triggered, if any.

        Clears the download buffer first so only this click's download can
        be reported, then waits the fixed download delay.
        """
        page = self._require_page()
        self.downloads.clear()
        result = self.click_button(module_id, text_substring)
        if not result.success:
            return result
        page.settle(self.settings.download_wait)
        download = self.downloads.latest()
        if download is not None:
            result.data['download'] = download.to_dict()
        return result

    def inject_file(self, module_id: str, file_path: str) -> ActionResult:
        """Attach a local file to the module's file control, then wait for the host to read it."""
        page = self._require_page()
        if not os.path.isfile(file_path):
            return ActionResult.fail(f"File not found: {file_path}", module_id=module_id, file=file_path)
        handle = page.locate_file_input(module_id)
        if handle is None:
            return ActionResult.fail(f"No file input found in module {module_id}",
                                     module_id=module_id, file=file_path)
        page.attach_file(handle, file_path)
        page.settle(self.settings.file_settle)
        logger.info(f"Loaded {file_path} into {module_id}")
        return ActionResult.ok(module_id=module_id, file=file_path)
