"""
Core data models for the Mods bridge.

This module defines the structures exchanged between the introspector, the
program codec, the session state reader and the session driver: live module
instances read from a rendered program, connections between ports, static
module definitions and the persisted program document.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Any, Optional
from enum import Enum


class ParamKind(Enum):
    """Kinds of parameter controls a module can expose."""
    TEXT = "text"
    CHECKBOX = "checkbox"
    RADIO = "radio"
    FILE = "file"

    @classmethod
    def from_input_type(cls, input_type: str) -> "ParamKind":
        """Fold a raw ``<input type=...>`` into one of the four kinds."""
        input_type = (input_type or "").lower()
        for kind in cls:
            if kind.value == input_type:
                return kind
        return cls.TEXT


class IntrospectionMethod(Enum):
    """How a module definition was recovered."""
    STRUCTURAL = "structural"
    PATTERN = "pattern"
    FAILED = "failed"


@dataclass
class Param:
    """A parameter control inside a live module."""
    label: str
    value: str
    kind: ParamKind = ParamKind.TEXT
    input_type: str = "text"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'label': self.label,
            'value': self.value,
            'kind': self.kind.value,
            'input_type': self.input_type,
        }


@dataclass
class PeerLink:
    """One end of a connection as seen from a module instance."""
    peer_name: str
    peer_id: str
    port: str  # "<sourcePort> → <destPort>"

    def to_dict(self) -> Dict[str, Any]:
        return {'peer_name': self.peer_name, 'peer_id': self.peer_id, 'port': self.port}


@dataclass(frozen=True)
class Connection:
    """A directed edge from an output port to an input port."""
    source_id: str
    source_port: str
    dest_id: str
    dest_port: str

    @property
    def descriptor(self) -> str:
        return f"{self.source_port} → {self.dest_port}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'source_id': self.source_id,
            'source_port': self.source_port,
            'dest_id': self.dest_id,
            'dest_port': self.dest_port,
        }


@dataclass
class ModuleInstance:
    """A module as it currently exists inside a rendered program."""
    id: str
    name: str = ""
    params: List[Param] = field(default_factory=list)
    buttons: List[str] = field(default_factory=list)
    connected_from: List[PeerLink] = field(default_factory=list)
    connected_to: List[PeerLink] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'name': self.name,
            'params': [p.to_dict() for p in self.params],
            'buttons': list(self.buttons),
        }
        if self.connected_from or self.connected_to:
            data['connected_from'] = [p.to_dict() for p in self.connected_from]
            data['connected_to'] = [p.to_dict() for p in self.connected_to]
        return data

    def summary(self) -> Dict[str, Any]:
        """Short form used when reporting a freshly loaded program."""
        return {
            'id': self.id,
            'name': self.name,
            'param_count': len(self.params),
            'buttons': list(self.buttons),
        }


@dataclass
class ModuleDefinition:
    """The declared shape of a module script: its name and typed ports."""
    name: Optional[str] = None
    inputs: Dict[str, Dict[str, str]] = field(default_factory=dict)
    outputs: Dict[str, Dict[str, str]] = field(default_factory=dict)
    method: IntrospectionMethod = IntrospectionMethod.STRUCTURAL
    error: Optional[str] = None
    path: Optional[str] = None
    source: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.method != IntrospectionMethod.FAILED

    def to_dict(self) -> Dict[str, Any]:
        if not self.ok:
            data = {'error': self.error, 'method': self.method.value}
        else:
            data = {
                'name': self.name,
                'inputs': self.inputs,
                'outputs': self.outputs,
                'method': self.method.value,
            }
        if self.path is not None:
            data['path'] = self.path
        if self.source is not None:
            data['source'] = self.source
        return data


@dataclass
class ProgramModule:
    """A module entry of a persisted program document."""
    definition: str
    top: str = "0"
    left: str = "0"
    filename: str = ""

    def to_dict(self) -> Dict[str, Any]:
        # inputs/outputs are runtime bindings; the host persists them empty
        return {
            'definition': self.definition,
            'top': self.top,
            'left': self.left,
            'filename': self.filename,
            'inputs': {},
            'outputs': {},
        }


@dataclass
class ProgramDocument:
    """The persisted form of a program, as the host loads and saves it."""
    modules: Dict[str, ProgramModule] = field(default_factory=dict)
    links: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'modules': {mod_id: mod.to_dict() for mod_id, mod in self.modules.items()},
            'links': list(self.links),
        }


@dataclass
class CapturedDownload:
    """A file the host triggered for download during the session.

    The browser delivers the bytes asynchronously; ``loader`` fetches them on
    first access to ``content`` so the download event handler never blocks.
    """
    suggested_filename: str
    timestamp: float
    data: Optional[bytes] = None
    loader: Optional[Callable[[], Optional[bytes]]] = field(default=None, repr=False, compare=False)

    @property
    def content(self) -> Optional[bytes]:
        if self.data is None and self.loader is not None:
            loader, self.loader = self.loader, None
            self.data = loader()
        return self.data

    def to_dict(self, content_limit: Optional[int] = None) -> Dict[str, Any]:
        data = {
            'filename': self.suggested_filename,
            'size': self.size,
            'timestamp': self.timestamp,
        }
        if content_limit is not None:
            data['content'] = self.text(content_limit)
        return data

    @property
    def size(self) -> int:
        return len(self.content) if self.content else 0

    def text(self, limit: Optional[int] = None) -> Optional[str]:
        if self.content is None:
            return None
        decoded = self.content.decode('utf-8', errors='replace')
        return decoded[:limit] if limit is not None else decoded


@dataclass
class ActionResult:
    """Outcome of a driver action; lookup failures are results, not exceptions."""
    success: bool
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @classmethod
    def ok(cls, **data) -> "ActionResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, **data) -> "ActionResult":
        return cls(success=False, data=data, error=error)

    def to_dict(self) -> Dict[str, Any]:
        result = {'success': self.success}
        result.update(self.data)
        if self.error is not None:
            result['error'] = self.error
        return result
