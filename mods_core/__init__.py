"""
Mods Bridge Core - program state extraction and encoding for Mods CE.

This package reads the live state of a browser-rendered Mods program,
introspects module scripts, and encodes/decodes the host's program
document format, so a tool-calling agent can load, inspect, edit, build and
save Mods programs.
"""

__version__ = "0.1.0"
__author__ = "Mods Bridge Development Team"

from .models import (
    ModuleInstance, Param, ParamKind, PeerLink, Connection, ModuleDefinition,
    IntrospectionMethod, ProgramDocument, ProgramModule, CapturedDownload, ActionResult
)
from .exceptions import (
    ModsError, SessionNotActiveError, NavigationTimeoutError, ModuleLookupError,
    ProgramBuildError, LinkDecodeError, IntrospectionError, StorageError, StorageNotFoundError,
    PageError
)
from .config import Settings, resolve_setting
from .links import encode_link, decode_link
from .introspector import ModuleIntrospector, introspect, module_info, list_modules
from .codec import ProgramCodec
from .storage import Storage
from .page import RenderedPage, PlaywrightPage
from .state_reader import StateReader, parse_rendered_state
from .driver import Session, DownloadBuffer, parse_module_ref

__all__ = [
    # Models
    "ModuleInstance",
    "Param",
    "ParamKind",
    "PeerLink",
    "Connection",
    "ModuleDefinition",
    "IntrospectionMethod",
    "ProgramDocument",
    "ProgramModule",
    "CapturedDownload",
    "ActionResult",
    # Errors
    "ModsError",
    "SessionNotActiveError",
    "NavigationTimeoutError",
    "ModuleLookupError",
    "ProgramBuildError",
    "LinkDecodeError",
    "IntrospectionError",
    "StorageError",
    "StorageNotFoundError",
    "PageError",
    # Configuration
    "Settings",
    "resolve_setting",
    # Wire format
    "encode_link",
    "decode_link",
    # Components
    "ModuleIntrospector",
    "introspect",
    "module_info",
    "list_modules",
    "ProgramCodec",
    "Storage",
    "RenderedPage",
    "PlaywrightPage",
    "StateReader",
    "parse_rendered_state",
    "Session",
    "DownloadBuffer",
    "parse_module_ref",
]
