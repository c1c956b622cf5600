"""
Exceptions for the Mods bridge core.
"""

from typing import Optional, Any, Dict


class ModsError(Exception):
    """Base exception for all Mods bridge errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class SessionNotActiveError(ModsError):
    """Raised when an operation needs a rendered page and none is active."""
    pass


class NavigationTimeoutError(ModsError):
    """Raised when a navigation or settle wait exceeds its timeout."""

    def __init__(self, message: str, condition: str, timeout: float,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.condition = condition
        self.timeout = timeout


class ModuleLookupError(ModsError):
    """Raised when a module reference matches no live module."""

    def __init__(self, message: str, reference: str, available: Optional[list] = None):
        super().__init__(message, {'reference': reference, 'available': available or []})
        self.reference = reference
        self.available = available or []


class ProgramBuildError(ModsError):
    """Raised when a program cannot be built; no partial document is returned."""

    def __init__(self, message: str, side: Optional[str] = None,
                 module_name: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.side = side
        self.module_name = module_name


class LinkDecodeError(ModsError):
    """Raised when a link record does not decode to a source/dest pair."""
    pass


class IntrospectionError(ModsError):
    """Raised inside the introspector when a strategy cannot recover a shape."""
    pass


class StorageError(ModsError):
    """Raised when the storage tree cannot be read or written."""
    pass


class StorageNotFoundError(StorageError):
    """Raised when a path does not exist inside the storage tree."""

    def __init__(self, message: str, path: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.path = path


class PageError(ModsError):
    """Raised when the browser rejects a navigation or a page script."""

    def __init__(self, message: str, context: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.context = context
