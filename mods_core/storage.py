"""
Storage tree access rooted at the Mods directory.

All paths handed to Storage are relative to the root (``modules/read/png.js``,
``programs/machines/...``); anything resolving outside the root is rejected.
"""

import os
from typing import Any, Dict, List

from .exceptions import StorageError, StorageNotFoundError


class Storage:
    """Read/write/list access to files under one root directory."""

    def __init__(self, root: str):
        self.root = os.path.abspath(root)

    def resolve(self, path: str) -> str:
        """Absolute filesystem path for a root-relative path."""
        full = os.path.abspath(os.path.join(self.root, path.lstrip('/')))
        if full != self.root and not full.startswith(self.root + os.sep):
            raise StorageError(f"Path escapes the storage root: {path}", {'path': path})
        return full

    def exists(self, path: str) -> bool:
        return os.path.exists(self.resolve(path))

    def read_text(self, path: str) -> str:
        full = self.resolve(path)
        if not os.path.isfile(full):
            raise StorageNotFoundError(f"File not found: {path}", path)
        with open(full, 'r', encoding='utf-8') as f:
            return f.read()

    def write_text(self, path: str, content: str) -> str:
        full = self.resolve(path)
        os.makedirs(os.path.dirname(full), exist_ok=True)
        with open(full, 'w', encoding='utf-8') as f:
            f.write(content)
        return full

    def list_tree(self, path: str = '') -> List[Dict[str, Any]]:
        """Nested listing: directories carry ``children``, files carry ``size``.

        Entries are sorted by name so listings are stable across platforms.
        """
        full = self.resolve(path)
        if not os.path.isdir(full):
            raise StorageNotFoundError(f"Directory not found: {path}", path)
        return self._scan(full)

    def _scan(self, directory: str) -> List[Dict[str, Any]]:
        entries = []
        for entry in sorted(os.scandir(directory), key=lambda e: e.name):
            rel = os.path.relpath(entry.path, self.root).replace(os.sep, '/')
            if entry.is_dir():
                entries.append({
                    'name': entry.name,
                    'type': 'directory',
                    'path': rel,
                    'children': self._scan(entry.path),
                })
            else:
                entries.append({
                    'name': entry.name,
                    'type': 'file',
                    'path': rel,
                    'size': entry.stat().st_size,
                })
        return entries
