"""
Settings for the Mods bridge.

Every timeout and settle delay used against the host runtime lives here so it
can be tuned without touching call sites.  The host offers no completion
signal for module rendering, file reads or program injection, so the settle
delays are best-effort waits, not guarantees.

Resolution order for each key:
    1. explicit override (constructor / CLI)
    2. environment variable (shell or ``.env``)
    3. hard-coded default
"""

import os
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional

from dotenv import load_dotenv

load_dotenv(os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), '.env'))


def resolve_setting(key: str, env_var: str, default: str,
                    overrides: Optional[Dict[str, Any]] = None) -> str:
    """Three-tier resolution: override -> env -> default."""
    if overrides and overrides.get(key) is not None:
        return str(overrides[key])
    env_val = os.environ.get(env_var, '').strip()
    if env_val:
        return env_val
    return default


def _as_bool(value: str) -> bool:
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


def _default_mods_dir() -> str:
    return os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'mods')


@dataclass
class Settings:
    """Resolved configuration for one bridge process."""
    mods_dir: str
    static_port: int = 8080
    rpc_port: int = 8765
    headless: bool = False
    browser_channel: str = ""
    load_entry_point: str = "mods_prog_load"

    # seconds
    navigation_timeout: float = 10.0
    render_settle: float = 0.5
    inject_settle: float = 1.0
    file_settle: float = 2.0
    download_wait: float = 2.0

    @property
    def base_url(self) -> str:
        return f"http://localhost:{self.static_port}/"

    @classmethod
    def load(cls, **overrides) -> "Settings":
        """Build settings from overrides, ``MODS_*`` environment variables and defaults."""
        def get(key, default):
            return resolve_setting(key, f"MODS_{key.upper()}", default, overrides)

        return cls(
            mods_dir=os.path.abspath(get('mods_dir', _default_mods_dir())),
            static_port=int(get('static_port', '8080')),
            rpc_port=int(get('rpc_port', '8765')),
            headless=_as_bool(get('headless', 'false')),
            browser_channel=get('browser_channel', ''),
            load_entry_point=get('load_entry_point', 'mods_prog_load'),
            navigation_timeout=float(get('navigation_timeout', '10')),
            render_settle=float(get('render_settle', '0.5')),
            inject_settle=float(get('inject_settle', '1.0')),
            file_settle=float(get('file_settle', '2.0')),
            download_wait=float(get('download_wait', '2.0')),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}
