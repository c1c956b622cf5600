"""
Tests for settings resolution, the static server app and the CLI parser.
"""

import os

import pytest

from mods_core.config import Settings, resolve_setting
from mods_core.exceptions import StorageError
from mods_core.storage import Storage
from mods_server.cli import build_parser
from mods_server.static_server import create_static_app


class TestResolveSetting:
    """Override beats environment beats default."""

    def test_default(self, monkeypatch):
        monkeypatch.delenv('MODS_X', raising=False)
        assert resolve_setting('x', 'MODS_X', 'fallback') == 'fallback'

    def test_env(self, monkeypatch):
        monkeypatch.setenv('MODS_X', ' from-env ')
        assert resolve_setting('x', 'MODS_X', 'fallback') == 'from-env'

    def test_override(self, monkeypatch):
        monkeypatch.setenv('MODS_X', 'from-env')
        assert resolve_setting('x', 'MODS_X', 'fallback', {'x': 5}) == '5'

    def test_none_override_is_ignored(self, monkeypatch):
        monkeypatch.delenv('MODS_X', raising=False)
        assert resolve_setting('x', 'MODS_X', 'fallback', {'x': None}) == 'fallback'


class TestSettings:

    def test_load_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv('MODS_STATIC_PORT', '9000')
        monkeypatch.setenv('MODS_HEADLESS', 'yes')
        monkeypatch.setenv('MODS_DOWNLOAD_WAIT', '0.25')
        settings = Settings.load(mods_dir=str(tmp_path))

        assert settings.static_port == 9000
        assert settings.headless is True
        assert settings.download_wait == 0.25
        assert settings.base_url == 'http://localhost:9000/'
        assert settings.mods_dir == os.path.abspath(str(tmp_path))

    def test_override_wins(self, monkeypatch, tmp_path):
        monkeypatch.setenv('MODS_LOAD_ENTRY_POINT', 'prog_load')
        settings = Settings.load(mods_dir=str(tmp_path), load_entry_point='mods_prog_load')
        assert settings.load_entry_point == 'mods_prog_load'

    def test_to_dict(self, settings):
        data = settings.to_dict()
        assert data['static_port'] == 8123
        assert data['navigation_timeout'] == 10.0


class TestStorage:

    def test_rejects_escape(self, tmp_path):
        with pytest.raises(StorageError):
            Storage(str(tmp_path)).resolve('../outside.js')

    def test_write_creates_directories(self, tmp_path):
        storage = Storage(str(tmp_path))
        storage.write_text('a/b/c.txt', 'hi')
        assert storage.read_text('a/b/c.txt') == 'hi'
        assert storage.list_tree('a') == [{
            'name': 'b', 'type': 'directory', 'path': 'a/b',
            'children': [{'name': 'c.txt', 'type': 'file', 'path': 'a/b/c.txt', 'size': 2}],
        }]


class TestStaticApp:

    def test_serves_index_and_files(self, tmp_path):
        (tmp_path / 'index.html').write_text('<html>mods</html>', encoding='utf-8')
        (tmp_path / 'modules').mkdir()
        (tmp_path / 'modules' / 'a.js').write_text('var a', encoding='utf-8')
        client = create_static_app(str(tmp_path)).test_client()

        assert client.get('/').data == b'<html>mods</html>'
        assert client.get('/modules/a.js').data == b'var a'
        assert client.get('/modules/missing.js').status_code == 404


class TestCli:

    def test_parser_maps_onto_settings_keys(self):
        args = build_parser().parse_args(['--port', '8081', '--rpc-port', '9999', '--headless'])
        assert args.static_port == 8081
        assert args.rpc_port == 9999
        assert args.headless is True
        assert args.mods_dir is None
