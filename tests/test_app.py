"""
Tests for the Flask RPC interface.
"""

import pytest

from mods_core.driver import CREATED_PROGRAM, Session
from mods_core.exceptions import PageError
from mods_core.models import CapturedDownload
from mods_server.app import create_app

from conftest import FakePage, control, raw_module


@pytest.fixture
def bridge_page():
    return FakePage(
        raw_state={
            'modules': [
                raw_module('0.1', 'slider', [control('value', '0.5')], ['reset']),
                raw_module('0.2', 'label'),
            ],
            'links': [],
        },
        raw_program={'modules': [{'id': '0.1', 'definition': 'src'}], 'links': []},
    )


@pytest.fixture
def client(settings, mods_storage, bridge_page):
    session = Session(bridge_page, settings)
    app = create_app(settings, session=session, storage=mods_storage)
    app.config['TESTING'] = True
    return app.test_client()


@pytest.fixture
def idle_client(settings, mods_storage):
    app = create_app(settings, storage=mods_storage)
    app.config['TESTING'] = True
    return app.test_client()


class TestStatus:

    def test_status_without_browser(self, idle_client):
        data = idle_client.get('/api/status').get_json()['data']
        assert data['browser'] == 'not launched'
        assert data['loaded_program'] == 'none'
        assert data['http_url'] == 'http://localhost:8123/'

    def test_status_with_program(self, client):
        client.post('/api/program/load', json={'path': 'programs/machines/mill 2D PCB'})
        data = client.get('/api/status').get_json()['data']
        assert data['browser'] == 'connected'
        assert data['loaded_program'] == 'programs/machines/mill 2D PCB'
        assert data['module_names'] == ['slider', 'label']

    def test_unknown_endpoint(self, client):
        response = client.get('/api/nope')
        assert response.status_code == 404
        assert response.get_json()['success'] is False


class TestCatalogues:

    def test_programs(self, client):
        data = client.get('/api/programs').get_json()['data']
        assert data[0]['name'] == 'machines'

    def test_module_info(self, client):
        response = client.get('/api/modules/info?path=modules/event/generate.js')
        data = response.get_json()['data']
        assert data['name'] == 'generate event'
        assert data['outputs'] == {'output': {'type': 'event'}}
        assert 'source' not in data

    def test_module_info_missing(self, client):
        response = client.get('/api/modules/info?path=modules/nope.js')
        assert response.status_code == 404

    def test_module_info_requires_path(self, client):
        assert client.get('/api/modules/info').status_code == 400

    def test_modules_unknown_category(self, client):
        assert client.get('/api/modules?category=nope').status_code == 400


class TestPrograms:

    def test_load(self, client, bridge_page):
        response = client.post('/api/program/load', json={'path': 'programs/machines/mill 2D PCB'})
        data = response.get_json()['data']
        assert data['loaded'] == 'programs/machines/mill 2D PCB'
        assert [m['name'] for m in data['modules']] == ['slider', 'label']
        assert len(bridge_page.navigations) == 1

    def test_load_requires_path(self, client):
        response = client.post('/api/program/load', json={})
        assert response.status_code == 400
        assert 'path' in response.get_json()['error']

    def test_state_requires_loaded_program(self, client):
        assert client.get('/api/program/state').status_code == 409

    def test_create(self, client, bridge_page):
        response = client.post('/api/program/create', json={
            'modules': ['modules/event/generate.js', 'modules/ui/label.js'],
            'links': [{'from': 'generate event.output', 'to': 'label.text'}],
        })
        data = response.get_json()['data']
        assert data['module_count'] == 2
        assert data['link_count'] == 1
        assert len(bridge_page.injected['modules']) == 2
        assert data['missing_links'] == []

        status = client.get('/api/status').get_json()['data']
        assert status['loaded_program'] == CREATED_PROGRAM

    def test_create_unresolved_link(self, client, bridge_page):
        response = client.post('/api/program/create', json={
            'modules': ['modules/ui/label.js'],
            'links': [{'from': 'A.out', 'to': 'label.text'}],
        })
        body = response.get_json()
        assert response.status_code == 400
        assert body['error'] == "Module not found in link source: A"
        assert body['details']['side'] == 'source'
        assert bridge_page.injected is None

    def test_save(self, client, mods_storage):
        response = client.post('/api/program/save', json={'name': 'mine'})
        data = response.get_json()['data']
        assert data['saved'] is True
        assert data['module_count'] == 1
        assert mods_storage.exists('programs/custom/mine')


class TestActions:

    def test_set_parameter(self, client):
        response = client.post('/api/parameter/set', json={'module': 'slider', 'parameter': 'value', 'value': 2})
        assert response.get_json()['data']['new_value'] == '2'

    def test_parameter_not_found(self, client):
        response = client.post('/api/parameter/set', json={'module': 'slider', 'parameter': 'x', 'value': 1})
        body = response.get_json()
        assert response.status_code == 404
        assert body['details']['available'] == ['value']

    def test_unknown_module(self, client):
        response = client.post('/api/parameter/get', json={'module': 'mill', 'parameter': 'x'})
        assert response.status_code == 404
        assert response.get_json()['details']['available'] == ['slider', 'label']

    def test_trigger_and_export(self, client, bridge_page):
        bridge_page.download_on_click = CapturedDownload('out.svg', 1.0, data=b'<svg/>')
        response = client.post('/api/action/trigger', json={'module': 'slider', 'action': 'Reset'})
        assert response.get_json()['data']['download']['filename'] == 'out.svg'

        export = client.get('/api/export/latest').get_json()['data']
        assert export['content'] == '<svg/>'
        assert export['size'] == 6

    def test_export_none(self, client):
        assert client.get('/api/export/latest').status_code == 404

    def test_no_session(self, idle_client):
        response = idle_client.post('/api/parameter/get', json={'module': 'slider', 'parameter': 'value'})
        assert response.status_code == 409
        assert idle_client.get('/api/export/latest').status_code == 409


class TestBrowserFailures:
    """Browser and request-shape failures come back as JSON errors."""

    CREATE_BODY = {
        'modules': ['modules/event/generate.js', 'modules/ui/label.js'],
        'links': [{'from': 'generate event.output', 'to': 'label.text'}],
    }

    def test_load_with_unreachable_editor(self, client, bridge_page, monkeypatch):
        def refuse(url, timeout):
            raise PageError("Could not load the editor: net::ERR_CONNECTION_REFUSED", url, {'url': url})

        monkeypatch.setattr(bridge_page, 'navigate', refuse)
        response = client.post('/api/program/load', json={'path': 'programs/machines/mill 2D PCB'})
        body = response.get_json()
        assert response.status_code == 502
        assert 'ERR_CONNECTION_REFUSED' in body['error']
        assert body['details']['url'].startswith('http://localhost:8123/')

    def test_create_before_editor_initialized(self, client, bridge_page):
        bridge_page.timeout_on = 'load entry point'
        response = client.post('/api/program/create', json=self.CREATE_BODY)
        assert response.status_code == 504
        assert bridge_page.injected is None

    def test_create_with_failing_page_script(self, client, bridge_page, monkeypatch):
        original = bridge_page.evaluate

        def evaluate(script, arg=None):
            if arg and 'program' in arg:
                raise PageError("Page script failed: TypeError: window[entry] is not a function",
                                'inject', {'script': 'inject'})
            return original(script, arg)

        monkeypatch.setattr(bridge_page, 'evaluate', evaluate)
        response = client.post('/api/program/create', json=self.CREATE_BODY)
        assert response.status_code == 502
        assert 'is not a function' in response.get_json()['error']

    def test_create_with_malformed_link(self, client, bridge_page):
        response = client.post('/api/program/create', json={
            'modules': ['modules/ui/slider.js'],
            'links': ['slider.value->label.text'],
        })
        body = response.get_json()
        assert response.status_code == 400
        assert 'expected {from, to}' in body['error']
        assert body['details']['side'] == 'source'
        assert bridge_page.injected is None

    def test_create_reports_links_the_editor_did_not_draw(self, client, bridge_page):
        bridge_page.draw_links = False
        data = client.post('/api/program/create', json=self.CREATE_BODY).get_json()['data']
        assert len(data['missing_links']) == 1
        assert data['missing_links'][0]['source_port'] == 'output'
        assert data['missing_links'][0]['dest_port'] == 'text'
