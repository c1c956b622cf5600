"""
Flask RPC interface for the Mods bridge.

Thin dispatch layer: every route maps one agent tool call onto the core and
returns JSON of the form ``{"success": true, "data": ...}`` or
``{"success": false, "error": "...", "details": {...}}``.

Routes:
    GET  /api/status               — server, browser and loaded-program status
    GET  /api/programs             — program catalogue (?category=)
    GET  /api/modules              — module catalogue (?category=)
    GET  /api/modules/info         — introspect a module (?path=&include_source=)
    POST /api/program/load         — load a program by path
    GET  /api/program/state        — live module state
    POST /api/program/create       — build a program and inject it
    POST /api/program/save         — save the current program
    POST /api/parameter/set        — set a parameter control
    POST /api/parameter/get        — read a parameter control
    POST /api/action/trigger       — click a button, report any download
    POST /api/file/load            — load a local file into a module
    GET  /api/export/latest        — most recent download
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from flask import Blueprint, Flask, current_app, jsonify, request
from flask_cors import CORS

from mods_core.codec import ProgramCodec
from mods_core.config import Settings
from mods_core.driver import Session
from mods_core.exceptions import (
    ModsError, ModuleLookupError, NavigationTimeoutError, PageError, ProgramBuildError,
    SessionNotActiveError, StorageNotFoundError
)
from mods_core.introspector import list_modules, module_info
from mods_core.storage import Storage

logger = logging.getLogger(__name__)

EXPORT_CONTENT_LIMIT = 10000

tools_bp = Blueprint('tools', __name__, url_prefix='/api')


@dataclass
class BridgeContext:
    """Everything the routes need, owned by one Flask app."""
    settings: Settings
    storage: Storage
    codec: ProgramCodec
    session: Optional[Session] = None


def _context() -> BridgeContext:
    return current_app.extensions['mods_bridge']


def _session() -> Session:
    session = _context().session
    if session is None or not session.active:
        raise SessionNotActiveError("Browser not launched.")
    return session


def _ok(data: Any):
    return jsonify({'success': True, 'data': data})


def _error(message: str, status: int = 400, details: Optional[Dict[str, Any]] = None):
    body = {'success': False, 'error': message}
    if details:
        body['details'] = details
    return jsonify(body), status


def _mods_error(e: ModsError):
    """Map core exceptions onto HTTP status codes."""
    if isinstance(e, SessionNotActiveError):
        status = 409
    elif isinstance(e, NavigationTimeoutError):
        status = 504
    elif isinstance(e, PageError):
        status = 502
    elif isinstance(e, (StorageNotFoundError, ModuleLookupError)):
        status = 404
    else:
        status = 400
    details = dict(e.details)
    if isinstance(e, ProgramBuildError):
        details.update({'side': e.side, 'module_name': e.module_name})
    logger.warning(f"{type(e).__name__}: {e.message}")
    return _error(e.message, status, details)


def _json_body() -> Dict[str, Any]:
    return request.get_json(silent=True) or {}


def _require(body: Dict[str, Any], *keys: str) -> Optional[str]:
    missing = [k for k in keys if body.get(k) in (None, '')]
    if missing:
        return f"Missing required field(s): {', '.join(missing)}"
    return None


def _action_response(result):
    data = result.to_dict()
    if result.success:
        return _ok(data)
    return _error(result.error, 404, data)


# ─────────────────────────────────────────────────────────────────────
# Status and catalogues
# ─────────────────────────────────────────────────────────────────────

@tools_bp.route('/status', methods=['GET'])
def get_status():
    """Get server health, browser state, static URL and loaded program."""
    ctx = _context()
    session = ctx.session
    status = {
        'server': 'running',
        'http_url': ctx.settings.base_url,
        'browser': 'connected' if session is not None and session.active else 'not launched',
        'loaded_program': (session.loaded_program if session is not None else None) or 'none',
    }
    if session is not None and session.active and session.loaded_program:
        try:
            modules = session.read_state()
            status['module_count'] = len(modules)
            status['module_names'] = [m.name for m in modules if m.name]
        except ModsError as e:
            status['state_error'] = e.message
    return _ok(status)


@tools_bp.route('/programs', methods=['GET'])
def get_programs():
    """List available programs organized by category."""
    ctx = _context()
    try:
        return _ok(ctx.codec.list_programs(ctx.storage, request.args.get('category')))
    except ModsError as e:
        return _mods_error(e)


@tools_bp.route('/modules', methods=['GET'])
def get_modules():
    """List available modules organized by category."""
    try:
        return _ok(list_modules(_context().storage, request.args.get('category')))
    except ModsError as e:
        return _mods_error(e)


@tools_bp.route('/modules/info', methods=['GET'])
def get_module_info():
    """Parse a module file and return its name, inputs and outputs with types."""
    path = request.args.get('path', '')
    if not path:
        return _error("Missing required parameter: path")
    include_source = request.args.get('include_source', '').lower() in ('1', 'true', 'yes')
    try:
        definition = module_info(_context().storage, path, include_source)
        return _ok(definition.to_dict())
    except ModsError as e:
        return _mods_error(e)


# ─────────────────────────────────────────────────────────────────────
# Programs
# ─────────────────────────────────────────────────────────────────────

@tools_bp.route('/program/load', methods=['POST'])
def load_program():
    """Load a preset program in the browser by path."""
    body = _json_body()
    problem = _require(body, 'path')
    if problem:
        return _error(problem)
    try:
        session = _session()
        session.navigate(body['path'])
        modules = session.read_state()
        return _ok({'loaded': body['path'], 'modules': [m.summary() for m in modules]})
    except ModsError as e:
        return _mods_error(e)


@tools_bp.route('/program/state', methods=['GET'])
def get_program_state():
    """Get the current state of every module in the loaded program."""
    try:
        session = _session()
        if not session.loaded_program:
            return _error("No program loaded. Load or create a program first.", 409)
        return _ok([m.to_dict() for m in session.read_state()])
    except ModsError as e:
        return _mods_error(e)


@tools_bp.route('/program/create', methods=['POST'])
def create_program():
    """Build a program from module paths and links, then load it in the browser."""
    body = _json_body()
    module_paths = body.get('modules') or []
    links = body.get('links') or []
    if not isinstance(module_paths, list) or not module_paths:
        return _error("Field 'modules' must be a non-empty list of module paths")
    if not isinstance(links, list):
        return _error("Field 'links' must be a list of {from, to} objects")
    ctx = _context()
    try:
        session = _session()
        document = ctx.codec.build(ctx.storage, module_paths, links)
        session.inject_program(document)
        modules = session.read_state()
        rendered = set(session.read_connections())
        missing = [c.to_dict() for c in ctx.codec.connections(document) if c not in rendered]
        if missing:
            logger.warning(f"{len(missing)} of {len(document.links)} links were not drawn by the editor")
        return _ok({
            'created': True,
            'module_count': len(document.modules),
            'link_count': len(document.links),
            'modules': [{'id': m.id, 'name': m.name} for m in modules],
            'missing_links': missing,
        })
    except ModsError as e:
        return _mods_error(e)


@tools_bp.route('/program/save', methods=['POST'])
def save_program():
    """Save the current program state under programs/custom/."""
    body = _json_body()
    problem = _require(body, 'name')
    if problem:
        return _error(problem)
    ctx = _context()
    try:
        document = _session().extract_program()
        if document is None:
            return _error("Could not extract program state: no module container on the page", 409)
        path = ctx.codec.save_program(ctx.storage, document, body['name'])
        return _ok({'saved': True, 'path': path,
                    'module_count': len(document.modules), 'link_count': len(document.links)})
    except ModsError as e:
        return _mods_error(e)


# ─────────────────────────────────────────────────────────────────────
# Module actions
# ─────────────────────────────────────────────────────────────────────

@tools_bp.route('/parameter/set', methods=['POST'])
def set_parameter():
    """Set a parameter value in a module (name, partial name, or name:id)."""
    body = _json_body()
    problem = _require(body, 'module', 'parameter')
    if problem or 'value' not in body:
        return _error(problem or "Missing required field(s): value")
    try:
        session = _session()
        module = session.resolve_module(body['module'])
        return _action_response(session.set_input(module.id, body['parameter'], str(body['value'])))
    except ModsError as e:
        return _mods_error(e)


@tools_bp.route('/parameter/get', methods=['POST'])
def get_parameter():
    """Read a parameter value from a module."""
    body = _json_body()
    problem = _require(body, 'module', 'parameter')
    if problem:
        return _error(problem)
    try:
        session = _session()
        module = session.resolve_module(body['module'])
        return _action_response(session.read_input(module.id, body['parameter']))
    except ModsError as e:
        return _mods_error(e)


@tools_bp.route('/action/trigger', methods=['POST'])
def trigger_action():
    """Click a button in a module (calculate, view, export, ...)."""
    body = _json_body()
    problem = _require(body, 'module', 'action')
    if problem:
        return _error(problem)
    try:
        session = _session()
        module = session.resolve_module(body['module'])
        return _action_response(session.trigger_action(module.id, body['action']))
    except ModsError as e:
        return _mods_error(e)


@tools_bp.route('/file/load', methods=['POST'])
def load_file():
    """Load a local file into a module's file input (read SVG, read png, ...)."""
    body = _json_body()
    problem = _require(body, 'module', 'file_path')
    if problem:
        return _error(problem)
    try:
        session = _session()
        module = session.resolve_module(body['module'])
        return _action_response(session.inject_file(module.id, body['file_path']))
    except ModsError as e:
        return _mods_error(e)


@tools_bp.route('/export/latest', methods=['GET'])
def get_latest_export():
    """Get the most recently downloaded file."""
    try:
        download = _session().downloads.latest()
    except ModsError as e:
        return _mods_error(e)
    if download is None:
        return _error("No file has been exported yet. Trigger an export action first.", 404)
    return _ok(download.to_dict(content_limit=EXPORT_CONTENT_LIMIT))


# ─────────────────────────────────────────────────────────────────────
# Application factory
# ─────────────────────────────────────────────────────────────────────

def create_app(settings: Settings, session: Optional[Session] = None,
               storage: Optional[Storage] = None, codec: Optional[ProgramCodec] = None) -> Flask:
    """Create the RPC app around an explicitly owned session."""
    app = Flask(__name__)
    CORS(app)
    app.extensions['mods_bridge'] = BridgeContext(
        settings=settings,
        storage=storage or Storage(settings.mods_dir),
        codec=codec or ProgramCodec(),
        session=session,
    )
    app.register_blueprint(tools_bp)

    @app.errorhandler(404)
    def not_found(_):
        return _error("Unknown endpoint", 404)

    return app
