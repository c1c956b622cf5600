"""
Static file server for the Mods directory.

Runs in its own thread so the browser can keep fetching the editor and
module scripts while the RPC server is blocked inside a Playwright call.
"""

import logging
import os
import threading
from typing import Optional

from flask import Flask, abort, send_from_directory
from werkzeug.serving import make_server

logger = logging.getLogger(__name__)


def create_static_app(root: str) -> Flask:
    """Flask app that serves ``root``, with ``index.html`` for directories."""
    root = os.path.abspath(root)
    app = Flask(__name__, static_folder=None)

    @app.route('/', defaults={'path': ''})
    @app.route('/<path:path>')
    def serve(path):
        full = os.path.abspath(os.path.join(root, path))
        if full != root and not full.startswith(root + os.sep):
            abort(403)
        if os.path.isdir(full):
            path = os.path.join(path, 'index.html')
        return send_from_directory(root, path)

    return app


class StaticServer:
    """Threaded HTTP server around create_static_app."""

    def __init__(self, root: str, port: int, host: str = '127.0.0.1'):
        self.root = root
        self.port = port
        self.host = host
        self._server = None
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self._server = make_server(self.host, self.port, create_static_app(self.root), threaded=True)
        self._thread = threading.Thread(target=self._server.serve_forever, name='mods-static', daemon=True)
        self._thread.start()
        logger.info(f"Serving {self.root} at http://localhost:{self.port}/")

    def stop(self) -> None:
        if self._server is not None:
            self._server.shutdown()
            self._server = None
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
