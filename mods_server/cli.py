"""
Command-line entry point: serve the Mods directory, launch the browser
session and run the RPC server until interrupted.
"""

import argparse
import logging
import signal
import sys
from typing import List, Optional

from playwright.sync_api import Error as PlaywrightError

from mods_core.config import Settings
from mods_core.driver import Session
from mods_core.exceptions import ModsError
from mods_server.app import create_app
from mods_server.static_server import StaticServer

logger = logging.getLogger('mods_server')


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="mods-bridge",
        description="Drive a browser-rendered Mods CE editor over a JSON RPC interface.",
    )
    p.add_argument("--port", type=int, dest="static_port", help="Port for the Mods static file server")
    p.add_argument("--rpc-port", type=int, help="Port for the RPC server")
    p.add_argument("--mods-dir", help="Mods CE checkout to serve")
    p.add_argument("--headless", action="store_true", default=None, help="Run the browser headless")
    p.add_argument("--channel", dest="browser_channel", help="Browser channel, e.g. chrome")
    p.add_argument("--log-level", default="INFO", help="Logging level (default INFO)")
    return p


def _launch_session(settings: Settings) -> Optional[Session]:
    try:
        session = Session.launch(settings)
    except PlaywrightError as e:
        logger.error(f"Browser launch failed: {e}")
        logger.error('Run "playwright install chromium" to install browsers')
        return None
    try:
        session.open()
    except ModsError as e:
        logger.error(f"Editor did not initialize: {e.message}")
    return session


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format='[%(name)s] %(levelname)s %(message)s',
        stream=sys.stderr,
    )

    overrides = {k: v for k, v in vars(args).items() if k != 'log_level' and v is not None}
    settings = Settings.load(**overrides)

    static = StaticServer(settings.mods_dir, settings.static_port)
    static.start()
    session = _launch_session(settings)

    def _shutdown(signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        raise SystemExit(0)

    signal.signal(signal.SIGTERM, _shutdown)

    app = create_app(settings, session=session)
    logger.info(f"RPC server at http://localhost:{settings.rpc_port}/api/")
    try:
        # single-threaded: Playwright's sync API is bound to this thread
        app.run(host='127.0.0.1', port=settings.rpc_port, threaded=False, use_reloader=False)
    except KeyboardInterrupt:
        pass
    finally:
        if session is not None:
            session.close()
        static.stop()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
