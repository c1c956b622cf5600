"""
Rendered-page abstraction.

The session driver and state reader talk to the browser only through
RenderedPage.  PlaywrightPage is the production implementation (Playwright
sync API, Chromium); tests substitute an in-memory fake.

Playwright's sync objects are bound to the thread that started them, and
browser events (downloads) are only dispatched while a Playwright call is
running, so every wait goes through ``settle`` / ``wait_until`` rather than
``time.sleep``.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from playwright.sync_api import sync_playwright
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from .exceptions import NavigationTimeoutError, PageError
from .models import CapturedDownload

logger = logging.getLogger(__name__)


def file_input_selector(module_id: str) -> str:
    """Selector for a module's file control.

    Module ids are fractional numbers (``0.123``); an attribute selector
    avoids escaping the dot that ``#0.123`` would need.
    """
    return f'[id="{module_id}"] input[type="file"]'


def _script_context(script: str) -> str:
    """Opening lines of a page script, for error context."""
    lines = [line.strip() for line in script.strip().splitlines() if line.strip()]
    return ' '.join(lines[:2])[:120]


class RenderedPage(ABC):
    """Capabilities the core needs from a browser page."""

    @abstractmethod
    def navigate(self, url: str, timeout: float) -> None:
        """Load a URL and wait for the page's load event."""

    @abstractmethod
    def evaluate(self, script: str, arg: Any = None) -> Any:
        """Run a JavaScript function in the page and return its JSON result."""

    @abstractmethod
    def wait_until(self, predicate: str, timeout: float, condition: str = '') -> None:
        """Block until the JavaScript predicate is truthy.

        Raises NavigationTimeoutError when ``timeout`` seconds pass first,
        PageError when the page itself fails.
        """

    @abstractmethod
    def settle(self, seconds: float) -> None:
        """Fixed delay that keeps the page's event loop running."""

    @abstractmethod
    def locate_file_input(self, module_id: str) -> Optional[Any]:
        """Handle for a module's file control, or None."""

    @abstractmethod
    def attach_file(self, handle: Any, path: str) -> None:
        """Attach a local file to a file control handle."""

    @abstractmethod
    def on_download(self, callback: Callable[[CapturedDownload], None]) -> None:
        """Register a callback for every download the page triggers."""

    @abstractmethod
    def close(self) -> None:
        """Release the page and its browser."""


class PlaywrightPage(RenderedPage):
    """RenderedPage backed by a Playwright sync page."""

    def __init__(self, page, browser=None, playwright=None):
        self._page = page
        self._browser = browser
        self._playwright = playwright

    @classmethod
    def launch(cls, headless: bool = False, channel: str = '') -> "PlaywrightPage":
        playwright = sync_playwright().start()
        options = {'headless': headless}
        if channel:
            options['channel'] = channel
        try:
            browser = playwright.chromium.launch(**options)
        except PlaywrightError:
            playwright.stop()
            raise
        context = browser.new_context(accept_downloads=True)
        page = context.new_page()
        logger.info(f"Browser launched ({'headless' if headless else 'headed'})")
        return cls(page, browser, playwright)

    def navigate(self, url: str, timeout: float) -> None:
        try:
            self._page.goto(url, wait_until='load', timeout=timeout * 1000)
        except PlaywrightTimeoutError:
            raise NavigationTimeoutError(f"Timed out loading {url}", 'page load', timeout, {'url': url})
        except PlaywrightError as e:
            raise PageError(f"Could not load {url}: {e.message}", url, {'url': url})

    def evaluate(self, script: str, arg: Any = None) -> Any:
        try:
            return self._page.evaluate(script, arg)
        except PlaywrightError as e:
            raise PageError(f"Page script failed: {e.message}", _script_context(script),
                            {'script': _script_context(script)})

    def wait_until(self, predicate: str, timeout: float, condition: str = '') -> None:
        try:
            self._page.wait_for_function(predicate, timeout=timeout * 1000)
        except PlaywrightTimeoutError:
            raise NavigationTimeoutError(
                f"Timed out after {timeout}s waiting for {condition or 'page condition'}",
                condition, timeout)
        except PlaywrightError as e:
            condition = condition or 'page condition'
            raise PageError(f"Page failed while waiting for {condition}: {e.message}", condition,
                            {'condition': condition})

    def settle(self, seconds: float) -> None:
        if seconds > 0:
            self._page.wait_for_timeout(seconds * 1000)

    def locate_file_input(self, module_id: str) -> Optional[Any]:
        locator = self._page.locator(file_input_selector(module_id))
        if locator.count() == 0:
            return None
        return locator.first

    def attach_file(self, handle: Any, path: str) -> None:
        try:
            handle.set_input_files(path)
        except PlaywrightError as e:
            raise PageError(f"Could not attach {path}: {e.message}", path, {'file': path})

    def on_download(self, callback: Callable[[CapturedDownload], None]) -> None:
        def handler(download):
            def load() -> Optional[bytes]:
                path = download.path()
                if not path:
                    return None
                with open(path, 'rb') as f:
                    return f.read()

            logger.info(f"Captured download: {download.suggested_filename}")
            callback(CapturedDownload(
                suggested_filename=download.suggested_filename,
                timestamp=time.time(),
                loader=load,
            ))

        self._page.on('download', handler)

    def close(self) -> None:
        if self._browser is not None:
            self._browser.close()
            self._browser = None
        if self._playwright is not None:
            self._playwright.stop()
            self._playwright = None
        logger.info("Browser closed")
