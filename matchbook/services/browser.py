import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any

from playwright.async_api import async_playwright, Browser, BrowserContext, Page

from matchbook.config import Settings, settings as default_settings
from matchbook.core.exceptions import BrowserLaunchError
from matchbook.core.metrics import (
    active_browser_pages,
    browser_evictions_total,
    browser_launches_total,
)

logger = logging.getLogger(__name__)

# A launcher starts the driver and the browser and returns both, so the
# manager can stop them together. Tests pass a fake returning (None, browser).
Launcher = Callable[[], Awaitable[tuple[Any, Browser]]]

DEFAULT_VIEWPORT = {"width": 1366, "height": 900}


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    STARTING = "starting"
    READY = "ready"
    CLOSING = "closing"


class BrowserSessionManager:
    """Owns one lazily launched headless Chromium shared by all scrapes.

    The browser is started on first use and closed again once it has been
    idle for ``BROWSER_IDLE_TIMEOUT`` seconds with no pages open, so a
    long-running process does not hold a browser between sporadic requests.
    Each caller gets its own context and page through :meth:`page`.
    """

    # Constrained sandbox hosts (containers, serverless) have no user
    # namespaces and a tiny /dev/shm.
    _PRODUCTION_ARGS = [
        "--no-sandbox",
        "--disable-setuid-sandbox",
        "--disable-dev-shm-usage",
        "--disable-gpu",
        "--single-process",
        "--no-zygote",
    ]
    _DEVELOPMENT_ARGS = [
        "--no-sandbox",
        "--disable-dev-shm-usage",
        "--disable-gpu",
    ]

    def __init__(
        self,
        settings: Settings | None = None,
        launcher: Launcher | None = None,
        clock: Callable[[], float] | None = None,
    ):
        self._settings = settings or default_settings
        self._launcher = launcher or self._launch_chromium
        self._clock = clock or time.monotonic
        self._playwright = None
        self._browser: Browser | None = None
        self._lock: asyncio.Lock | None = None
        self._loop = None
        self._idle_task: asyncio.Task | None = None
        self._open_pages = 0
        self.state = SessionState.UNINITIALIZED
        self.last_used = 0.0

    @property
    def open_pages(self) -> int:
        return self._open_pages

    def _get_lock(self) -> asyncio.Lock:
        """Get or create an asyncio.Lock bound to the current event loop."""
        current_loop = asyncio.get_running_loop()
        if self._lock is None or self._loop is not current_loop:
            self._lock = asyncio.Lock()
            self._loop = current_loop
        return self._lock

    def launch_args(self) -> list[str]:
        if self._settings.is_production:
            return list(self._PRODUCTION_ARGS)
        return list(self._DEVELOPMENT_ARGS)

    async def _launch_chromium(self) -> tuple[Any, Browser]:
        playwright = await async_playwright().start()
        launch_kwargs: dict[str, Any] = {
            "headless": self._settings.BROWSER_HEADLESS,
            "args": self.launch_args(),
        }
        if self._settings.BROWSER_EXECUTABLE_PATH:
            launch_kwargs["executable_path"] = self._settings.BROWSER_EXECUTABLE_PATH
        try:
            browser = await playwright.chromium.launch(**launch_kwargs)
        except Exception as e:
            await playwright.stop()
            raise BrowserLaunchError(f"Chromium launch failed: {e}") from e
        return playwright, browser

    def _is_ready(self) -> bool:
        return (
            self.state == SessionState.READY
            and self._browser is not None
            and self._browser.is_connected()
        )

    async def acquire(self) -> Browser:
        """Return the shared browser, launching it if needed."""
        self.last_used = self._clock()
        if self._is_ready():
            return self._browser

        async with self._get_lock():
            # Double-check after acquiring lock
            if self._is_ready():
                return self._browser

            if self._browser is not None:
                logger.warning("Browser disconnected, discarding and relaunching")
                await self._close_browser()

            self.state = SessionState.STARTING
            try:
                self._playwright, self._browser = await self._launcher()
            except BaseException:
                self.state = SessionState.UNINITIALIZED
                self._playwright = None
                self._browser = None
                raise

            self.state = SessionState.READY
            self.last_used = self._clock()
            browser_launches_total.inc()
            logger.info(
                f"Browser launched (production={self._settings.is_production}, "
                f"headless={self._settings.BROWSER_HEADLESS})"
            )
            self._ensure_idle_task()
            return self._browser

    @asynccontextmanager
    async def page(
        self,
        user_agent: str | None = None,
        cookies: list[dict] | None = None,
    ):
        """Yield a fresh page in its own browser context.

        The page and context are closed on every exit path, including
        cancellation.
        """
        browser = await self.acquire()
        self._open_pages += 1
        active_browser_pages.inc()
        context: BrowserContext | None = None
        page: Page | None = None
        try:
            context_kwargs: dict[str, Any] = {
                "viewport": DEFAULT_VIEWPORT,
                "locale": "en-US",
            }
            if user_agent:
                context_kwargs["user_agent"] = user_agent
            context = await browser.new_context(**context_kwargs)
            if cookies:
                await context.add_cookies(cookies)
            page = await context.new_page()
            yield page
        finally:
            # Shield cleanup from cancellation to prevent resource leaks.
            try:
                await asyncio.shield(self._safe_cleanup_page(page, context))
            except (asyncio.CancelledError, Exception):
                # the shielded cleanup keeps running in the background
                pass
            self._open_pages -= 1
            active_browser_pages.dec()
            self.last_used = self._clock()

    async def _safe_cleanup_page(
        self, page: Page | None, context: BrowserContext | None
    ):
        """Cleanup page and context, safe against cancellation."""
        if page is not None:
            try:
                await page.close()
            except Exception as e:
                logger.debug(f"Page close failed: {e}")
        if context is not None:
            try:
                await context.close()
            except Exception as e:
                logger.debug(f"Context close failed: {e}")

    # ------------------------------------------------------------------
    # Idle eviction
    # ------------------------------------------------------------------

    def _ensure_idle_task(self):
        if self._idle_task is None or self._idle_task.done():
            self._idle_task = asyncio.create_task(self._idle_loop())

    async def _idle_loop(self):
        interval = self._settings.BROWSER_IDLE_CHECK_INTERVAL
        while self._browser is not None:
            await asyncio.sleep(interval)
            try:
                await self.evict_if_idle()
            except Exception as e:
                logger.warning(f"Idle browser check failed: {e}")

    async def evict_if_idle(self) -> bool:
        """Close the browser if it has been idle too long. Returns True if closed."""
        async with self._get_lock():
            if self._browser is None or self.state != SessionState.READY:
                return False
            if self._open_pages > 0:
                return False
            idle_for = self._clock() - self.last_used
            if idle_for <= self._settings.BROWSER_IDLE_TIMEOUT:
                return False

            self.state = SessionState.CLOSING
            logger.info(f"Closing browser after {idle_for:.0f}s idle")
            await self._close_browser()
            browser_evictions_total.inc()
            return True

    async def _close_browser(self):
        browser, playwright = self._browser, self._playwright
        self._browser = None
        self._playwright = None
        if browser is not None and browser.is_connected():
            try:
                await browser.close()
            except Exception as e:
                logger.warning(f"Browser close failed: {e}")
        if playwright is not None:
            try:
                await playwright.stop()
            except Exception as e:
                logger.warning(f"Playwright stop failed: {e}")
        self.state = SessionState.UNINITIALIZED

    async def shutdown(self):
        if self._idle_task is not None and not self._idle_task.done():
            self._idle_task.cancel()
            try:
                await self._idle_task
            except asyncio.CancelledError:
                pass
        self._idle_task = None

        if self._browser is not None or self._playwright is not None:
            self.state = SessionState.CLOSING
            await self._close_browser()
            logger.info("Browser session shut down")
        self.state = SessionState.UNINITIALIZED


browser_manager = BrowserSessionManager()
