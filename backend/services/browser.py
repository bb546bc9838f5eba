"""Browser session controller — one headless Chromium page for all jobs."""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from playwright.async_api import async_playwright

from errors import CannotOpenPageError, CaptureError, NavigationError, ResourceError
from models import CaptureFrame, CaptureJob, NavigationKind, SessionState
from services.hass_page import HomeAssistantPage
from services.operation_queue import OperationQueue

logger = logging.getLogger(__name__)

# Dashboard top bar, cut off from every capture
HEADER_HEIGHT = 56

PAGE_CHANGE_SETTLE_SECONDS = 0.5

# From https://www.bannerbear.com/blog/ways-to-speed-up-puppeteer-screenshots/
CHROMIUM_ARGS = [
    "--autoplay-policy=user-gesture-required",
    "--disable-background-networking",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-breakpad",
    "--disable-client-side-phishing-detection",
    "--disable-component-update",
    "--disable-default-apps",
    "--disable-dev-shm-usage",
    "--disable-domain-reliability",
    "--disable-extensions",
    "--disable-features=AudioServiceOutOfProcess",
    "--disable-hang-monitor",
    "--disable-ipc-flooding-protection",
    "--disable-notifications",
    "--disable-offer-store-unmasked-wallet-cards",
    "--disable-popup-blocking",
    "--disable-print-preview",
    "--disable-prompt-on-repost",
    "--disable-renderer-backgrounding",
    "--disable-setuid-sandbox",
    "--disable-speech-api",
    "--disable-sync",
    "--hide-scrollbars",
    "--ignore-gpu-blacklist",
    "--metrics-recording-only",
    "--mute-audio",
    "--no-default-browser-check",
    "--no-first-run",
    "--no-pings",
    "--no-sandbox",
    "--no-zygote",
    "--password-store=basic",
    "--use-gl=swiftshader",
    "--use-mock-keychain",
]

# Frontend errors that do not affect what ends up on screen
SUPPRESSED_PAGE_ERRORS = (
    "undefined",
    "Object",
    "Failed to set an indexed property",
    "CSSStyleDeclaration",
)

Launcher = Callable[[], Awaitable[tuple[Any, Any]]]


def header_height(zoom: float) -> int:
    return round(HEADER_HEIGHT * zoom)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _on_page_error(error) -> None:
    message = str(error)
    if any(noise in message for noise in SUPPRESSED_PAGE_ERRORS):
        logger.debug("Page error (suppressed): %s", message)
    else:
        logger.error("Page error: %s", message)


def _on_request_failed(request) -> None:
    logger.debug("Request failed: %s %s", request.failure, request.url)


class Browser:
    """
    Owns the single browser/page pair and the session cache.

    Every public operation goes through one OperationQueue. A job's
    navigation and its capture run as one queued unit, so no other job can
    move the page in between.
    """

    def __init__(
        self,
        hass_url: str,
        token: str,
        *,
        page_strategy: Optional[HomeAssistantPage] = None,
        launcher: Optional[Launcher] = None,
        executable_path: Optional[str] = None,
        is_addon: bool = False,
    ):
        self.strategy = page_strategy or HomeAssistantPage(hass_url, token)
        self.executable_path = executable_path or None
        self.is_addon = is_addon
        self.state = SessionState()
        self.settle_seconds = PAGE_CHANGE_SETTLE_SECONDS
        self._launcher = launcher or self._launch_chromium
        self._queue = OperationQueue()
        self._playwright = None
        self._browser = None
        self._page = None
        self._auth_installed = False

    @property
    def queue(self) -> OperationQueue:
        return self._queue

    # ── Lifecycle ───────────────────────────────────────────────

    async def _launch_chromium(self) -> tuple[Any, Any]:
        args = list(CHROMIUM_ARGS)
        if self.is_addon:
            args.append("--enable-low-end-device-mode")

        self._playwright = await async_playwright().start()
        browser = await self._playwright.chromium.launch(
            headless=True,
            executable_path=self.executable_path,
            args=args,
        )
        page = await browser.new_page()
        page.on("pageerror", _on_page_error)
        page.on("requestfailed", _on_request_failed)
        return browser, page

    async def _get_page(self):
        if self._page is not None:
            return self._page

        logger.info("Starting Chromium browser")
        try:
            browser, page = await self._launcher()
        except Exception as e:
            # Not recoverable here; the service supervisor restarts us
            logger.error("Failed to launch browser: %s", e)
            await self._stop_playwright()
            raise ResourceError(f"Failed to launch browser: {e}") from e

        self._browser = browser
        self._page = page
        self._auth_installed = False
        return page

    async def _stop_playwright(self) -> None:
        if self._playwright is None:
            return
        try:
            await self._playwright.stop()
        except Exception as e:
            logger.debug("Error stopping Playwright: %s", e)
        self._playwright = None

    async def shutdown(self) -> None:
        """Stop accepting work, let queued work finish, then close everything."""
        self._queue.close()
        await self._queue.join()

        page, browser = self._page, self._browser
        self._page = None
        self._browser = None
        self.state.clear()

        if page is not None:
            try:
                await page.close()
            except Exception as e:
                logger.debug("Error closing page during cleanup: %s", e)
        if browser is not None:
            try:
                await browser.close()
            except Exception as e:
                logger.debug("Error closing browser during cleanup: %s", e)
        await self._stop_playwright()
        logger.debug("Browser closed")

    async def _discard_dead_page(self) -> None:
        """Forget a crashed or closed page so the next operation relaunches."""
        page, browser = self._page, self._browser
        if page is None:
            return
        if not page.is_closed() and (browser is None or browser.is_connected()):
            return

        logger.warning("Browser page is gone, relaunching on next request")
        self._page = None
        self._browser = None
        self.state.clear()
        if browser is not None:
            try:
                await browser.close()
            except Exception as e:
                logger.debug("Error closing dead browser: %s", e)
        await self._stop_playwright()

    # ── Public operations ───────────────────────────────────────

    async def navigate_and_capture(self, job: CaptureJob) -> CaptureFrame:
        """Navigate to ``job.path`` and capture it, as one queued unit."""

        async def unit() -> CaptureFrame:
            logger.info("[ATOMIC] %s: navigate+capture %s", job.name, job.path)
            kind, navigate_ms = await self._navigate(job)
            start = time.monotonic()
            image = await self._capture(job)
            return CaptureFrame(
                image=image,
                navigation=kind,
                navigate_ms=navigate_ms,
                capture_ms=_elapsed_ms(start),
            )

        return await self._queue.enqueue(unit)

    # ── Navigation ──────────────────────────────────────────────

    async def _install_auth(self, page) -> None:
        # Playwright re-runs init scripts on every new document, so one
        # registration covers all later full loads of this page.
        if self._auth_installed:
            return
        await page.add_init_script(script=self.strategy.auth_script())
        self._auth_installed = True

    async def _open(self, page, path: str, **goto_kwargs) -> None:
        url = self.strategy.page_url(path)
        await self._install_auth(page)
        response = await page.goto(url, **goto_kwargs)
        if response is not None and not response.ok:
            raise CannotOpenPageError(response.status, url)

    async def _navigate(self, job: CaptureJob) -> tuple[NavigationKind, int]:
        try:
            return await self._navigate_page(job)
        except Exception as e:
            self.state.reset_path()
            await self._discard_dead_page()
            if isinstance(e, (NavigationError, ResourceError)):
                raise
            raise NavigationError(f"Navigation to {job.path} failed: {e}") from e

    async def _navigate_page(self, job: CaptureJob) -> tuple[NavigationKind, int]:
        start = time.monotonic()
        state = self.state
        logger.info("[NAV] Request to navigate to: %s, last path: %s", job.path, state.last_path)

        page = await self._get_page()

        viewport = {
            "width": job.viewport.width,
            "height": job.viewport.height + header_height(job.zoom),
        }
        if page.viewport_size != viewport:
            await page.set_viewport_size(viewport)

        default_wait = 2000 if self.is_addon else 1000

        if state.last_path is None:
            kind = NavigationKind.FIRST_LOAD
            await self._open(page, job.path)
            state.mark_reloaded()
            # Cold start needs more time for cards to render
            if self.is_addon:
                default_wait += 5000
        elif state.last_path != job.path:
            kind = NavigationKind.PAGE_CHANGE
            # Client-side routing does not reliably switch dashboard views
            logger.debug("Navigating from %s to %s", state.last_path, job.path)
            await self._open(page, job.path, wait_until="networkidle")
            state.mark_reloaded()
            default_wait = 3000 if self.is_addon else 2000
        else:
            kind = NavigationKind.SAME_PAGE
            default_wait = 0

        state.last_path = job.path

        if kind is not NavigationKind.FIRST_LOAD and await self.strategy.dismiss_update_toast(page):
            default_wait += 1000
        await self.strategy.set_zoom(page, job.zoom)

        if not await self.strategy.wait_until_ready(page):
            logger.warning("Timeout waiting for dashboard to finish loading")

        if kind is NavigationKind.PAGE_CHANGE:
            await asyncio.sleep(self.settle_seconds)

        if job.lang != state.last_lang:
            await self.strategy.select_language(page, job.lang or "en")
            state.last_lang = job.lang
            default_wait += 1000

        if job.theme != state.last_theme or job.dark != state.last_dark_mode:
            await self.strategy.set_theme(page, job.theme or "", job.dark)
            state.last_theme = job.theme
            state.last_dark_mode = job.dark
            default_wait += 500

        wait_ms = job.extra_wait_ms if job.extra_wait_ms is not None else default_wait
        if wait_ms:
            await asyncio.sleep(wait_ms / 1000)

        elapsed = _elapsed_ms(start)
        logger.info("[NAV] %s navigation complete, took %dms", kind.value, elapsed)
        return kind, elapsed

    # ── Capture ─────────────────────────────────────────────────

    async def _capture(self, job: CaptureJob) -> bytes:
        offset = header_height(job.zoom)
        try:
            if self._page is None:
                raise CaptureError("No page to capture")
            image = await self._page.screenshot(
                type="png",
                clip={
                    "x": 0,
                    "y": offset,
                    "width": job.viewport.width,
                    "height": job.viewport.height,
                },
            )
        except Exception as e:
            # Force a full page load on the next request
            self.state.reset_path()
            await self._discard_dead_page()
            if isinstance(e, CaptureError):
                raise
            raise CaptureError(f"Screenshot of {job.path} failed: {e}") from e

        logger.debug("[SCREENSHOT] %s: %d bytes", job.name, len(image))
        return image
