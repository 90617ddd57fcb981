"""Browser automation session for script-rendered storefront pages.

This module wraps Playwright in a scoped resource:
- headless Chromium launched with container-safe flags
- a fresh, isolated context per session (no persisted cookies or storage)
- navigation that waits for network quiescence under an explicit bound
- teardown of page, context, browser and driver on every exit path

The session is the most expensive thing the service does, so callers
open one per extraction and never keep it across cycles.
"""

import asyncio
import random
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable, Self

from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    async_playwright,
)
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from config.settings import GlobalConfig, get_config
from usercount.exceptions import (
    AutomationLaunchError,
    ExtractionTimeoutError,
    FetchError,
)
from usercount.logger import get_logger

log = get_logger(__name__)

LAUNCH_ARGS = [
    "--disable-dev-shm-usage",
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-gpu",
    "--disable-extensions",
]


class BrowserManager:
    """Manages one Playwright browser session.

    Attributes:
        config: GlobalConfig instance for runtime configuration.
        _playwright: Playwright driver (initialized on context entry).
        _browser: Chromium browser instance.
        _context: Isolated BrowserContext.
        _pages: Pages opened through this manager, closed on teardown.

    Example:
        async with BrowserManager.create(config) as browser:
            page = await browser.new_page()
            await browser.navigate(page, "https://example.com")
    """

    def __init__(self, config: GlobalConfig) -> None:
        """Initialize BrowserManager with configuration.

        Note:
            Do not instantiate directly. Use the `create()` class method
            so teardown is guaranteed.
        """
        self.config = config
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._pages: list[Page] = []
        self._user_agent: str = random.choice(config.user_agents)

    @classmethod
    @asynccontextmanager
    async def create(
        cls, config: GlobalConfig | None = None
    ) -> AsyncGenerator[Self, None]:
        """Launch a session and tear it down when the block exits.

        Cleanup also runs when the block is cancelled, which is how a cycle
        timeout reclaims a hung session.

        Args:
            config: Optional GlobalConfig. Uses singleton if not provided.

        Yields:
            Initialized BrowserManager instance.

        Raises:
            AutomationLaunchError: If browser launch fails.
        """
        if config is None:
            config = get_config()

        instance = cls(config)
        try:
            await instance._initialize()
            yield instance
        finally:
            await instance._cleanup()

    async def _initialize(self) -> None:
        """Start the driver, browser and an isolated context.

        Raises:
            AutomationLaunchError: If any initialization step fails.
        """
        log.info("Launching automation browser", headless=self.config.headless)

        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.config.headless,
                args=LAUNCH_ARGS,
            )
            self._context = await self._browser.new_context(
                user_agent=self._user_agent,
                locale="en-US",
                java_script_enabled=True,
            )
        except Exception as exc:
            await self._cleanup()
            raise AutomationLaunchError(reason=str(exc), browser_type="chromium") from exc

        log.debug("Automation browser ready", user_agent=self._user_agent[:50] + "...")

    async def new_page(self) -> Page:
        """Create a page in the session's context.

        Raises:
            AutomationLaunchError: If the context is not initialized.
        """
        if self._context is None:
            raise AutomationLaunchError(
                reason="Browser context not initialized", browser_type="chromium"
            )

        page = await self._context.new_page()
        page.set_default_timeout(self.config.render_timeout_ms)
        page.set_default_navigation_timeout(self.config.render_timeout_ms)
        self._pages.append(page)
        return page

    async def navigate(
        self,
        page: Page,
        url: str,
        wait_until: str = "networkidle",
    ) -> None:
        """Navigate and wait until the page's network activity settles.

        Args:
            page: Playwright Page instance.
            url: Target URL to navigate to.
            wait_until: Navigation wait condition.

        Raises:
            ExtractionTimeoutError: If the wait exceeds ``render_timeout_ms``.
            FetchError: If navigation fails or returns a non-success status.
        """
        log.debug("Navigating to URL", url=url, wait_until=wait_until)

        try:
            response = await page.goto(
                url,
                wait_until=wait_until,
                timeout=self.config.render_timeout_ms,
            )
        except PlaywrightTimeoutError as exc:
            raise ExtractionTimeoutError(
                url=url, timeout_ms=self.config.render_timeout_ms
            ) from exc
        except Exception as exc:
            raise FetchError(url=url, reason=str(exc)) from exc

        if response is None:
            raise FetchError(url=url, reason="No response received")

        if response.status >= 400:
            raise FetchError(
                url=url,
                reason=f"HTTP {response.status}",
                status_code=response.status,
            )

        log.debug("Navigation successful", url=url, status_code=response.status)

    async def _close_step(self, label: str, closer: Callable[[], Awaitable[None]]) -> bool:
        """Run one teardown step under the close timeout.

        Returns:
            True if a cancellation arrived during the step. The cancellation
            is held back so the remaining steps still run.
        """
        try:
            await asyncio.wait_for(closer(), timeout=self.config.teardown_timeout_sec)
        except asyncio.CancelledError:
            log.warning("Cancelled while closing - finishing teardown", step=label)
            return True
        except asyncio.TimeoutError:
            log.warning(
                "Close step timed out",
                step=label,
                timeout_sec=self.config.teardown_timeout_sec,
            )
        except Exception as exc:
            log.warning("Error closing browser resource", step=label, error=str(exc))
        return False

    async def _cleanup(self) -> None:
        """Release pages, context, browser and driver in that order.

        Every step runs even if the task is cancelled meanwhile; the
        cancellation is re-raised once the driver is stopped.

        Raises:
            asyncio.CancelledError: If the task was cancelled during teardown.
        """
        cancelled = False

        pages, self._pages = self._pages, []
        for page in pages:
            cancelled |= await self._close_step("page", page.close)

        if self._context is not None:
            cancelled |= await self._close_step("context", self._context.close)
            self._context = None

        if self._browser is not None:
            cancelled |= await self._close_step("browser", self._browser.close)
            self._browser = None

        if self._playwright is not None:
            cancelled |= await self._close_step("driver", self._playwright.stop)
            self._playwright = None

        log.debug("Browser resources cleaned up")
        if cancelled:
            raise asyncio.CancelledError()

    @property
    def is_open(self) -> bool:
        """True while any part of the session is still held."""
        return any([
            self._playwright is not None,
            self._browser is not None,
            self._context is not None,
        ])
