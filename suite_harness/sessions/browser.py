"""Browser execution contexts backed by Playwright."""

import logging
from collections.abc import AsyncGenerator, Awaitable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Literal

from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    async_playwright,
)
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from suite_harness.config import BrowserConfig, HarnessSettings
from suite_harness.errors import InteractionTimeout, ProvisioningError
from suite_harness.sessions.base import SessionManager, Snapshot
from suite_harness.sessions.manifest import SessionManifest

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class BrowserEngine:
    """A launched browser shared by every session of a run.

    Each test case gets its own isolated browsing context on top of it.
    """

    config: BrowserConfig
    browser: Browser = field(repr=False)

    @classmethod
    @asynccontextmanager
    async def launch(
        cls, config: BrowserConfig
    ) -> AsyncGenerator["BrowserEngine", None]:
        """Start Playwright and launch the configured browser for a run."""
        try:
            playwright = await async_playwright().start()
        except Exception as exc:
            raise ProvisioningError(f"Failed to start Playwright: {exc}") from exc

        try:
            browser = await _launch_browser(playwright, config)
        except Exception as exc:
            await playwright.stop()
            raise ProvisioningError(
                f"Failed to launch {config.browser_type}: {exc}"
            ) from exc

        log.info(
            "Launched %s (headless=%s, version=%s)",
            config.browser_type,
            config.headless,
            browser.version,
        )
        try:
            yield cls(config=config, browser=browser)
        finally:
            await _close_quietly(browser.close(), "browser")
            await _close_quietly(playwright.stop(), "playwright")
            log.info("Browser closed")


async def _launch_browser(playwright: Playwright, config: BrowserConfig) -> Browser:
    browser_type = getattr(playwright, config.browser_type)
    return await browser_type.launch(
        headless=config.headless,
        args=list(config.launch_args),
    )


async def _close_quietly(closing: Awaitable[None], what: str) -> None:
    try:
        await closing
    except Exception as exc:
        log.warning("Failed to close %s: %s", what, exc, exc_info=exc)


@dataclass(frozen=True, kw_only=True)
class BrowserHandle:
    """Page and browsing context of one test case.

    Interactions run in the order they are awaited. A Playwright timeout is
    raised as InteractionTimeout so it can be told apart from failed checks.
    """

    context: BrowserContext = field(repr=False)
    page: Page = field(repr=False)

    @property
    def url(self) -> str:
        return self.page.url

    async def goto(self, url: str) -> None:
        await self._interact(f"navigate to {url}", self.page.goto(url))

    async def click(self, selector: str) -> None:
        await self._interact(f"click {selector}", self.page.locator(selector).click())

    async def fill(self, selector: str, value: str) -> None:
        await self._interact(
            f"fill {selector}", self.page.locator(selector).fill(value)
        )

    async def press(self, selector: str, key: str) -> None:
        await self._interact(
            f"press {key} in {selector}", self.page.locator(selector).press(key)
        )

    async def text(self, selector: str) -> str:
        return await self._interact(
            f"read text of {selector}", self.page.locator(selector).inner_text()
        )

    async def is_visible(self, selector: str) -> bool:
        return await self._interact(
            f"check visibility of {selector}", self.page.locator(selector).is_visible()
        )

    async def wait_for(
        self,
        selector: str,
        state: Literal["attached", "detached", "hidden", "visible"] = "visible",
    ) -> None:
        await self._interact(
            f"wait for {selector} to be {state}",
            self.page.locator(selector).wait_for(state=state),
        )

    async def title(self) -> str:
        return await self._interact("read page title", self.page.title())

    async def screenshot(self) -> bytes:
        """Capture the full page as PNG."""
        return await self._interact(
            "capture screenshot", self.page.screenshot(full_page=True)
        )

    @staticmethod
    async def _interact[R](action: str, operation: Awaitable[R]) -> R:
        try:
            return await operation
        except PlaywrightTimeoutError as exc:
            raise InteractionTimeout(f"Timed out trying to {action}: {exc}") from exc


@dataclass(kw_only=True)
class BrowserSessionManager(SessionManager[BrowserHandle]):
    """Creates one browsing context and page per test case on a shared engine."""

    engine: BrowserEngine

    @classmethod
    @asynccontextmanager
    async def from_settings(
        cls, settings: HarnessSettings
    ) -> AsyncGenerator["BrowserSessionManager", None]:
        """Create a manager with an engine scoped to the block."""
        async with BrowserEngine.launch(settings.browser) as engine:
            yield cls(engine=engine, artifacts_dir=settings.run.artifacts_dir)

    async def open_handle(self, label: str) -> BrowserHandle:
        """Open a browsing context and page, then navigate to the entry URL."""
        config = self.engine.config
        try:
            context = await self.engine.browser.new_context(
                viewport={
                    "width": config.viewport_width,
                    "height": config.viewport_height,
                },
                ignore_https_errors=config.ignore_https_errors,
            )
        except Exception as exc:
            raise ProvisioningError(
                f"Failed to create browsing context for {label}: {exc}"
            ) from exc

        try:
            page = await context.new_page()
            page.set_default_timeout(config.default_timeout_ms)
            page.set_default_navigation_timeout(config.navigation_timeout_ms)
            if config.entry_url:
                await page.goto(config.entry_url)
        except Exception as exc:
            await _close_quietly(context.close(), "browsing context")
            raise ProvisioningError(f"Failed to open page for {label}: {exc}") from exc

        log.info("Browser context initialized for %s", label)
        return BrowserHandle(context=context, page=page)

    async def close_handle(self, handle: BrowserHandle) -> None:
        """Close the page, then its browsing context."""
        await _close_quietly(handle.page.close(), "page")
        await handle.context.close()

    async def snapshot(self, handle: BrowserHandle) -> Snapshot:
        """Take a full-page screenshot."""
        return Snapshot(content=await handle.screenshot(), extension="png")


browser_manifest = SessionManifest(
    kind="browser",
    session_factory=BrowserSessionManager.from_settings,
)
