"""Browser action execution on top of Playwright's async API.

Provides:
- ``open_browser_session``: launch a browser and yield one configured page,
  always closing both on exit
- ``BrowserActionExecutor``: perform a single scripted step with a retry
  budget, translating Playwright failures into ``ActionError`` kinds

Screenshots are written to the artifact store's screenshot directory.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from .artifacts import ArtifactStore
from .config import BrowserConfig
from .errors import ActionError, ActionTimeout, ElementNotFound, NavigationError
from .models import DEFAULT_WAIT_MS, ActionKind, Step
from .timeline import TimelineLogger

logger = logging.getLogger(__name__)


@asynccontextmanager
async def open_browser_session(
    config: BrowserConfig,
    headless: Optional[bool] = None,
) -> AsyncIterator[Page]:
    """Launch a browser and yield a fresh page sized to the configured viewport.

    Args:
        config: Browser settings.
        headless: Override ``config.headless`` (attended runs pass False).

    Yields:
        A Playwright page. Page and browser are closed when the block exits,
        whether it exits normally or by exception.
    """
    run_headless = config.headless if headless is None else headless
    async with async_playwright() as playwright:
        launcher = getattr(playwright, config.browser)
        logger.info(
            "Launching %s (headless=%s, viewport=%dx%d)",
            config.browser, run_headless, config.viewport_width, config.viewport_height,
        )
        browser = await launcher.launch(headless=run_headless, args=list(config.launch_args))
        try:
            page = await browser.new_page()
            try:
                await page.set_viewport_size(
                    {"width": config.viewport_width, "height": config.viewport_height}
                )
                yield page
            finally:
                await page.close()
        finally:
            await browser.close()


@dataclass
class ActionOutcome:
    """What a successfully executed action produced."""
    duration_ms: int
    attempts: int = 1
    screenshot: Optional[str] = None


def _as_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(float(value))
    except ValueError:
        return None


class BrowserActionExecutor:
    """Execute scripted steps against a live page.

    Example usage:
        executor = BrowserActionExecutor(store)
        async with open_browser_session(config.browser) as page:
            outcome = await executor.execute(page, step, "http://localhost:3000", 1)
    """

    def __init__(
        self,
        store: ArtifactStore,
        backoff_ms: int = 1000,
        timeline: Optional[TimelineLogger] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the executor.

        Args:
            store: Artifact store receiving screenshots.
            backoff_ms: Wait between a failed attempt and its retry.
            timeline: Optional timeline logger for retry events.
            sleep: Coroutine used for the backoff wait.
        """
        self.store = store
        self.backoff_ms = backoff_ms
        self.timeline = timeline
        self._sleep = sleep

    async def execute(self, page: Page, step: Step, base_url: str, position: int) -> ActionOutcome:
        """Perform ``step`` with its retry budget.

        Args:
            page: Live page.
            step: Step to perform.
            base_url: Scenario base URL (navigate target when no value).
            position: 1-based position of the step, used in screenshot names.

        Returns:
            ActionOutcome for the successful attempt.

        Raises:
            ActionError: When the last permitted attempt fails.
        """
        remaining = step.retries
        attempt = 0
        while True:
            attempt += 1
            start = time.monotonic()
            try:
                screenshot = await self._perform(page, step, base_url, position)
            except ActionError as e:
                if remaining <= 0:
                    raise
                remaining -= 1
                logger.warning(
                    "Step %d (%s) failed on attempt %d, retrying in %dms: %s",
                    position, step.action.value, attempt, self.backoff_ms, e,
                )
                if self.timeline:
                    self.timeline.action_retry(position - 1, step.action.value, attempt, str(e))
                await self._sleep(self.backoff_ms / 1000)
                continue

            return ActionOutcome(
                duration_ms=int((time.monotonic() - start) * 1000),
                attempts=attempt,
                screenshot=screenshot,
            )

    async def capture(self, page: Page, name: str) -> str:
        """Capture the viewport to ``<screenshots>/<name>.png`` and return the path."""
        path = self.store.screenshot_path(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        await page.screenshot(path=str(path), full_page=False)
        return str(path)

    async def _perform(self, page: Page, step: Step, base_url: str, position: int) -> Optional[str]:
        action = step.action
        timeout = step.timeout_ms

        if action == ActionKind.NAVIGATE:
            url = step.value or base_url
            try:
                await page.goto(url, wait_until="networkidle", timeout=timeout)
            except PlaywrightTimeoutError as e:
                raise ActionTimeout(f"Navigation to {url} timed out: {e.message}", action.value) from e
            except PlaywrightError as e:
                raise NavigationError(f"Navigation to {url} failed: {e.message}", action.value) from e
            return None

        if action == ActionKind.CLICK:
            await self._on_element(page, step, page.click(step.selector, timeout=timeout))
        elif action == ActionKind.HOVER:
            await self._on_element(page, step, page.hover(step.selector, timeout=timeout))
        elif action == ActionKind.TYPE:
            await self._on_element(page, step, page.fill(step.selector, step.value, timeout=timeout))
        elif action == ActionKind.SELECT:
            await self._on_element(
                page, step, page.select_option(step.selector, step.value, timeout=timeout)
            )
        elif action == ActionKind.SCROLL:
            await self._scroll(page, step)
        elif action == ActionKind.SCREENSHOT:
            try:
                return await self.capture(page, step.name or f"step-{position}")
            except PlaywrightError as e:
                raise ActionError(f"Screenshot failed: {e.message}", action.value) from e
        elif action == ActionKind.WAIT:
            wait_ms = _as_int(step.value)
            await page.wait_for_timeout(DEFAULT_WAIT_MS if wait_ms is None else wait_ms)
        return None

    async def _on_element(self, page: Page, step: Step, operation: Awaitable[None]) -> None:
        """Await a selector-based operation and classify its failure."""
        action = step.action.value
        try:
            await operation
        except PlaywrightTimeoutError as e:
            if not await self._resolves(page, step.selector):
                raise ElementNotFound(
                    f"Element not found: {step.selector}", action, step.selector
                ) from e
            raise ActionTimeout(
                f"{action} on {step.selector} timed out after {step.timeout_ms}ms",
                action,
                step.selector,
            ) from e
        except PlaywrightError as e:
            raise ActionError(f"{action} on {step.selector} failed: {e.message}", action, step.selector) from e

    async def _resolves(self, page: Page, selector: Optional[str]) -> bool:
        if not selector:
            return False
        try:
            return await page.query_selector(selector) is not None
        except PlaywrightError as e:
            logger.debug("Could not resolve %s: %s", selector, e)
            return False

    async def _scroll(self, page: Page, step: Step) -> None:
        offset = _as_int(step.value)
        try:
            if offset is not None:
                await page.evaluate(f"window.scrollTo(0, {offset})")
            elif step.selector:
                await page.locator(step.selector).scroll_into_view_if_needed(timeout=step.timeout_ms)
        except PlaywrightError as e:
            raise ActionError(f"scroll failed: {e.message}", step.action.value, step.selector) from e
