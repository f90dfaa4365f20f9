"""Unit tests for the browser action executor.

Tests for:
- Playwright calls made for each action kind
- Failure classification (timeout, missing element, navigation)
- The retry budget and its backoff waits
"""

from __future__ import annotations

from pathlib import Path
from typing import List

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from eyes_orchestrator.artifacts import ArtifactStore
from eyes_orchestrator.browser import BrowserActionExecutor
from eyes_orchestrator.errors import ActionTimeout, ElementNotFound, NavigationError
from eyes_orchestrator.models import ActionKind, Step
from eyes_orchestrator.timeline import EventType, TimelineLogger


class RecordingSleep:
    """Stands in for asyncio.sleep and records requested delays."""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def executor(store: ArtifactStore, sleep: RecordingSleep) -> BrowserActionExecutor:
    return BrowserActionExecutor(store, backoff_ms=1000, sleep=sleep)


class TestActions:
    """Each action drives the expected page call."""

    @pytest.mark.asyncio
    async def test_navigate_defaults_to_base_url(self, executor, fake_page):
        await executor.execute(fake_page, Step(ActionKind.NAVIGATE), "http://app", 1)

        fake_page.goto.assert_awaited_once_with(
            "http://app", wait_until="networkidle", timeout=30000,
        )

    @pytest.mark.asyncio
    async def test_navigate_uses_step_value(self, executor, fake_page):
        await executor.execute(fake_page, Step(ActionKind.NAVIGATE, value="http://app/login"), "http://app", 1)
        assert fake_page.goto.await_args.args[0] == "http://app/login"

    @pytest.mark.asyncio
    async def test_click_uses_default_timeout(self, executor, fake_page):
        await executor.execute(fake_page, Step(ActionKind.CLICK, selector="#go"), "http://app", 2)
        fake_page.click.assert_awaited_once_with("#go", timeout=5000)

    @pytest.mark.asyncio
    async def test_type_and_select(self, executor, fake_page):
        await executor.execute(fake_page, Step(ActionKind.TYPE, selector="#q", value="hi"), "http://app", 1)
        await executor.execute(fake_page, Step(ActionKind.SELECT, selector="#s", value="b", timeout=50), "http://app", 2)

        fake_page.fill.assert_awaited_once_with("#q", "hi", timeout=5000)
        fake_page.select_option.assert_awaited_once_with("#s", "b", timeout=50)

    @pytest.mark.asyncio
    async def test_scroll_to_offset(self, executor, fake_page):
        await executor.execute(fake_page, Step(ActionKind.SCROLL, value="400"), "http://app", 1)
        fake_page.evaluate.assert_awaited_once_with("window.scrollTo(0, 400)")

    @pytest.mark.asyncio
    async def test_scroll_element_into_view(self, executor, fake_page):
        await executor.execute(fake_page, Step(ActionKind.SCROLL, selector="#footer"), "http://app", 1)

        fake_page.locator.assert_called_once_with("#footer")
        fake_page.locator.return_value.scroll_into_view_if_needed.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_scroll_without_target_is_noop(self, executor, fake_page):
        outcome = await executor.execute(fake_page, Step(ActionKind.SCROLL), "http://app", 1)

        assert outcome.attempts == 1
        fake_page.evaluate.assert_not_awaited()
        fake_page.locator.assert_not_called()

    @pytest.mark.asyncio
    async def test_wait_defaults_to_one_second(self, executor, fake_page):
        await executor.execute(fake_page, Step(ActionKind.WAIT), "http://app", 1)
        await executor.execute(fake_page, Step(ActionKind.WAIT, value="250"), "http://app", 2)

        assert [c.args[0] for c in fake_page.wait_for_timeout.await_args_list] == [1000, 250]

    @pytest.mark.asyncio
    async def test_screenshot_named_by_position(self, executor, fake_page, store):
        outcome = await executor.execute(fake_page, Step(ActionKind.SCREENSHOT), "http://app", 3)

        assert outcome.screenshot == str(store.screenshots_dir / "step-3.png")
        assert Path(outcome.screenshot).exists()
        assert fake_page.screenshot.await_args.kwargs["full_page"] is False

    @pytest.mark.asyncio
    async def test_screenshot_uses_step_name(self, executor, fake_page, store):
        outcome = await executor.execute(fake_page, Step(ActionKind.SCREENSHOT, name="home"), "http://app", 1)
        assert Path(outcome.screenshot).name == "home.png"


class TestFailureClassification:
    """Playwright errors map onto action error kinds."""

    @pytest.mark.asyncio
    async def test_missing_element(self, executor, fake_page):
        fake_page.click.side_effect = PlaywrightTimeoutError("Timeout 5000ms exceeded")
        fake_page.query_selector.return_value = None

        with pytest.raises(ElementNotFound) as exc_info:
            await executor.execute(fake_page, Step(ActionKind.CLICK, selector="#ghost"), "http://app", 1)

        assert exc_info.value.selector == "#ghost"

    @pytest.mark.asyncio
    async def test_present_but_stuck_element_times_out(self, executor, fake_page):
        fake_page.hover.side_effect = PlaywrightTimeoutError("Timeout 5000ms exceeded")

        with pytest.raises(ActionTimeout):
            await executor.execute(fake_page, Step(ActionKind.HOVER, selector="#menu"), "http://app", 1)

    @pytest.mark.asyncio
    async def test_navigation_timeout(self, executor, fake_page):
        fake_page.goto.side_effect = PlaywrightTimeoutError("Timeout 30000ms exceeded")

        with pytest.raises(ActionTimeout):
            await executor.execute(fake_page, Step(ActionKind.NAVIGATE), "http://app", 1)

    @pytest.mark.asyncio
    async def test_navigation_error(self, executor, fake_page):
        fake_page.goto.side_effect = PlaywrightError("net::ERR_CONNECTION_REFUSED")

        with pytest.raises(NavigationError, match="ERR_CONNECTION_REFUSED"):
            await executor.execute(fake_page, Step(ActionKind.NAVIGATE), "http://app", 1)


class TestRetries:
    """The retry budget and backoff."""

    @pytest.mark.asyncio
    async def test_fail_r_times_then_succeed_waits_r_times(self, executor, fake_page, sleep):
        fake_page.click.side_effect = [
            PlaywrightTimeoutError("t1"),
            PlaywrightTimeoutError("t2"),
            None,
        ]

        outcome = await executor.execute(
            fake_page, Step(ActionKind.CLICK, selector="#go", retries=2), "http://app", 1,
        )

        assert outcome.attempts == 3
        assert sleep.calls == [1.0, 1.0]
        assert fake_page.click.await_count == 3

    @pytest.mark.asyncio
    async def test_budget_exhausted_propagates(self, executor, fake_page, sleep):
        fake_page.click.side_effect = PlaywrightTimeoutError("always")

        with pytest.raises(ActionTimeout):
            await executor.execute(
                fake_page, Step(ActionKind.CLICK, selector="#go", retries=1), "http://app", 1,
            )

        assert fake_page.click.await_count == 2
        assert sleep.calls == [1.0]

    @pytest.mark.asyncio
    async def test_no_retries_no_backoff(self, executor, fake_page, sleep):
        fake_page.goto.side_effect = PlaywrightError("boom")

        with pytest.raises(NavigationError):
            await executor.execute(fake_page, Step(ActionKind.NAVIGATE), "http://app", 1)

        assert sleep.calls == []

    @pytest.mark.asyncio
    async def test_retries_recorded_on_timeline(self, store, fake_page, sleep, temp_dir):
        timeline = TimelineLogger(temp_dir / "timeline.jsonl")
        executor = BrowserActionExecutor(store, backoff_ms=250, timeline=timeline, sleep=sleep)
        fake_page.fill.side_effect = [PlaywrightTimeoutError("slow"), None]

        await executor.execute(
            fake_page, Step(ActionKind.TYPE, selector="#q", value="x", retries=3), "http://app", 4,
        )

        events = timeline.get_events_by_type(EventType.ACTION_RETRY)
        assert len(events) == 1
        assert events[0]["step"] == 3
        assert events[0]["details"] == {"attempt": 1}
        assert sleep.calls == [0.25]
