"""Unit tests for inline assertions and the step runner."""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from unittest.mock import patch

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from eyes_orchestrator.artifacts import E2E_RESULTS, E2E_STEPS
from eyes_orchestrator.assertions import DEFERRED_DETAILS, evaluate_assertion, evaluate_assertions
from eyes_orchestrator.browser import BrowserActionExecutor
from eyes_orchestrator.e2e import StepRunner, load_index, run_e2e, save_run
from eyes_orchestrator.models import Assertion, AssertionKind, Scenario
from eyes_orchestrator.timeline import EventType, TimelineLogger


async def _no_sleep(seconds: float) -> None:
    return None


@pytest.fixture
def runner(store) -> StepRunner:
    return StepRunner(BrowserActionExecutor(store, sleep=_no_sleep))


def _scenario(*steps) -> Scenario:
    return Scenario.from_dict({"baseUrl": "http://app", "steps": list(steps)})


# =============================================================================
# Inline assertions
# =============================================================================

class TestInlineAssertions:
    """Tests for evaluate_assertion."""

    @pytest.mark.asyncio
    async def test_text_found_in_page_content(self, fake_page):
        result = await evaluate_assertion(fake_page, Assertion(AssertionKind.TEXT, expected="Welcome"))
        assert result.passed is True
        assert result.details == "Text found"

    @pytest.mark.asyncio
    async def test_text_missing(self, fake_page):
        result = await evaluate_assertion(fake_page, Assertion(AssertionKind.TEXT, expected="Goodbye"))
        assert result.passed is False
        assert result.details == "Text not found"

    @pytest.mark.asyncio
    async def test_text_without_expected_fails(self, fake_page):
        result = await evaluate_assertion(fake_page, Assertion(AssertionKind.TEXT))
        assert result.passed is False
        assert result.details == "No expected text provided"
        fake_page.content.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_element_presence(self, fake_page):
        present = await evaluate_assertion(fake_page, Assertion(AssertionKind.ELEMENT, selector="#logo"))
        fake_page.query_selector.return_value = None
        absent = await evaluate_assertion(fake_page, Assertion(AssertionKind.ELEMENT, selector="#logo"))

        assert (present.passed, present.details) == (True, "Element exists")
        assert (absent.passed, absent.details) == (False, "Element not found")

    @pytest.mark.asyncio
    async def test_element_without_selector_fails(self, fake_page):
        result = await evaluate_assertion(fake_page, Assertion(AssertionKind.ELEMENT))
        assert result.details == "No selector provided"

    @pytest.mark.asyncio
    async def test_deferred_kinds_pass_inline(self, fake_page):
        results = await evaluate_assertions(fake_page, [
            Assertion(AssertionKind.OCR, expected="anything"),
            Assertion(AssertionKind.VISUAL_DIFF),
            Assertion(AssertionKind.VLM_EVAL, prompt="?"),
        ])
        assert all(r.passed for r in results)
        assert {r.details for r in results} == {DEFERRED_DETAILS}

    @pytest.mark.asyncio
    async def test_page_error_becomes_failed_result(self, fake_page):
        fake_page.content.side_effect = PlaywrightError("Target closed")
        result = await evaluate_assertion(fake_page, Assertion(AssertionKind.TEXT, expected="x"))
        assert result.passed is False
        assert "Target closed" in result.details


# =============================================================================
# Step runner
# =============================================================================

class TestStepRunner:
    """Tests for StepRunner.run."""

    @pytest.mark.asyncio
    async def test_clean_run_executes_every_step(self, runner, fake_page, store):
        scenario = _scenario(
            {"action": "navigate"},
            {"action": "click", "selector": "#go"},
            {"action": "screenshot", "name": "done"},
        )

        report, index = await runner.run(fake_page, scenario)

        assert report.success is True
        assert report.executed_steps == report.total_steps == 3
        assert [r.step for r in report.results] == [0, 1, 2]
        names = [Path(r.screenshot).name for r in report.results]
        assert names == ["auto-step-1.png", "auto-step-2.png", "done.png"]
        assert all(Path(r.screenshot).parent == store.screenshots_dir for r in report.results)
        assert len(index.entries) == 3

    @pytest.mark.asyncio
    async def test_failure_without_assertions_halts(self, runner, fake_page):
        fake_page.click.side_effect = PlaywrightTimeoutError("Timeout 5000ms exceeded")
        fake_page.query_selector.return_value = None
        scenario = _scenario(
            {"action": "navigate"},
            {"action": "click", "selector": "#missing"},
            {"action": "screenshot"},
        )

        report, _ = await runner.run(fake_page, scenario)

        assert report.success is False
        assert report.executed_steps == 2
        assert report.total_steps == 3
        failed = report.results[1]
        assert failed.error == "Element not found: #missing"
        assert Path(failed.screenshot).name == "error-step-2.png"

    @pytest.mark.asyncio
    async def test_failure_with_assertions_continues(self, runner, fake_page):
        fake_page.click.side_effect = PlaywrightTimeoutError("Timeout 5000ms exceeded")
        scenario = _scenario(
            {
                "action": "click",
                "selector": "#go",
                "assertions": [{"kind": "text", "expected": "Welcome"}],
            },
            {"action": "navigate"},
        )

        report, _ = await runner.run(fake_page, scenario)

        assert report.executed_steps == 2
        assert report.results[0].success is False
        assert report.results[1].success is True

    @pytest.mark.asyncio
    async def test_failure_with_empty_assertions_continues(self, runner, fake_page):
        fake_page.click.side_effect = PlaywrightTimeoutError("Timeout 5000ms exceeded")
        scenario = _scenario(
            {"action": "click", "selector": "#a", "assertions": []},
            {"action": "navigate"},
        )

        report, _ = await runner.run(fake_page, scenario)

        assert report.executed_steps == 2
        assert report.results[0].success is False
        assert report.results[1].success is True

    @pytest.mark.asyncio
    async def test_failed_assertion_fails_step_and_skips_auto_capture(self, runner, fake_page):
        scenario = _scenario(
            {"action": "navigate", "assertions": [{"kind": "text", "expected": "Nope"}]},
            {"action": "navigate"},
        )

        report, _ = await runner.run(fake_page, scenario)

        first = report.results[0]
        assert first.success is False
        assert first.error is None
        assert first.screenshot is None
        assert first.assertions[0].details == "Text not found"
        assert report.executed_steps == 2

    @pytest.mark.asyncio
    async def test_error_capture_failure_leaves_screenshot_unset(self, runner, fake_page):
        fake_page.goto.side_effect = PlaywrightError("net::ERR_NAME_NOT_RESOLVED")
        fake_page.screenshot.side_effect = PlaywrightError("Target closed")

        report, _ = await runner.run(fake_page, _scenario({"action": "navigate"}))

        result = report.results[0]
        assert result.success is False
        assert result.screenshot is None
        assert "ERR_NAME_NOT_RESOLVED" in result.error

    @pytest.mark.asyncio
    async def test_index_maps_screenshot_to_declared_assertions(self, runner, fake_page):
        scenario = _scenario({
            "action": "screenshot",
            "name": "home",
            "assertions": [{"kind": "ocr", "expected": "Welcome"}],
        })

        _, index = await runner.run(fake_page, scenario)

        found = index.assertions_for("home.png")
        assert [(a.kind, a.expected) for a in found] == [(AssertionKind.OCR, "Welcome")]

    @pytest.mark.asyncio
    async def test_timeline_records_steps(self, store, fake_page, temp_dir):
        timeline = TimelineLogger(temp_dir / "timeline.jsonl")
        runner = StepRunner(BrowserActionExecutor(store, sleep=_no_sleep), timeline)
        fake_page.hover.side_effect = PlaywrightError("detached")

        await runner.run(fake_page, _scenario(
            {"action": "navigate"},
            {"action": "hover", "selector": "#menu"},
        ))

        assert len(timeline.get_events_by_type(EventType.STEP_PASS)) == 1
        assert len(timeline.get_events_by_type(EventType.STEP_FAIL)) == 1
        end = timeline.get_events_by_type(EventType.RUN_END)[0]
        assert end["status"] == "failed"
        assert end["details"] == {"executed_steps": 2, "total_steps": 2}


class TestPersistence:
    """Tests for save_run, load_index and run_e2e."""

    @pytest.mark.asyncio
    async def test_save_and_load(self, runner, fake_page, store):
        report, index = await runner.run(fake_page, _scenario({
            "action": "screenshot",
            "name": "home",
            "assertions": [{"kind": "vlm-eval", "prompt": "Is there a header?"}],
        }))

        save_run(store, report, index)

        assert store.read_json(E2E_RESULTS)["success"] is True
        assert store.read_json(E2E_STEPS)["steps"][0]["screenshot"].endswith("home.png")
        assert load_index(store).assertions_for("home.png")[0].prompt == "Is there a header?"

    def test_load_index_without_run_is_empty(self, store):
        assert load_index(store).entries == []

    @pytest.mark.asyncio
    async def test_run_e2e_uses_session_and_persists(self, eyes_config, store, fake_page):
        launched = {}

        @asynccontextmanager
        async def fake_session(config, headless=None):
            launched["headless"] = headless
            yield fake_page

        with patch("eyes_orchestrator.e2e.open_browser_session", fake_session):
            report, _ = await run_e2e(
                _scenario({"action": "navigate"}), eyes_config, store=store, attended=True,
            )

        assert launched["headless"] is False
        assert report.success is True
        assert store.path(E2E_RESULTS).exists()
        assert store.path(E2E_STEPS).exists()
