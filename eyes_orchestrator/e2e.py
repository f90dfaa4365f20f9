"""End-to-end step runner.

Walks a scenario's steps in order against one live page:

1. perform the action (with its retry budget)
2. evaluate declared assertions inline
3. capture ``auto-step-N.png`` after every successful non-screenshot step
4. on failure, record the error and capture ``error-step-N.png``
5. stop early only when a failed step declared no assertions

The run report and the deferred-assertion index are both persisted so the
inspection phase can run later, without the browser.
"""

from __future__ import annotations

import logging
import time
from typing import Optional, Tuple

from playwright.async_api import Page

from .artifacts import E2E_RESULTS, E2E_STEPS, ArtifactStore
from .assertions import evaluate_assertions
from .browser import BrowserActionExecutor, open_browser_session
from .config import EyesConfig
from .models import ActionKind, DeferredAssertionIndex, RunReport, Scenario, Step, StepResult
from .timeline import TimelineLogger

logger = logging.getLogger(__name__)


class StepRunner:
    """Runs a scenario against a page and builds the report and index."""

    def __init__(self, executor: BrowserActionExecutor, timeline: Optional[TimelineLogger] = None):
        self.executor = executor
        self.timeline = timeline

    async def run(self, page: Page, scenario: Scenario) -> Tuple[RunReport, DeferredAssertionIndex]:
        """Execute every step until completion or an aborting failure.

        Returns:
            Tuple of (RunReport, DeferredAssertionIndex).
        """
        report = RunReport(base_url=scenario.base_url, total_steps=len(scenario.steps))
        index = DeferredAssertionIndex()
        started = time.monotonic()

        if self.timeline:
            self.timeline.run_start(scenario.base_url, len(scenario.steps))

        for position, step in enumerate(scenario.steps, start=1):
            result = await self.run_step(page, step, scenario.base_url, position)
            report.results.append(result)
            index.record(result, step.assertions)

            if not result.success and step.assertions is None:
                logger.info(
                    "Stopping after step %d: %s failed with no assertions key",
                    position, step.action.value,
                )
                break

        if self.timeline:
            self.timeline.run_end(
                report.success,
                report.executed_steps,
                report.total_steps,
                duration_ms=int((time.monotonic() - started) * 1000),
            )
        return report, index

    async def run_step(self, page: Page, step: Step, base_url: str, position: int) -> StepResult:
        """Run a single step; never raises."""
        result = StepResult(step=position - 1, action=step.action)
        if self.timeline:
            self.timeline.step_start(result.step, step.action.value)

        try:
            outcome = await self.executor.execute(page, step, base_url, position)
            result.duration_ms = outcome.duration_ms
            result.screenshot = outcome.screenshot
            result.success = True

            if step.has_assertions:
                result.assertions = await evaluate_assertions(page, step.assertions)
                if not all(a.passed for a in result.assertions):
                    result.success = False

            if step.action != ActionKind.SCREENSHOT and result.success:
                result.screenshot = await self.executor.capture(page, f"auto-step-{position}")

        except Exception as e:
            result.success = False
            result.error = str(e)
            result.screenshot = await self._capture_error(page, position)

        if self.timeline:
            if result.screenshot:
                self.timeline.screenshot_captured(result.step, result.screenshot)
            if result.success:
                self.timeline.step_pass(result.step, step.action.value, result.duration_ms)
            else:
                self.timeline.step_fail(result.step, step.action.value, result.error, result.screenshot)

        level = logging.INFO if result.success else logging.WARNING
        logger.log(
            level, "Step %d %s: %s%s",
            position, step.action.value,
            "passed" if result.success else "failed",
            f" ({result.error})" if result.error else "",
        )
        return result

    async def _capture_error(self, page: Page, position: int) -> Optional[str]:
        try:
            return await self.executor.capture(page, f"error-step-{position}")
        except Exception as e:
            logger.warning("Could not capture error screenshot for step %d: %s", position, e)
            return None


def save_run(store: ArtifactStore, report: RunReport, index: DeferredAssertionIndex) -> None:
    """Persist the run report and the deferred-assertion index."""
    store.write_json(E2E_RESULTS, report.to_dict())
    store.write_json(E2E_STEPS, index.to_dict())


def load_index(store: ArtifactStore) -> DeferredAssertionIndex:
    """Load the persisted index; empty when no run has been recorded."""
    return DeferredAssertionIndex.from_dict(store.read_json(E2E_STEPS))


async def run_e2e(
    scenario: Scenario,
    config: EyesConfig,
    store: Optional[ArtifactStore] = None,
    attended: bool = False,
    timeline: Optional[TimelineLogger] = None,
) -> Tuple[RunReport, DeferredAssertionIndex]:
    """Launch a browser, run the scenario and persist the results.

    Args:
        scenario: Validated scenario.
        config: Eyes configuration.
        store: Artifact store (defaults to the configured one).
        attended: Show the browser window instead of running headless.
        timeline: Optional timeline logger.

    Returns:
        Tuple of (RunReport, DeferredAssertionIndex).
    """
    store = store or ArtifactStore.from_config(config)
    store.ensure_dirs()

    executor = BrowserActionExecutor(store, config.browser.retry_backoff_ms, timeline)
    runner = StepRunner(executor, timeline)

    async with open_browser_session(config.browser, headless=False if attended else None) as page:
        report, index = await runner.run(page, scenario)

    save_run(store, report, index)
    return report, index
