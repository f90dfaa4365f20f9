"""Inspection engine: judge captured screenshots after the browser is gone.

For every ``.png``/``.jpg`` in the screenshot directory (sorted by name):

- with a baseline directory, compare against the same-named baseline,
  creating the baseline from the screenshot when none exists yet
- run the OCR and VLM assertions the step runner recorded for that
  screenshot in the deferred-assertion index

The index is only read here, never modified.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path
from typing import List, Optional, Sequence

from .artifacts import INSPECTION_RESULTS, ArtifactStore, list_images
from .judges import OcrJudge, PixelDiffJudge, VlmJudge
from .models import (
    AssertionKind,
    CheckKind,
    CheckResult,
    DeferredAssertionIndex,
    InspectionReport,
    InspectionResult,
)
from .timeline import TimelineLogger

logger = logging.getLogger(__name__)

BASELINE_CREATED_DETAILS = "Baseline image auto-generated for future comparisons"


class InspectionEngine:
    """Runs baseline, OCR and VLM checks over a screenshot directory."""

    def __init__(
        self,
        pixel_judge: PixelDiffJudge,
        ocr_judge: OcrJudge,
        vlm_judge: VlmJudge,
        timeline: Optional[TimelineLogger] = None,
    ):
        self.pixel_judge = pixel_judge
        self.ocr_judge = ocr_judge
        self.vlm_judge = vlm_judge
        self.timeline = timeline

    async def inspect(
        self,
        screenshot_dir: Path,
        index: DeferredAssertionIndex,
        baseline_dir: Optional[Path] = None,
        ocr_languages: Sequence[str] = ("eng",),
    ) -> InspectionReport:
        """Inspect every screenshot in ``screenshot_dir``.

        Raises:
            FileNotFoundError: If the screenshot directory does not exist.
        """
        screenshots = list_images(Path(screenshot_dir))
        if self.timeline:
            self.timeline.inspection_start(str(screenshot_dir), len(screenshots))

        report = InspectionReport()
        for screenshot in screenshots:
            report.results.append(
                await self.inspect_one(screenshot, index, baseline_dir, ocr_languages)
            )

        failed = sum(1 for r in report.results if not r.passed)
        if self.timeline:
            self.timeline.inspection_end(report.success, failed)
        logger.info(
            "Inspected %d screenshot(s), %d failed", report.total_screenshots, failed,
        )
        return report

    async def inspect_one(
        self,
        screenshot: Path,
        index: DeferredAssertionIndex,
        baseline_dir: Optional[Path],
        ocr_languages: Sequence[str],
    ) -> InspectionResult:
        result = InspectionResult(screenshot=str(screenshot))

        if baseline_dir is not None:
            result.checks.append(await self._compare_with_baseline(screenshot, Path(baseline_dir)))

        for assertion in index.assertions_for(screenshot.name):
            if assertion.kind == AssertionKind.OCR:
                check = await self.ocr_judge.judge(screenshot, assertion.expected, ocr_languages)
            else:
                check = await self.vlm_judge.judge(screenshot, assertion)
            result.checks.append(check)

        if self.timeline:
            for check in result.checks:
                self.timeline.check_result(str(screenshot), check.kind.value, check.passed, check.details)
        return result

    async def _compare_with_baseline(self, screenshot: Path, baseline_dir: Path) -> CheckResult:
        baseline = baseline_dir / screenshot.name
        if not baseline.exists():
            try:
                await asyncio.to_thread(_copy_baseline, screenshot, baseline)
            except OSError as e:
                return CheckResult(CheckKind.VISUAL_DIFF, False, str(e))
            logger.info("Created baseline %s", baseline)
            if self.timeline:
                self.timeline.baseline_created(str(screenshot), str(baseline))
            return CheckResult(CheckKind.VISUAL_DIFF, True, BASELINE_CREATED_DETAILS)

        return await self.pixel_judge.judge(screenshot, baseline)


def _copy_baseline(screenshot: Path, baseline: Path) -> None:
    baseline.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(screenshot, baseline)


def save_inspection(store: ArtifactStore, report: InspectionReport) -> Path:
    return store.write_json(INSPECTION_RESULTS, report.to_dict())


def failed_checks(report: InspectionReport) -> List[CheckResult]:
    """Flatten failing checks across all screenshots."""
    return [c for r in report.results for c in r.checks if not c.passed]
