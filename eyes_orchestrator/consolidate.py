"""Fold unit, E2E and inspection reports into one consolidated report.

Each phase report is optional; a phase that never ran simply has no summary
section. The overall status starts as ``passed`` and only ever degrades:

- any failed unit test makes it ``failed``
- fewer passed E2E steps than scripted steps makes it ``partial``
  (unless already ``failed``)
- a failed inspection makes it ``partial`` (only if still ``passed``)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from .artifacts import (
    CONSOLIDATED_REPORT,
    E2E_RESULTS,
    INSPECTION_RESULTS,
    UNIT_TEST_RESULTS,
    ArtifactStore,
)
from .timeline import utc_now_iso

logger = logging.getLogger(__name__)

STATUS_PASSED = "passed"
STATUS_FAILED = "failed"
STATUS_PARTIAL = "partial"

# Failure excerpts kept per phase
MAX_FAILURES = 10


def extract_coverage_percent(coverage: Optional[Dict[str, Any]]) -> Optional[float]:
    """Line coverage percent from a coverage.py JSON report, if present."""
    if not coverage:
        return None
    totals = coverage.get("totals") or {}
    percent = totals.get("percent_covered")
    if percent is None:
        return None
    return float(percent)


def summarize_unit_tests(data: Dict[str, Any]) -> Dict[str, Any]:
    summary = data.get("summary") or {}
    result: Dict[str, Any] = {
        "total": summary.get("total", 0),
        "passed": summary.get("passed", 0),
        "failed": summary.get("failed", 0),
        "skipped": summary.get("skipped", 0),
    }
    coverage = extract_coverage_percent(data.get("coverage"))
    if coverage is not None:
        result["coverage"] = coverage
    return result


def summarize_e2e(data: Dict[str, Any]) -> Dict[str, Any]:
    results = data.get("results") or []
    return {
        "totalSteps": data.get("totalSteps", 0),
        "executedSteps": len(results),
        "passedSteps": sum(1 for r in results if r.get("success")),
        "screenshots": sum(1 for r in results if r.get("screenshot")),
    }


def summarize_inspection(data: Dict[str, Any]) -> Dict[str, Any]:
    results = data.get("results") or []
    checks = [c for r in results for c in (r.get("checks") or [])]
    return {
        "totalScreenshots": data.get("totalScreenshots", 0),
        "passedScreenshots": sum(1 for r in results if r.get("passed")),
        "ocrChecks": sum(1 for c in checks if c.get("type") == "ocr"),
        "visualDiffs": sum(1 for c in checks if c.get("type") == "visual-diff"),
        "vlmChecks": sum(1 for c in checks if c.get("type") == "vlm-eval"),
    }


def failed_unit_tests(results: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    failed = [
        {"suite": r.get("suite"), "test": r.get("test"), "error": r.get("error")}
        for r in results or []
        if r.get("status") == "failed"
    ]
    return failed[:MAX_FAILURES]


def failed_e2e_steps(results: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    failed = [
        {
            "step": r.get("step"),
            "action": r.get("action"),
            "error": r.get("error"),
            "screenshot": r.get("screenshot"),
        }
        for r in results or []
        if not r.get("success")
    ]
    return failed[:MAX_FAILURES]


def failed_inspection_checks(results: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    failed = [
        {"screenshot": r.get("screenshot"), "type": c.get("type"), "details": c.get("details")}
        for r in results or []
        for c in r.get("checks") or []
        if not c.get("passed")
    ]
    return failed[:MAX_FAILURES]


def fold_status(
    unit_tests: Optional[Dict[str, Any]],
    e2e: Optional[Dict[str, Any]],
    inspection: Optional[Dict[str, Any]],
) -> str:
    """Overall status from the three raw phase reports (any may be None)."""
    status = STATUS_PASSED

    if unit_tests is not None and (unit_tests.get("summary") or {}).get("failed", 0) > 0:
        status = STATUS_FAILED

    if e2e is not None:
        passed_steps = summarize_e2e(e2e)["passedSteps"]
        if passed_steps < e2e.get("totalSteps", 0) and status != STATUS_FAILED:
            status = STATUS_PARTIAL

    if inspection is not None and not inspection.get("success") and status == STATUS_PASSED:
        status = STATUS_PARTIAL

    return status


def build_consolidated_report(store: ArtifactStore) -> Dict[str, Any]:
    """Read the phase reports from the store and fold them."""
    unit_tests = store.read_json(UNIT_TEST_RESULTS)
    e2e = store.read_json(E2E_RESULTS)
    inspection = store.read_json(INSPECTION_RESULTS)

    summary: Dict[str, Any] = {}
    details: Dict[str, Any] = {}
    artifacts: List[str] = []

    if unit_tests is not None:
        summary["unitTests"] = summarize_unit_tests(unit_tests)
        details["unitTests"] = {
            "duration": (unit_tests.get("summary") or {}).get("duration"),
            "timestamp": unit_tests.get("timestamp"),
            "failedTests": failed_unit_tests(unit_tests.get("results")),
        }
        artifacts.append(str(store.path(UNIT_TEST_RESULTS)))

    if e2e is not None:
        summary["e2eTests"] = summarize_e2e(e2e)
        details["e2eTests"] = {
            "baseUrl": e2e.get("baseUrl"),
            "timestamp": e2e.get("timestamp"),
            "failedSteps": failed_e2e_steps(e2e.get("results")),
        }
        artifacts.append(str(store.path(E2E_RESULTS)))

    if inspection is not None:
        summary["visualTests"] = summarize_inspection(inspection)
        details["visualInspection"] = {
            "timestamp": inspection.get("timestamp"),
            "failedChecks": failed_inspection_checks(inspection.get("results")),
        }
        artifacts.append(str(store.path(INSPECTION_RESULTS)))

    summary["overallStatus"] = fold_status(unit_tests, e2e, inspection)
    artifacts.extend(str(p) for p in store.list_screenshots())

    return {
        "timestamp": utc_now_iso(),
        "summary": summary,
        "details": details,
        "artifacts": artifacts,
    }


def consolidate(store: ArtifactStore, output_path: Optional[Path] = None) -> Dict[str, Any]:
    """Build the consolidated report and write it.

    Returns:
        Dict with ``reportPath``, ``summary`` (display text) and ``report``.
    """
    report = build_consolidated_report(store)
    path = store.write_json(CONSOLIDATED_REPORT, report, path=output_path)
    logger.info("Consolidated report written to %s (%s)", path, report["summary"]["overallStatus"])
    return {
        "reportPath": str(path),
        "summary": format_consolidated_summary(report),
        "report": report,
    }


def _pass_rate(passed: int, total: int) -> str:
    return f"{passed / total * 100:.1f}%" if total > 0 else "0%"


def format_consolidated_summary(report: Dict[str, Any]) -> str:
    """Format a consolidated report for display."""
    summary = report["summary"]
    lines = [
        "Test Suite Consolidated Report",
        f"  Generated: {report['timestamp']}",
    ]

    unit = summary.get("unitTests")
    if unit:
        lines.append("Unit Tests:")
        lines.append(f"  ✓ Passed: {unit['passed']}/{unit['total']} ({_pass_rate(unit['passed'], unit['total'])})")
        if unit["failed"]:
            lines.append(f"  ✗ Failed: {unit['failed']}")
        if unit["skipped"]:
            lines.append(f"  - Skipped: {unit['skipped']}")
        if "coverage" in unit:
            lines.append(f"  Coverage: {unit['coverage']:.1f}%")

    e2e = summary.get("e2eTests")
    if e2e:
        rate = _pass_rate(e2e["passedSteps"], e2e["totalSteps"])
        lines.append("E2E Tests:")
        lines.append(f"  ✓ Passed: {e2e['passedSteps']}/{e2e['totalSteps']} steps ({rate})")
        lines.append(f"  Screenshots: {e2e['screenshots']}")

    visual = summary.get("visualTests")
    if visual:
        rate = _pass_rate(visual["passedScreenshots"], visual["totalScreenshots"])
        lines.append("Visual Tests:")
        lines.append(f"  ✓ Passed: {visual['passedScreenshots']}/{visual['totalScreenshots']} ({rate})")
        lines.append(f"  OCR checks: {visual['ocrChecks']}")
        lines.append(f"  Visual diffs: {visual['visualDiffs']}")
        if visual["vlmChecks"]:
            lines.append(f"  VLM checks: {visual['vlmChecks']}")

    lines.append(f"Overall Status: {summary['overallStatus'].upper()}")
    lines.append(f"Artifacts: {len(report['artifacts'])} files")
    return "\n".join(lines)
