"""Timeline event logger.

Appends JSONL events to <artifacts>/logs/timeline.jsonl so a run can be
reconstructed step by step after the browser has closed.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional


def utc_now_iso() -> str:
    """Return current UTC time as ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def generate_run_id(prefix: str) -> str:
    """Generate a run ID such as ``e2e-20260127-120000-abcd1234``."""
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    return f"{prefix}-{timestamp}-{uuid.uuid4().hex[:8]}"


class EventType(str, Enum):
    """Timeline event types."""
    # E2E run events
    RUN_START = "run_start"
    RUN_END = "run_end"
    STEP_START = "step_start"
    STEP_PASS = "step_pass"
    STEP_FAIL = "step_fail"
    ACTION_RETRY = "action_retry"
    SCREENSHOT_CAPTURED = "screenshot_captured"

    # Inspection events
    INSPECTION_START = "inspection_start"
    INSPECTION_END = "inspection_end"
    BASELINE_CREATED = "baseline_created"
    CHECK_PASS = "check_pass"
    CHECK_FAIL = "check_fail"

    # Unit test and report events
    UNIT_TESTS_RUN = "unit_tests_run"
    REPORT_WRITTEN = "report_written"


class TimelineLogger:
    """Logger for timeline events in JSONL format.

    Each event is written as a single JSON line with at minimum:
    - ts: ISO 8601 timestamp
    - event: Event type from EventType enum

    Additional fields depend on the event type.
    """

    def __init__(
        self,
        timeline_path: Path,
        run_id: Optional[str] = None,
    ):
        """Initialize timeline logger.

        Args:
            timeline_path: Path to timeline.jsonl file.
            run_id: Run ID to include in all events.
        """
        self.timeline_path = timeline_path
        self.run_id = run_id

        self.timeline_path.parent.mkdir(parents=True, exist_ok=True)
        if not self.timeline_path.exists():
            self.timeline_path.touch()

    def log(
        self,
        event: EventType,
        step: Optional[int] = None,
        action: Optional[str] = None,
        screenshot: Optional[str] = None,
        check: Optional[str] = None,
        status: Optional[str] = None,
        duration_ms: Optional[int] = None,
        error: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Log an event to the timeline.

        Args:
            event: Event type.
            step: 0-based step index.
            action: Browser action kind.
            screenshot: Screenshot path.
            check: Inspection check kind.
            status: Status string.
            duration_ms: Duration in milliseconds.
            error: Error message.
            details: Additional details as a dict.

        Returns:
            The event dict that was written.
        """
        event_data: Dict[str, Any] = {
            "ts": utc_now_iso(),
            "event": event.value if isinstance(event, EventType) else event,
        }

        if self.run_id:
            event_data["run_id"] = self.run_id

        if step is not None:
            event_data["step"] = step
        if action is not None:
            event_data["action"] = action
        if screenshot is not None:
            event_data["screenshot"] = screenshot
        if check is not None:
            event_data["check"] = check
        if status is not None:
            event_data["status"] = status
        if duration_ms is not None:
            event_data["duration_ms"] = duration_ms
        if error is not None:
            event_data["error"] = error
        if details is not None:
            event_data["details"] = details

        line = json.dumps(event_data, separators=(",", ":")) + "\n"
        with self.timeline_path.open("a", encoding="utf-8") as f:
            f.write(line)

        return event_data

    # Convenience methods for common events

    def run_start(self, base_url: str, step_count: int) -> Dict[str, Any]:
        """Log E2E run start."""
        return self.log(
            EventType.RUN_START,
            details={"base_url": base_url, "step_count": step_count},
        )

    def run_end(
        self,
        success: bool,
        executed_steps: int,
        total_steps: int,
        duration_ms: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Log E2E run end."""
        return self.log(
            EventType.RUN_END,
            status="passed" if success else "failed",
            duration_ms=duration_ms,
            details={"executed_steps": executed_steps, "total_steps": total_steps},
        )

    def step_start(self, step: int, action: str) -> Dict[str, Any]:
        return self.log(EventType.STEP_START, step=step, action=action)

    def step_pass(self, step: int, action: str, duration_ms: Optional[int] = None) -> Dict[str, Any]:
        return self.log(EventType.STEP_PASS, step=step, action=action, duration_ms=duration_ms)

    def step_fail(
        self,
        step: int,
        action: str,
        error: Optional[str] = None,
        screenshot: Optional[str] = None,
    ) -> Dict[str, Any]:
        return self.log(
            EventType.STEP_FAIL,
            step=step,
            action=action,
            error=error,
            screenshot=screenshot,
        )

    def action_retry(self, step: int, action: str, attempt: int, error: str) -> Dict[str, Any]:
        """Log a retried browser action."""
        return self.log(
            EventType.ACTION_RETRY,
            step=step,
            action=action,
            error=error,
            details={"attempt": attempt},
        )

    def screenshot_captured(self, step: int, screenshot: str) -> Dict[str, Any]:
        return self.log(EventType.SCREENSHOT_CAPTURED, step=step, screenshot=screenshot)

    def inspection_start(self, screenshot_dir: str, screenshot_count: int) -> Dict[str, Any]:
        return self.log(
            EventType.INSPECTION_START,
            details={"screenshot_dir": screenshot_dir, "screenshot_count": screenshot_count},
        )

    def inspection_end(self, success: bool, failed_count: int) -> Dict[str, Any]:
        return self.log(
            EventType.INSPECTION_END,
            status="passed" if success else "failed",
            details={"failed_screenshots": failed_count},
        )

    def baseline_created(self, screenshot: str, baseline: str) -> Dict[str, Any]:
        return self.log(
            EventType.BASELINE_CREATED,
            screenshot=screenshot,
            details={"baseline": baseline},
        )

    def check_result(self, screenshot: str, check: str, passed: bool, details: str) -> Dict[str, Any]:
        """Log the outcome of one inspection check."""
        return self.log(
            EventType.CHECK_PASS if passed else EventType.CHECK_FAIL,
            screenshot=screenshot,
            check=check,
            details={"message": details},
        )

    def unit_tests_run(self, total: int, failed: int, duration_ms: int) -> Dict[str, Any]:
        return self.log(
            EventType.UNIT_TESTS_RUN,
            status="passed" if failed == 0 else "failed",
            duration_ms=duration_ms,
            details={"total": total, "failed": failed},
        )

    def report_written(self, path: str, status: str) -> Dict[str, Any]:
        return self.log(EventType.REPORT_WRITTEN, status=status, details={"path": path})

    def read_events(self) -> list[Dict[str, Any]]:
        """Read all events from the timeline.

        Returns:
            List of event dictionaries.
        """
        events = []
        if self.timeline_path.exists():
            with self.timeline_path.open("r", encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if line:
                        try:
                            events.append(json.loads(line))
                        except json.JSONDecodeError:
                            pass  # Skip malformed lines
        return events

    def get_events_by_type(self, event_type: EventType) -> list[Dict[str, Any]]:
        """Get all events of a specific type."""
        target = event_type.value if isinstance(event_type, EventType) else event_type
        return [e for e in self.read_events() if e.get("event") == target]


def create_timeline_logger(
    artifacts_root: Path,
    run_id: Optional[str] = None,
) -> TimelineLogger:
    """Create a timeline logger writing under the artifacts root.

    Args:
        artifacts_root: Artifacts root directory.
        run_id: Run ID to include in events.

    Returns:
        TimelineLogger instance.
    """
    timeline_path = artifacts_root / "logs" / "timeline.jsonl"
    return TimelineLogger(timeline_path, run_id=run_id)
