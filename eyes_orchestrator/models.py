"""Data model for scenarios, step results and inspection reports.

Scenario documents use the camelCase field names of the tool interface
(``passIf``, ``baseUrl``); the dataclasses use snake_case and convert at the
``from_dict``/``to_dict`` boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .config import validate_against_schema
from .errors import ScenarioValidationError
from .timeline import utc_now_iso


class ActionKind(str, Enum):
    """Scripted browser actions."""
    NAVIGATE = "navigate"
    CLICK = "click"
    TYPE = "type"
    SELECT = "select"
    HOVER = "hover"
    SCROLL = "scroll"
    SCREENSHOT = "screenshot"
    WAIT = "wait"

    @property
    def requires_selector(self) -> bool:
        return self in (ActionKind.CLICK, ActionKind.TYPE, ActionKind.SELECT, ActionKind.HOVER)

    @property
    def requires_value(self) -> bool:
        return self in (ActionKind.TYPE, ActionKind.SELECT)


class AssertionKind(str, Enum):
    """Assertion kinds a step may declare."""
    TEXT = "text"
    ELEMENT = "element"
    OCR = "ocr"
    VISUAL_DIFF = "visual-diff"
    VLM_EVAL = "vlm-eval"

    @property
    def deferred(self) -> bool:
        """Whether the assertion is judged later against the screenshot."""
        return self in (AssertionKind.OCR, AssertionKind.VISUAL_DIFF, AssertionKind.VLM_EVAL)


class CheckKind(str, Enum):
    """Checks produced by the inspection phase."""
    VISUAL_DIFF = "visual-diff"
    OCR = "ocr"
    VLM_EVAL = "vlm-eval"


# Per-action timeouts in milliseconds
NAVIGATION_TIMEOUT_MS = 30000
ACTION_TIMEOUT_MS = 5000
DEFAULT_WAIT_MS = 1000

DEFAULT_PASS_CONDITION = "YES"


def _drop_none(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


# =============================================================================
# Scenario
# =============================================================================


@dataclass(frozen=True)
class Assertion:
    """An assertion declared on a step."""
    kind: AssertionKind
    selector: Optional[str] = None
    expected: Optional[str] = None
    prompt: Optional[str] = None
    pass_if: str = DEFAULT_PASS_CONDITION
    model: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Assertion":
        return cls(
            kind=AssertionKind(data["kind"]),
            selector=data.get("selector"),
            expected=data.get("expected"),
            prompt=data.get("prompt"),
            pass_if=data.get("passIf") or DEFAULT_PASS_CONDITION,
            model=data.get("model"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "kind": self.kind.value,
            "selector": self.selector,
            "expected": self.expected,
            "prompt": self.prompt,
            "passIf": self.pass_if,
            "model": self.model,
        })


@dataclass(frozen=True)
class Step:
    """One scripted browser action."""
    action: ActionKind
    selector: Optional[str] = None
    value: Optional[str] = None
    name: Optional[str] = None
    assertions: Optional[Tuple[Assertion, ...]] = None
    retries: int = 0
    timeout: Optional[int] = None

    @property
    def timeout_ms(self) -> int:
        """Effective timeout, falling back to the per-action default."""
        if self.timeout:
            return self.timeout
        if self.action == ActionKind.NAVIGATE:
            return NAVIGATION_TIMEOUT_MS
        return ACTION_TIMEOUT_MS

    @property
    def has_assertions(self) -> bool:
        return bool(self.assertions)

    def validate(self) -> List[str]:
        """Check the selector/value invariants.

        Returns:
            List of problems, empty when the step is well formed.
        """
        problems: List[str] = []
        if self.action.requires_selector and not self.selector:
            problems.append(f"'{self.action.value}' requires a selector")
        if self.action.requires_value and self.value is None:
            problems.append(f"'{self.action.value}' requires a value")
        if self.retries < 0:
            problems.append("retries must not be negative")
        return problems

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Step":
        assertions = data.get("assertions")
        value = data.get("value")
        return cls(
            action=ActionKind(data["action"]),
            selector=data.get("selector"),
            value=str(value) if value is not None else None,
            name=data.get("name"),
            assertions=tuple(Assertion.from_dict(a) for a in assertions) if assertions is not None else None,
            retries=int(data.get("retries") or 0),
            timeout=data.get("timeout"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = _drop_none({
            "action": self.action.value,
            "selector": self.selector,
            "value": self.value,
            "name": self.name,
            "timeout": self.timeout,
        })
        if self.retries:
            data["retries"] = self.retries
        if self.assertions is not None:
            data["assertions"] = [a.to_dict() for a in self.assertions]
        return data


@dataclass(frozen=True)
class Scenario:
    """Ordered script of steps run against one base URL."""
    base_url: str
    steps: Tuple[Step, ...]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Scenario":
        """Build a scenario from ``{"baseUrl": ..., "steps": [...]}``.

        Raises:
            ScenarioValidationError: On schema or step invariant violations.
        """
        valid, errors = validate_against_schema(data, "scenario.schema.json")
        if not valid:
            raise ScenarioValidationError(errors)

        steps = tuple(Step.from_dict(s) for s in data["steps"])
        problems = [
            f"steps.{index}: {problem}"
            for index, step in enumerate(steps)
            for problem in step.validate()
        ]
        if problems:
            raise ScenarioValidationError(problems)

        return cls(base_url=data["baseUrl"], steps=steps)


# =============================================================================
# E2E results
# =============================================================================


@dataclass
class AssertionResult:
    """Outcome of a single assertion."""
    kind: AssertionKind
    passed: bool
    details: Optional[str] = None
    confidence: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "kind": self.kind.value,
            "passed": self.passed,
            "details": self.details,
            "confidence": self.confidence,
        })


@dataclass
class StepResult:
    """Outcome of one executed step."""
    step: int
    action: ActionKind
    success: bool = False
    screenshot: Optional[str] = None
    assertions: Optional[List[AssertionResult]] = None
    error: Optional[str] = None
    duration_ms: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "step": self.step,
            "action": self.action.value,
            "success": self.success,
        }
        if self.screenshot:
            data["screenshot"] = self.screenshot
        if self.assertions is not None:
            data["assertions"] = [a.to_dict() for a in self.assertions]
        if self.error:
            data["error"] = self.error
        if self.duration_ms is not None:
            data["duration"] = self.duration_ms
        return data


@dataclass
class RunReport:
    """Report of a complete E2E run."""
    base_url: str
    total_steps: int
    results: List[StepResult] = field(default_factory=list)
    timestamp: str = field(default_factory=utc_now_iso)

    @property
    def success(self) -> bool:
        return all(r.success for r in self.results)

    @property
    def executed_steps(self) -> int:
        return len(self.results)

    @property
    def passed_steps(self) -> int:
        return sum(1 for r in self.results if r.success)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "baseUrl": self.base_url,
            "totalSteps": self.total_steps,
            "executedSteps": self.executed_steps,
            "results": [r.to_dict() for r in self.results],
            "timestamp": self.timestamp,
        }


@dataclass
class IndexEntry:
    """One step's linkage between its screenshot and declared assertions."""
    step: int
    action: str
    success: bool
    screenshot: Optional[str]
    assertions: List[Assertion] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "step": self.step,
            "action": self.action,
            "success": self.success,
            "assertions": [a.to_dict() for a in self.assertions],
        }
        if self.screenshot:
            data["screenshot"] = self.screenshot
        return data


@dataclass
class DeferredAssertionIndex:
    """Mapping from screenshot basename to assertions still to be judged.

    Built by the step runner while the browser is live and handed to the
    inspection engine afterwards. Lookups are by basename so the index stays
    valid when screenshots are inspected from a copied directory.
    """
    entries: List[IndexEntry] = field(default_factory=list)

    def record(self, result: StepResult, assertions: Optional[Tuple[Assertion, ...]]) -> None:
        self.entries.append(IndexEntry(
            step=result.step,
            action=result.action.value,
            success=result.success,
            screenshot=result.screenshot,
            assertions=list(assertions or ()),
        ))

    def assertions_for(self, screenshot: str) -> List[Assertion]:
        """Deferred OCR and VLM assertions recorded for a screenshot."""
        name = Path(screenshot).name
        found: List[Assertion] = []
        for entry in self.entries:
            if entry.screenshot and Path(entry.screenshot).name == name:
                found.extend(
                    a for a in entry.assertions
                    if a.kind in (AssertionKind.OCR, AssertionKind.VLM_EVAL)
                )
        return found

    def to_dict(self) -> Dict[str, Any]:
        return {"steps": [e.to_dict() for e in self.entries]}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "DeferredAssertionIndex":
        entries: List[IndexEntry] = []
        for raw in (data or {}).get("steps", []):
            assertions: List[Assertion] = []
            for a in raw.get("assertions") or []:
                try:
                    assertions.append(Assertion.from_dict(a))
                except (KeyError, ValueError):
                    continue
            entries.append(IndexEntry(
                step=raw.get("step", len(entries)),
                action=raw.get("action", ""),
                success=raw.get("success", False),
                screenshot=raw.get("screenshot"),
                assertions=assertions,
            ))
        return cls(entries=entries)


# =============================================================================
# Inspection results
# =============================================================================


@dataclass
class CheckResult:
    """Outcome of one inspection check."""
    kind: CheckKind
    passed: bool
    details: str
    confidence: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "type": self.kind.value,
            "passed": self.passed,
            "details": self.details,
            "confidence": self.confidence,
        })


@dataclass
class InspectionResult:
    """All checks run against one screenshot."""
    screenshot: str
    checks: List[CheckResult] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return all(c.passed for c in self.checks)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "screenshot": self.screenshot,
            "checks": [c.to_dict() for c in self.checks],
            "passed": self.passed,
        }


@dataclass
class InspectionReport:
    """Report of one inspection pass over a screenshot directory."""
    results: List[InspectionResult] = field(default_factory=list)
    timestamp: str = field(default_factory=utc_now_iso)

    @property
    def success(self) -> bool:
        return all(r.passed for r in self.results)

    @property
    def total_screenshots(self) -> int:
        return len(self.results)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "totalScreenshots": self.total_screenshots,
            "results": [r.to_dict() for r in self.results],
            "timestamp": self.timestamp,
        }
