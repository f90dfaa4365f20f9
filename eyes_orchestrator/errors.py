"""Error kinds raised by the Eyes pipeline.

Action errors are retryable within a step's retry budget. Judge, dimension
and missing-value errors fail a single inspection check. Scenario and config
errors fail the whole tool call before any browser is launched.
"""

from __future__ import annotations

from typing import List, Optional, Tuple


class EyesError(Exception):
    """Base class for all pipeline errors."""


class ConfigError(EyesError):
    """Raised when the Eyes configuration cannot be loaded or is invalid."""


class ScenarioValidationError(EyesError):
    """Raised when a scenario violates its schema or step invariants."""

    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__("Invalid scenario:\n" + "\n".join(f"  - {e}" for e in errors))


# =============================================================================
# Browser action errors (retryable)
# =============================================================================


class ActionError(EyesError):
    """A browser action failed."""

    def __init__(self, message: str, action: Optional[str] = None, selector: Optional[str] = None):
        self.action = action
        self.selector = selector
        super().__init__(message)


class ActionTimeout(ActionError):
    """The action did not complete within its timeout."""


class ElementNotFound(ActionError):
    """The selector did not resolve to any element within the timeout."""


class NavigationError(ActionError):
    """Page navigation failed for a reason other than a timeout."""


# =============================================================================
# Inspection errors (fail a single check)
# =============================================================================


class JudgeServiceError(EyesError):
    """The vision judge service returned an error response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class JudgeServiceUnavailable(JudgeServiceError):
    """The vision judge service could not be reached at all.

    This points at a misconfigured environment, not a failing page, so the
    message is surfaced verbatim and the call is never retried.
    """

    def __init__(self, host: str):
        self.host = host
        super().__init__(
            f"Cannot connect to judge service. Please ensure Ollama is running at {host} "
            f"(set OLLAMA_HOST or judge.host in .eyes/eyes.yml)"
        )


class DimensionMismatch(EyesError):
    """Screenshot and baseline have different pixel dimensions."""

    def __init__(self, current: Tuple[int, int], baseline: Tuple[int, int]):
        self.current = current
        self.baseline = baseline
        super().__init__(
            f"Image dimensions mismatch: current {current[0]}x{current[1]}, "
            f"baseline {baseline[0]}x{baseline[1]}"
        )


class MissingExpectedValue(EyesError):
    """A check was requested without the value it needs to judge against."""
