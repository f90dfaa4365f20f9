"""Eyes Orchestrator - scripted UI testing with deferred visual inspection."""

__all__ = [
    "__version__",
    "config",
    "errors",
    "models",
    "timeline",
    "artifacts",
]

__version__ = "0.1.0"

from eyes_orchestrator import config
from eyes_orchestrator import errors
from eyes_orchestrator import models
from eyes_orchestrator import timeline
from eyes_orchestrator import artifacts
