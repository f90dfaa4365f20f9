"""HTTP server package for the Eyes tools.

Exposes the tool registry of ``eyes_orchestrator.tools`` as a small REST API.
"""

from .api import (
    # FastAPI application
    app,
    # Response models
    HealthResponse,
    ToolInfo,
    ToolListResponse,
    # Context management
    get_tool_context,
    set_tool_context,
)

__all__ = [
    "app",
    "HealthResponse",
    "ToolInfo",
    "ToolListResponse",
    "get_tool_context",
    "set_tool_context",
]
