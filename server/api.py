"""FastAPI request/response server for the Eyes tools.

Endpoints:
- GET  /api/health         service status and version
- GET  /api/tools          registered tools with their JSON input schemas
- POST /api/tools/{name}   run a tool; the body is the tool's arguments

Tool failures are returned as ``{"success": false, "error": ...}`` with
status 200. Only unknown tools (404) and invalid arguments (422) are HTTP
errors.

Usage:
    from server.api import app
    import uvicorn

    uvicorn.run(app, host="127.0.0.1", port=8000)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import Body, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ValidationError

from eyes_orchestrator import __version__
from eyes_orchestrator.config import load_config
from eyes_orchestrator.errors import ConfigError
from eyes_orchestrator.tools import TOOLS, ToolContext, UnknownToolError, call_tool

logger = logging.getLogger(__name__)


# =============================================================================
# Pydantic models for responses
# =============================================================================


class HealthResponse(BaseModel):
    """Response for health check."""

    status: str
    version: str
    config_path: Optional[str] = None
    artifacts_root: Optional[str] = None


class ToolInfo(BaseModel):
    """A registered tool."""

    name: str
    description: str
    input_schema: Dict[str, Any]


class ToolListResponse(BaseModel):
    """Response for list of tools."""

    tools: List[ToolInfo]
    total: int


# =============================================================================
# Dependencies
# =============================================================================


_context: Optional[ToolContext] = None


def get_tool_context() -> ToolContext:
    """Get or lazily create the shared tool context."""
    global _context
    if _context is None:
        try:
            _context = ToolContext.from_config(load_config())
        except ConfigError as e:
            raise HTTPException(status_code=500, detail=str(e))
    return _context


def set_tool_context(ctx: Optional[ToolContext]) -> None:
    """Replace the shared tool context (None resets it)."""
    global _context
    _context = ctx


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    try:
        ctx = get_tool_context()
        logger.info("Serving Eyes tools, artifacts at %s", ctx.store.root)
    except HTTPException as e:
        logger.error("Configuration problem at startup: %s", e.detail)

    yield


# =============================================================================
# FastAPI application
# =============================================================================


app = FastAPI(
    title="Eyes Orchestrator API",
    description="Tool server for scripted UI testing and screenshot inspection",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Endpoints
# =============================================================================


@app.get("/api/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    ctx = get_tool_context()
    return HealthResponse(
        status="ok",
        version=__version__,
        config_path=str(ctx.config.path) if ctx.config.path else None,
        artifacts_root=str(ctx.store.root),
    )


@app.get("/api/tools", response_model=ToolListResponse)
async def list_tools() -> ToolListResponse:
    tools = [
        ToolInfo(name=t.name, description=t.description, input_schema=t.input_schema())
        for t in TOOLS.values()
    ]
    return ToolListResponse(tools=tools, total=len(tools))


@app.post("/api/tools/{name}")
async def run_tool(name: str, arguments: Optional[Dict[str, Any]] = Body(default=None)) -> Dict[str, Any]:
    """Run a tool and return its envelope."""
    if name not in TOOLS:
        raise HTTPException(status_code=404, detail=f"Unknown tool: {name}")

    ctx = get_tool_context()
    try:
        return await call_tool(name, arguments, ctx)
    except UnknownToolError:
        raise HTTPException(status_code=404, detail=f"Unknown tool: {name}")
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))
