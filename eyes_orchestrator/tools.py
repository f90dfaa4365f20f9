"""Tool surface: the six callable pipeline tools.

Each tool takes a pydantic argument model (camelCase field names, as callers
send them) and returns a JSON-serialisable envelope. A tool never raises for
a failure inside its own work; the failure is returned as
``{"success": false, "error": "..."}``. Only unknown tool names and invalid
arguments raise, so a transport layer can map them to its own errors.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Literal, Optional, Type

import httpx
from pydantic import BaseModel, ConfigDict, Field

from .artifacts import ArtifactStore
from .config import EyesConfig
from .consolidate import consolidate
from .e2e import load_index, run_e2e
from .html_report import generate_html_report
from .inspection import InspectionEngine, failed_checks, save_inspection
from .judges import OcrEngine, OcrJudge, PixelDiffJudge, VlmJudge
from .models import Scenario
from .timeline import TimelineLogger, create_timeline_logger, generate_run_id
from .unit_tests import generate_unit_tests, run_unit_tests
from .vlm import OllamaJudgeClient

logger = logging.getLogger(__name__)


class UnknownToolError(KeyError):
    """Raised when a tool name is not registered."""


# =============================================================================
# Argument models
# =============================================================================


class ToolArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class GenerateUnitTestsArgs(ToolArgs):
    target_path: str = Field(alias="targetPath", description="Path to the file or directory to generate tests for")
    test_strategy: Literal["basic", "comprehensive", "edge-cases"] = Field(
        "basic", alias="testStrategy", description="Test generation strategy",
    )


class RunUnitTestsArgs(ToolArgs):
    test_path: Optional[str] = Field(None, alias="testPath", description="Test path (runs all tests when omitted)")
    coverage: bool = Field(False, description="Include a coverage report")


class RunE2EArgs(ToolArgs):
    base_url: str = Field(alias="baseUrl", description="Base URL of the application to test")
    steps: List[Dict[str, Any]] = Field(description="Ordered test steps")
    attended_mode: bool = Field(
        False, alias="attendedMode", description="Show the browser window instead of running headless",
    )


class InspectScreenshotsArgs(ToolArgs):
    screenshot_dir: str = Field(alias="screenshotDir", description="Directory containing screenshots")
    baseline_dir: Optional[str] = Field(None, alias="baselineDir", description="Directory of baseline images")
    ocr_languages: Optional[List[str]] = Field(
        None, alias="ocrLanguages", description="OCR language codes (e.g. ['eng', 'ara'])",
    )


class ConsolidateReportArgs(ToolArgs):
    output_path: Optional[str] = Field(None, alias="outputPath", description="Path for the consolidated report")


class GenerateHtmlReportArgs(ToolArgs):
    report_path: Optional[str] = Field(None, alias="reportPath", description="Consolidated JSON report to render")
    output_path: Optional[str] = Field(None, alias="outputPath", description="Path for the HTML report")


# =============================================================================
# Context
# =============================================================================


@dataclass
class ToolContext:
    """Shared configuration and collaborators for tool calls."""
    config: EyesConfig
    store: ArtifactStore
    ocr_engine: Optional[OcrEngine] = None
    http_client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_config(cls, config: EyesConfig, **kwargs: Any) -> "ToolContext":
        return cls(config=config, store=ArtifactStore.from_config(config), **kwargs)

    def resolve(self, path: Optional[str]) -> Optional[Path]:
        return self.config.resolve_path(path) if path else None

    def timeline(self, prefix: str) -> TimelineLogger:
        return create_timeline_logger(self.store.root, generate_run_id(prefix))

    def inspection_engine(self, timeline: Optional[TimelineLogger] = None) -> InspectionEngine:
        inspection = self.config.inspection
        client = OllamaJudgeClient.from_config(self.config.judge, http_client=self.http_client)
        return InspectionEngine(
            pixel_judge=PixelDiffJudge(
                inspection.diff_threshold_percent,
                inspection.pixel_threshold,
                inspection.count_anti_aliased,
            ),
            ocr_judge=OcrJudge(self.ocr_engine),
            vlm_judge=VlmJudge(client),
            timeline=timeline,
        )


Handler = Callable[[Any, ToolContext], Awaitable[Dict[str, Any]]]


def envelope(func: Handler) -> Handler:
    """Turn any exception raised by a tool body into a failure envelope."""

    @functools.wraps(func)
    async def wrapper(args: Any, ctx: ToolContext) -> Dict[str, Any]:
        try:
            return await func(args, ctx)
        except Exception as e:
            logger.error("Tool %s failed: %s", func.__name__, e)
            logger.debug("Tool failure details", exc_info=True)
            return {"success": False, "error": str(e)}

    return wrapper


# =============================================================================
# Tools
# =============================================================================


@envelope
async def generate_unit_tests_tool(args: GenerateUnitTestsArgs, ctx: ToolContext) -> Dict[str, Any]:
    target = ctx.resolve(args.target_path)
    generated = await asyncio.to_thread(generate_unit_tests, target, args.test_strategy)
    return {
        "success": True,
        "generatedTests": [str(p) for p in generated],
        "strategy": args.test_strategy,
        "message": f"Generated {len(generated)} test file(s)",
    }


@envelope
async def run_unit_tests_tool(args: RunUnitTestsArgs, ctx: ToolContext) -> Dict[str, Any]:
    return await asyncio.to_thread(
        run_unit_tests,
        ctx.config.unit_tests,
        ctx.store,
        ctx.config.repo_root,
        args.test_path,
        args.coverage,
        ctx.timeline("unit"),
    )


@envelope
async def run_e2e_tool(args: RunE2EArgs, ctx: ToolContext) -> Dict[str, Any]:
    scenario = Scenario.from_dict({"baseUrl": args.base_url, "steps": args.steps})
    report, _ = await run_e2e(
        scenario,
        ctx.config,
        store=ctx.store,
        attended=args.attended_mode,
        timeline=ctx.timeline("e2e"),
    )
    return report.to_dict()


@envelope
async def inspect_screenshots_tool(args: InspectScreenshotsArgs, ctx: ToolContext) -> Dict[str, Any]:
    engine = ctx.inspection_engine(ctx.timeline("inspect"))
    report = await engine.inspect(
        ctx.resolve(args.screenshot_dir),
        load_index(ctx.store),
        baseline_dir=ctx.resolve(args.baseline_dir),
        ocr_languages=args.ocr_languages or ctx.config.inspection.ocr_languages,
    )
    save_inspection(ctx.store, report)
    failures = failed_checks(report)
    if failures:
        logger.warning("%d inspection check(s) failed", len(failures))
    return report.to_dict()


@envelope
async def consolidate_report_tool(args: ConsolidateReportArgs, ctx: ToolContext) -> Dict[str, Any]:
    result = consolidate(ctx.store, ctx.resolve(args.output_path))
    ctx.timeline("report").report_written(result["reportPath"], result["report"]["summary"]["overallStatus"])
    return {"success": True, **result}


@envelope
async def generate_html_report_tool(args: GenerateHtmlReportArgs, ctx: ToolContext) -> Dict[str, Any]:
    path = generate_html_report(ctx.store, ctx.resolve(args.report_path), ctx.resolve(args.output_path))
    ctx.timeline("report").report_written(str(path), "html")
    return {
        "success": True,
        "htmlPath": str(path),
        "message": f"HTML report generated at {path}",
    }


# =============================================================================
# Registry
# =============================================================================


@dataclass(frozen=True)
class Tool:
    name: str
    description: str
    args_model: Type[ToolArgs]
    handler: Handler

    def input_schema(self) -> Dict[str, Any]:
        return self.args_model.model_json_schema(by_alias=True)


TOOLS: Dict[str, Tool] = {
    tool.name: tool
    for tool in (
        Tool(
            "generate_unit_tests",
            "Generate pytest unit test scaffolding for Python sources",
            GenerateUnitTestsArgs,
            generate_unit_tests_tool,
        ),
        Tool(
            "run_unit_tests",
            "Run pytest unit tests and parse the results",
            RunUnitTestsArgs,
            run_unit_tests_tool,
        ),
        Tool(
            "run_e2e",
            "Run a scripted Playwright E2E scenario with screenshot capture",
            RunE2EArgs,
            run_e2e_tool,
        ),
        Tool(
            "inspect_screenshots",
            "Inspect screenshots with visual diff, OCR and VLM checks",
            InspectScreenshotsArgs,
            inspect_screenshots_tool,
        ),
        Tool(
            "consolidate_report",
            "Consolidate all test results into a single report",
            ConsolidateReportArgs,
            consolidate_report_tool,
        ),
        Tool(
            "generate_html_report",
            "Generate an HTML report with embedded screenshots",
            GenerateHtmlReportArgs,
            generate_html_report_tool,
        ),
    )
}


def get_tool(name: str) -> Tool:
    try:
        return TOOLS[name]
    except KeyError:
        raise UnknownToolError(name) from None


async def call_tool(name: str, arguments: Optional[Dict[str, Any]], ctx: ToolContext) -> Dict[str, Any]:
    """Validate ``arguments`` and run the named tool.

    Raises:
        UnknownToolError: If no tool has that name.
        pydantic.ValidationError: If the arguments do not fit the tool's model.
    """
    tool = get_tool(name)
    args = tool.args_model.model_validate(arguments or {})
    logger.info("Calling tool %s", name)
    return await tool.handler(args, ctx)
