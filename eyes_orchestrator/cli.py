from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import shutil
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml
from pydantic import ValidationError

from . import __version__
from .config import EyesConfig, get_default_config_path, load_config
from .errors import ConfigError
from .exec import tool_version
from .tools import ToolContext, UnknownToolError, call_tool
from .vlm import OllamaJudgeClient


EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


def eprint(msg: str) -> None:
    print(msg, file=sys.stderr)


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load_config(args: argparse.Namespace) -> EyesConfig:
    return load_config(Path(args.config) if args.config else None)


def _invoke(
    args: argparse.Namespace,
    tool: str,
    arguments: Dict[str, Any],
    render: Callable[[Dict[str, Any]], List[str]],
) -> int:
    """Run a tool and print its result; returns the process exit code."""
    try:
        ctx = ToolContext.from_config(_load_config(args))
        result = asyncio.run(call_tool(tool, arguments, ctx))
    except ConfigError as e:
        eprint(f"Config error: {e}")
        return EXIT_USAGE
    except (ValidationError, UnknownToolError) as e:
        eprint(f"Invalid arguments for {tool}: {e}")
        return EXIT_USAGE

    if getattr(args, "json", False):
        print(json.dumps(result, indent=2))
    elif "error" in result and result.get("success") is False:
        eprint(f"✗ {tool}: {result['error']}")
    else:
        for line in render(result):
            print(line)

    return EXIT_OK if result.get("success") else EXIT_FAILED


def load_scenario_file(path: Path) -> Dict[str, Any]:
    """Load a scenario from JSON or YAML."""
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in (".yml", ".yaml"):
        data = yaml.safe_load(text)
    else:
        data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"Scenario file must contain a mapping: {path}")
    return data


# =============================================================================
# Renderers
# =============================================================================


def _render_e2e(result: Dict[str, Any]) -> List[str]:
    passed = sum(1 for r in result["results"] if r["success"])
    lines = [
        f"E2E run against {result['baseUrl']}",
        f"  Steps: {result['executedSteps']}/{result['totalSteps']} executed, {passed} passed",
    ]
    for r in result["results"]:
        status = "✓" if r["success"] else "✗"
        suffix = f" - {r['error']}" if r.get("error") else ""
        lines.append(f"    {status} step {r['step']} {r['action']}{suffix}")
    return lines


def _render_inspection(result: Dict[str, Any]) -> List[str]:
    lines = [f"Inspected {result['totalScreenshots']} screenshot(s)"]
    for r in result["results"]:
        lines.append(f"  {'✓' if r['passed'] else '✗'} {Path(r['screenshot']).name}")
        for c in r["checks"]:
            lines.append(f"      {'✓' if c['passed'] else '✗'} {c['type']}: {c['details']}")
    return lines


def _render_unit_run(result: Dict[str, Any]) -> List[str]:
    s = result["summary"]
    lines = [f"Unit tests: {s['passed']} passed, {s['failed']} failed, {s['skipped']} skipped ({s['duration']}ms)"]
    for r in result["results"]:
        if r["status"] == "failed":
            lines.append(f"  ✗ {r['suite']}::{r['test']}")
    return lines


# =============================================================================
# Commands
# =============================================================================


def command_e2e(args: argparse.Namespace) -> int:
    try:
        scenario = load_scenario_file(Path(args.scenario))
    except (OSError, ValueError, yaml.YAMLError) as e:
        eprint(f"Cannot read scenario {args.scenario}: {e}")
        return EXIT_USAGE

    if args.base_url:
        scenario["baseUrl"] = args.base_url
    scenario["attendedMode"] = bool(args.attended or scenario.get("attendedMode"))
    return _invoke(args, "run_e2e", scenario, _render_e2e)


def command_inspect(args: argparse.Namespace) -> int:
    arguments: Dict[str, Any] = {"screenshotDir": args.screenshot_dir}
    if args.baseline:
        arguments["baselineDir"] = args.baseline
    if args.lang:
        arguments["ocrLanguages"] = args.lang
    return _invoke(args, "inspect_screenshots", arguments, _render_inspection)


def command_consolidate(args: argparse.Namespace) -> int:
    arguments = {"outputPath": args.output} if args.output else {}
    return _invoke(
        args, "consolidate_report", arguments,
        lambda r: [r["summary"], f"Report: {r['reportPath']}"],
    )


def command_report(args: argparse.Namespace) -> int:
    arguments: Dict[str, Any] = {}
    if args.input:
        arguments["reportPath"] = args.input
    if args.output:
        arguments["outputPath"] = args.output
    return _invoke(args, "generate_html_report", arguments, lambda r: [r["message"]])


def command_unit_generate(args: argparse.Namespace) -> int:
    return _invoke(
        args,
        "generate_unit_tests",
        {"targetPath": args.target, "testStrategy": args.strategy},
        lambda r: [r["message"]] + [f"  {p}" for p in r["generatedTests"]],
    )


def command_unit_run(args: argparse.Namespace) -> int:
    arguments: Dict[str, Any] = {"coverage": args.coverage}
    if args.path:
        arguments["testPath"] = args.path
    return _invoke(args, "run_unit_tests", arguments, _render_unit_run)


def command_serve(args: argparse.Namespace) -> int:
    import uvicorn

    if args.config:
        os.environ["EYES_CONFIG"] = str(Path(args.config).resolve())
    uvicorn.run("server.api:app", host=args.host, port=args.port, log_level="debug" if args.verbose else "info")
    return EXIT_OK


def _tool_check(name: str, cmd: str) -> Dict[str, Any]:
    path = shutil.which(cmd)
    if not path:
        return {"name": name, "status": "missing", "cmd": cmd}
    return {"name": name, "status": "ok", "cmd": cmd, "path": path, "version": tool_version(cmd)}


def command_scan(args: argparse.Namespace) -> int:
    checks: List[Dict[str, Any]] = [
        _tool_check("pytest", "pytest"),
        _tool_check("playwright", "playwright"),
        _tool_check("tesseract", "tesseract"),
    ]

    config_path = Path(args.config) if args.config else get_default_config_path()
    config_err: Optional[str] = None
    judge: Dict[str, Any] = {"ok": False}
    try:
        cfg = _load_config(args)
        client = OllamaJudgeClient.from_config(cfg.judge)
        judge = {
            "ok": asyncio.run(client.is_model_available()),
            "host": cfg.judge.host,
            "model": cfg.judge.model,
        }
    except ConfigError as e:
        config_err = str(e)

    report: Dict[str, Any] = {
        "status": "ready" if config_err is None else "config_error",
        "checks": checks,
        "config": {"path": str(config_path), "exists": config_path.exists(), "error": config_err},
        "judge": judge,
    }

    if args.json:
        print(json.dumps(report, indent=2))
        return EXIT_OK if config_err is None else EXIT_USAGE

    print("EYES ENVIRONMENT SCAN")
    print("---------------------")
    for c in checks:
        if c["status"] == "ok":
            print(f"✓ {c['name']}: {c.get('path')}")
        else:
            print(f"⚠ {c['name']}: not found")
    if config_err:
        print(f"✗ config: {config_path}")
        print(f"  {config_err}")
    else:
        print(f"✓ config: {config_path}{'' if config_path.exists() else ' (defaults)'}")
        marker = "✓" if judge["ok"] else "⚠"
        print(f"{marker} judge: {judge['model']} at {judge['host']}")

    return EXIT_OK if config_err is None else EXIT_USAGE


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="eyes", description="Eyes UI testing pipeline")
    p.add_argument("-V", "--version", action="version", version=f"eyes {__version__}")
    p.add_argument("-c", "--config", default=None, help="Path to .eyes/eyes.yml")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = p.add_subparsers(dest="cmd", required=True)

    sp = sub.add_parser("e2e", help="Run an E2E scenario (JSON or YAML)")
    sp.add_argument("scenario", help="Scenario file with baseUrl and steps")
    sp.add_argument("--base-url", default=None, help="Override the scenario base URL")
    sp.add_argument("--attended", action="store_true", help="Show the browser window")
    sp.add_argument("--json", action="store_true")
    sp.set_defaults(func=command_e2e)

    sp = sub.add_parser("inspect", help="Inspect captured screenshots")
    sp.add_argument("screenshot_dir", help="Directory containing screenshots")
    sp.add_argument("--baseline", default=None, help="Baseline image directory")
    sp.add_argument("--lang", nargs="+", default=None, help="OCR language codes")
    sp.add_argument("--json", action="store_true")
    sp.set_defaults(func=command_inspect)

    sp = sub.add_parser("consolidate", help="Fold all phase reports into one")
    sp.add_argument("-o", "--output", default=None, help="Consolidated report path")
    sp.add_argument("--json", action="store_true")
    sp.set_defaults(func=command_consolidate)

    sp = sub.add_parser("report", help="Render the consolidated report as HTML")
    sp.add_argument("-i", "--input", default=None, help="Consolidated report path")
    sp.add_argument("-o", "--output", default=None, help="HTML output path")
    sp.add_argument("--json", action="store_true")
    sp.set_defaults(func=command_report)

    sp_unit = sub.add_parser("unit", help="Unit test generation and runs")
    unit_sub = sp_unit.add_subparsers(dest="unit_cmd", required=True)

    sp = unit_sub.add_parser("generate", help="Generate pytest scaffolding")
    sp.add_argument("target", help="Python file or directory")
    sp.add_argument("-s", "--strategy", default="basic", choices=["basic", "comprehensive", "edge-cases"])
    sp.add_argument("--json", action="store_true")
    sp.set_defaults(func=command_unit_generate)

    sp = unit_sub.add_parser("run", help="Run pytest and record results")
    sp.add_argument("path", nargs="?", default=None, help="Test path")
    sp.add_argument("--coverage", action="store_true")
    sp.add_argument("--json", action="store_true")
    sp.set_defaults(func=command_unit_run)

    sp = sub.add_parser("serve", help="Serve the tools over HTTP")
    sp.add_argument("--host", default="127.0.0.1")
    sp.add_argument("--port", type=int, default=8000)
    sp.set_defaults(func=command_serve)

    sp = sub.add_parser("scan", help="Check environment/tools/config")
    sp.add_argument("--json", action="store_true")
    sp.set_defaults(func=command_scan)

    return p


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)
    rc = int(args.func(args))
    raise SystemExit(rc)


if __name__ == "__main__":
    main()
