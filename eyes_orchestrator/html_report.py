"""Static HTML rendering of a consolidated report.

The output is a single self-contained file: styles are inline and
screenshots that still exist on disk are embedded as data URIs, so the
report can be attached to a CI run and opened anywhere.
"""

from __future__ import annotations

import base64
import html
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from .artifacts import CONSOLIDATED_REPORT, HTML_REPORT, SCREENSHOT_EXTENSIONS, ArtifactStore

logger = logging.getLogger(__name__)

STATUS_COLORS = {
    "passed": "#10b981",
    "failed": "#ef4444",
    "partial": "#f59e0b",
}

STATUS_ICONS = {
    "passed": "✓",
    "failed": "✗",
    "partial": "!",
}

STYLES = """
* { margin: 0; padding: 0; box-sizing: border-box; }
body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
       line-height: 1.6; color: #1f2937; background: #eef0f6; padding: 2rem; }
.container { max-width: 1200px; margin: 0 auto; background: white; border-radius: 16px;
             box-shadow: 0 20px 60px rgba(0,0,0,0.15); overflow: hidden; }
.header { background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); color: white;
          padding: 2rem; text-align: center; }
.header h1 { font-size: 2.5rem; margin-bottom: 0.5rem; }
.status-badge { display: inline-block; padding: 0.5rem 1.5rem; border-radius: 24px;
                font-weight: 600; margin-top: 1rem; }
.metrics { display: grid; grid-template-columns: repeat(auto-fit, minmax(250px, 1fr));
           gap: 1.5rem; padding: 2rem; background: #f9fafb; }
.metric-card { background: white; padding: 1.5rem; border-radius: 12px;
               box-shadow: 0 1px 3px rgba(0,0,0,0.1); }
.metric-card h3 { color: #6b7280; font-size: 0.875rem; text-transform: uppercase; margin-bottom: 0.5rem; }
.metric-value { font-size: 2rem; font-weight: bold; }
.metric-detail { font-size: 0.875rem; color: #6b7280; margin-top: 0.25rem; }
.progress-bar { width: 100%; height: 8px; background: #e5e7eb; border-radius: 4px;
                overflow: hidden; margin-top: 0.5rem; }
.progress-fill { height: 100%; background: #10b981; }
.section { padding: 2rem; }
.section h2 { font-size: 1.5rem; margin-bottom: 1rem; border-bottom: 2px solid #e5e7eb;
              padding-bottom: 0.5rem; }
.test-list { list-style: none; }
.test-item { padding: 1rem; margin-bottom: 0.5rem; border-radius: 8px; }
.test-item.failed { background: #fee2e2; border-left: 4px solid #ef4444; }
.test-item .meta { font-size: 0.875rem; color: #6b7280; margin-top: 0.25rem; }
.test-item .error { font-size: 0.875rem; color: #ef4444; margin-top: 0.5rem; white-space: pre-wrap; }
.screenshot-grid { display: grid; grid-template-columns: repeat(auto-fill, minmax(300px, 1fr)); gap: 1rem; }
.screenshot-card { border: 1px solid #e5e7eb; border-radius: 8px; overflow: hidden; }
.screenshot-card img { width: 100%; height: 200px; object-fit: cover; cursor: pointer; }
.screenshot-card .missing { height: 200px; display: flex; align-items: center;
                            justify-content: center; background: #ddd; color: #999; }
.screenshot-card .caption { padding: 0.5rem; font-size: 0.875rem; color: #6b7280; background: #f9fafb; }
.modal { display: none; position: fixed; inset: 0; background: rgba(0,0,0,0.9); z-index: 1000; cursor: pointer; }
.modal img { position: absolute; top: 50%; left: 50%; transform: translate(-50%, -50%);
             max-width: 90%; max-height: 90%; }
.footer { padding: 2rem; text-align: center; background: #f9fafb; color: #6b7280;
          border-top: 1px solid #e5e7eb; }
"""

PAGE_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Eyes Test Report - {timestamp}</title>
    <style>{styles}</style>
</head>
<body>
    <div class="container">
        <div class="header">
            <h1>Eyes Test Report</h1>
            <div class="timestamp">{timestamp}</div>
            <div class="status-badge" style="background: {status_color}">{status_icon} {status_label}</div>
        </div>
        <div class="metrics">{metrics}</div>
        {sections}
        {screenshots}
        <div class="footer">Generated by Eyes &middot; {artifact_count} artifacts</div>
    </div>
    <div id="modal" class="modal" onclick="closeModal()">
        <img id="modalImg" src="" alt="Screenshot">
    </div>
    <script>
        function openModal(src) {{
            document.getElementById('modal').style.display = 'block';
            document.getElementById('modalImg').src = src;
        }}
        function closeModal() {{
            document.getElementById('modal').style.display = 'none';
        }}
    </script>
</body>
</html>
"""

METRIC_CARD_TEMPLATE = """
            <div class="metric-card">
                <h3>{title}</h3>
                <div class="metric-value">{value}</div>
                <div class="metric-detail">{detail}</div>{progress}
            </div>"""

PROGRESS_TEMPLATE = """
                <div class="progress-bar"><div class="progress-fill" style="width: {percent}%"></div></div>"""

FAILURE_ITEM_TEMPLATE = """
            <li class="test-item failed">
                <strong>{title}</strong>{meta}{error}
            </li>"""


def _esc(value: Any) -> str:
    return html.escape("" if value is None else str(value))


def _percent(passed: int, total: int) -> int:
    return round(passed / total * 100) if total > 0 else 0


def _metric_card(title: str, value: str, detail: str, percent: Optional[int] = None) -> str:
    progress = PROGRESS_TEMPLATE.format(percent=percent) if percent is not None else ""
    return METRIC_CARD_TEMPLATE.format(
        title=_esc(title), value=_esc(value), detail=_esc(detail), progress=progress,
    )


def render_metric_cards(summary: Dict[str, Any]) -> str:
    cards: List[str] = []

    unit = summary.get("unitTests")
    if unit:
        pct = _percent(unit.get("passed", 0), unit.get("total", 0))
        cards.append(_metric_card("Unit Tests", f"{pct}%", f"{unit.get('passed', 0)}/{unit.get('total', 0)} passed", pct))

    e2e = summary.get("e2eTests")
    if e2e:
        pct = _percent(e2e.get("passedSteps", 0), e2e.get("totalSteps", 0))
        cards.append(_metric_card("E2E Tests", f"{pct}%", f"{e2e.get('passedSteps', 0)}/{e2e.get('totalSteps', 0)} steps", pct))

    visual = summary.get("visualTests")
    if visual:
        pct = _percent(visual.get("passedScreenshots", 0), visual.get("totalScreenshots", 0))
        cards.append(_metric_card(
            "Visual Tests", f"{pct}%",
            f"{visual.get('passedScreenshots', 0)}/{visual.get('totalScreenshots', 0)} screenshots", pct,
        ))
        ocr, diffs, vlm = visual.get("ocrChecks", 0), visual.get("visualDiffs", 0), visual.get("vlmChecks", 0)
        cards.append(_metric_card("Visual Checks", str(ocr + diffs + vlm), f"OCR: {ocr}, Diff: {diffs}, AI: {vlm}"))

    return "".join(cards)


def _failure_item(title: str, meta: Optional[str] = None, error: Optional[str] = None) -> str:
    return FAILURE_ITEM_TEMPLATE.format(
        title=_esc(title),
        meta=f'\n                <div class="meta">{_esc(meta)}</div>' if meta else "",
        error=f'\n                <div class="error">{_esc(error)}</div>' if error else "",
    )


def _section(heading: str, items: List[str]) -> str:
    return (
        f'\n        <div class="section">\n            <h2>{_esc(heading)}</h2>\n'
        f'            <ul class="test-list">{"".join(items)}\n            </ul>\n        </div>'
    )


def render_failure_sections(details: Dict[str, Any]) -> str:
    sections: List[str] = []

    failed_tests = (details.get("unitTests") or {}).get("failedTests") or []
    if failed_tests:
        sections.append(_section("Failed Unit Tests", [
            _failure_item(t.get("test") or "", t.get("suite"), t.get("error")) for t in failed_tests
        ]))

    failed_steps = (details.get("e2eTests") or {}).get("failedSteps") or []
    if failed_steps:
        sections.append(_section("Failed E2E Steps", [
            _failure_item(f"Step {s.get('step')}: {s.get('action')}", s.get("screenshot"), s.get("error"))
            for s in failed_steps
        ]))

    failed_checks = (details.get("visualInspection") or {}).get("failedChecks") or []
    if failed_checks:
        sections.append(_section("Failed Visual Checks", [
            _failure_item(
                f"{Path(c.get('screenshot') or '').name}: {c.get('type')}", None, c.get("details")
            )
            for c in failed_checks
        ]))

    return "".join(sections)


def _image_src(path: Path) -> Optional[str]:
    if not path.is_file():
        return None
    mime = "image/png" if path.suffix.lower() == ".png" else "image/jpeg"
    return f"data:{mime};base64," + base64.b64encode(path.read_bytes()).decode("ascii")


def render_screenshots(screenshots: List[str]) -> str:
    if not screenshots:
        return ""

    cards: List[str] = []
    for raw in screenshots:
        path = Path(raw)
        name = _esc(path.stem)
        src = _image_src(path)
        if src:
            image = f'<img src="{src}" alt="{name}" onclick="openModal(this.src)">'
        else:
            image = f'<div class="missing">{name}</div>'
        cards.append(
            f'\n                <div class="screenshot-card">{image}'
            f'<div class="caption">{name}</div></div>'
        )

    return (
        '\n        <div class="section">\n            <h2>Screenshots</h2>\n'
        f'            <div class="screenshot-grid">{"".join(cards)}\n            </div>\n        </div>'
    )


def render_html(report: Dict[str, Any]) -> str:
    """Render a consolidated report dict as a complete HTML page."""
    summary = report.get("summary") or {}
    artifacts = report.get("artifacts") or []
    status = summary.get("overallStatus", "partial")
    screenshots = [a for a in artifacts if a.lower().endswith(SCREENSHOT_EXTENSIONS)]

    return PAGE_TEMPLATE.format(
        timestamp=_esc(report.get("timestamp", "")),
        styles=STYLES,
        status_color=STATUS_COLORS.get(status, "#6b7280"),
        status_icon=STATUS_ICONS.get(status, ""),
        status_label=_esc(status.upper()),
        metrics=render_metric_cards(summary),
        sections=render_failure_sections(report.get("details") or {}),
        screenshots=render_screenshots(screenshots),
        artifact_count=len(artifacts),
    )


def generate_html_report(
    store: ArtifactStore,
    report_path: Optional[Path] = None,
    output_path: Optional[Path] = None,
) -> Path:
    """Render the consolidated report to HTML.

    Raises:
        FileNotFoundError: If the consolidated report does not exist.
    """
    source = report_path or store.path(CONSOLIDATED_REPORT)
    report = store.read_json(CONSOLIDATED_REPORT, path=source)
    if report is None:
        raise FileNotFoundError(f"Consolidated report not found: {source}")

    path = store.write_text(HTML_REPORT, render_html(report), path=output_path)
    logger.info("HTML report written to %s", path)
    return path
