"""Unit tests for the timeline logger and the artifact store."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from eyes_orchestrator.artifacts import E2E_RESULTS, ArtifactStore, list_images
from eyes_orchestrator.timeline import EventType, TimelineLogger, create_timeline_logger, generate_run_id


class TestTimelineLogger:
    """Tests for TimelineLogger."""

    def test_creates_file_under_logs(self, temp_dir: Path):
        logger = create_timeline_logger(temp_dir, "e2e-1")
        assert logger.timeline_path == temp_dir / "logs" / "timeline.jsonl"
        assert logger.timeline_path.exists()

    def test_events_are_compact_json_lines(self, temp_dir: Path):
        logger = TimelineLogger(temp_dir / "timeline.jsonl", run_id="run-1")
        logger.run_start("http://x", 3)
        logger.step_fail(1, "click", error="Element not found: #go")

        lines = (temp_dir / "timeline.jsonl").read_text(encoding="utf-8").splitlines()
        assert len(lines) == 2
        first = json.loads(lines[0])
        assert first["event"] == "run_start"
        assert first["run_id"] == "run-1"
        assert first["ts"].endswith("Z")
        assert first["details"] == {"base_url": "http://x", "step_count": 3}
        assert ", " not in lines[1]

    def test_get_events_by_type(self, temp_dir: Path):
        logger = TimelineLogger(temp_dir / "timeline.jsonl")
        logger.check_result("a.png", "ocr", True, "found")
        logger.check_result("b.png", "ocr", False, "missing")
        logger.check_result("c.png", "visual-diff", True, "0.00% pixels different")

        failed = logger.get_events_by_type(EventType.CHECK_FAIL)
        assert [e["screenshot"] for e in failed] == ["b.png"]
        assert len(logger.get_events_by_type(EventType.CHECK_PASS)) == 2

    def test_malformed_lines_skipped(self, temp_dir: Path):
        path = temp_dir / "timeline.jsonl"
        path.write_text('{"event": "run_start"}\nnot json\n', encoding="utf-8")
        assert TimelineLogger(path).read_events() == [{"event": "run_start"}]

    def test_run_id_prefix(self):
        assert generate_run_id("inspect").startswith("inspect-")


class TestArtifactStore:
    """Tests for ArtifactStore."""

    def test_json_round_trip(self, temp_dir: Path):
        store = ArtifactStore(temp_dir / ".artifacts")
        path = store.write_json(E2E_RESULTS, {"success": True})

        assert path == temp_dir / ".artifacts" / "e2e-results.json"
        assert store.read_json(E2E_RESULTS) == {"success": True}

    def test_missing_or_corrupt_json_reads_as_none(self, temp_dir: Path):
        store = ArtifactStore(temp_dir)
        assert store.read_json("absent.json") is None

        (temp_dir / "broken.json").write_text("{", encoding="utf-8")
        assert store.read_json("broken.json") is None

    def test_screenshot_path(self, temp_dir: Path):
        store = ArtifactStore(temp_dir, "shots")
        assert store.screenshot_path("auto-step-2") == temp_dir / "shots" / "auto-step-2.png"

    def test_list_images_sorted_and_filtered(self, temp_dir: Path, make_image):
        make_image(temp_dir / "b.png")
        make_image(temp_dir / "a.jpg")
        (temp_dir / "notes.txt").write_text("x", encoding="utf-8")

        assert [p.name for p in list_images(temp_dir)] == ["a.jpg", "b.png"]

    def test_list_images_missing_dir(self, temp_dir: Path):
        with pytest.raises(FileNotFoundError):
            list_images(temp_dir / "nope")

    def test_list_screenshots_empty_when_missing(self, temp_dir: Path):
        assert ArtifactStore(temp_dir / "fresh").list_screenshots() == []
