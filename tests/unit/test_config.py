"""Unit tests for configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from eyes_orchestrator.config import (
    DEFAULT_JUDGE_HOST,
    load_config,
    parse_config,
    validate_against_schema,
)
from eyes_orchestrator.errors import ConfigError


def _write_config(root: Path, data: dict) -> Path:
    path = root / ".eyes" / "eyes.yml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


class TestLoadConfig:
    """Tests for load_config."""

    def test_missing_default_file_gives_defaults(self, temp_dir: Path):
        config = load_config(repo_root=temp_dir)

        assert config.path is None
        assert config.artifacts_root == temp_dir.resolve() / ".artifacts"
        assert config.browser.viewport_width == 1280
        assert config.browser.viewport_height == 720
        assert config.browser.retry_backoff_ms == 1000
        assert config.inspection.diff_threshold_percent == 5.0
        assert config.inspection.count_anti_aliased is False
        assert config.judge.host == DEFAULT_JUDGE_HOST
        assert config.judge.model == "llava:13b"

    def test_missing_explicit_file_raises(self, temp_dir: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(temp_dir / "nope.yml", repo_root=temp_dir)

    def test_reads_yaml_file(self, temp_dir: Path):
        _write_config(temp_dir, {
            "version": "1",
            "artifacts": {"root": "out"},
            "browser": {"headless": False, "viewport": {"width": 800, "height": 600}},
            "inspection": {"count_anti_aliased": True},
            "judge": {"host": "judge.local:11434", "model": "llava:7b"},
        })

        config = load_config(repo_root=temp_dir)

        assert config.path == (temp_dir / ".eyes" / "eyes.yml").resolve()
        assert config.artifacts_root == temp_dir.resolve() / "out"
        assert config.browser.headless is False
        assert config.browser.viewport_width == 800
        assert config.judge.host == "http://judge.local:11434"
        assert config.judge.model == "llava:7b"
        assert config.inspection.count_anti_aliased is True

    def test_env_config_override(self, temp_dir: Path, monkeypatch: pytest.MonkeyPatch):
        other = temp_dir / "custom.yml"
        other.write_text(yaml.safe_dump({"unit_tests": {"max_results": 7}}), encoding="utf-8")
        monkeypatch.setenv("EYES_CONFIG", str(other))

        config = load_config(repo_root=temp_dir)

        assert config.unit_tests.max_results == 7

    def test_ollama_host_env_wins(self, temp_dir: Path, monkeypatch: pytest.MonkeyPatch):
        _write_config(temp_dir, {"judge": {"host": "http://file-host:1"}})
        monkeypatch.setenv("OLLAMA_HOST", "http://env-host:2/")

        config = load_config(repo_root=temp_dir)

        assert config.judge.host == "http://env-host:2"

    def test_invalid_yaml_raises(self, temp_dir: Path):
        path = temp_dir / ".eyes" / "eyes.yml"
        path.parent.mkdir(parents=True)
        path.write_text("browser: [unclosed", encoding="utf-8")

        with pytest.raises(ConfigError, match="Failed to parse"):
            load_config(repo_root=temp_dir)

    def test_schema_violation_raises(self, temp_dir: Path):
        _write_config(temp_dir, {"browser": {"browser": "netscape"}})

        with pytest.raises(ConfigError, match="Invalid configuration"):
            load_config(repo_root=temp_dir)


class TestSchemaValidation:
    """Tests for validate_against_schema."""

    def test_unknown_top_level_key_rejected(self):
        valid, errors = validate_against_schema({"surprise": 1}, "eyes-config.schema.json")
        assert valid is False
        assert errors

    def test_empty_config_is_valid(self):
        assert validate_against_schema({}, "eyes-config.schema.json") == (True, [])

    def test_resolve_path_keeps_absolute(self, temp_dir: Path):
        config = parse_config({}, repo_root=temp_dir)
        absolute = temp_dir / "abs"
        assert config.resolve_path(str(absolute)) == absolute
        assert config.resolve_path("rel") == temp_dir / "rel"
