"""Configuration loader for Eyes orchestrator.

Loads and validates .eyes/eyes.yml against schemas/eyes-config.schema.json
and resolves paths relative to the repository root. A missing config file
yields the defaults; every setting has one.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from jsonschema import Draft7Validator

from .errors import ConfigError


SCHEMAS_DIR = Path(__file__).resolve().parent / "schemas"

DEFAULT_JUDGE_HOST = "http://127.0.0.1:11434"
DEFAULT_JUDGE_MODEL = "llava:13b"


def _read_schema(schema_name: str) -> Dict[str, Any]:
    """Load a JSON schema from the schemas directory."""
    schema_path = SCHEMAS_DIR / schema_name
    if not schema_path.exists():
        raise FileNotFoundError(f"Schema not found: {schema_path}")
    return json.loads(schema_path.read_text(encoding="utf-8"))


def validate_against_schema(data: Any, schema_name: str) -> Tuple[bool, List[str]]:
    """Validate data against a JSON schema.

    Args:
        data: The data to validate
        schema_name: Name of schema file in schemas/ directory

    Returns:
        Tuple of (is_valid, list_of_error_messages)
    """
    schema = _read_schema(schema_name)
    validator = Draft7Validator(schema)
    errors = sorted(validator.iter_errors(data), key=lambda e: list(e.path))

    if not errors:
        return True, []

    messages: List[str] = []
    for err in errors[:50]:
        location = ".".join([str(p) for p in err.absolute_path]) or "<root>"
        messages.append(f"{location}: {err.message}")

    if len(errors) > 50:
        messages.append(f"... and {len(errors) - 50} more errors")

    return False, messages


@dataclass
class ArtifactsConfig:
    """Where reports, screenshots and logs are written."""
    root: str = ".artifacts"
    screenshots_dir: str = "screenshots"


@dataclass
class BrowserConfig:
    """Browser session settings for E2E runs."""
    browser: str = "chromium"
    headless: bool = True
    viewport_width: int = 1280
    viewport_height: int = 720
    launch_args: List[str] = field(default_factory=lambda: ["--no-sandbox", "--disable-setuid-sandbox"])
    retry_backoff_ms: int = 1000


@dataclass
class InspectionConfig:
    """Screenshot inspection thresholds."""
    diff_threshold_percent: float = 5.0
    pixel_threshold: float = 0.1
    count_anti_aliased: bool = False
    ocr_languages: List[str] = field(default_factory=lambda: ["eng"])


@dataclass
class JudgeConfig:
    """Vision judge service settings."""
    host: str = DEFAULT_JUDGE_HOST
    model: str = DEFAULT_JUDGE_MODEL
    temperature: float = 0.1
    seed: int = 42
    timeout_seconds: int = 120


@dataclass
class UnitTestConfig:
    """Unit test runner settings."""
    command: str = "pytest"
    timeout_seconds: int = 1800
    max_results: int = 50


@dataclass
class EyesConfig:
    """Full Eyes configuration with structured access."""

    path: Optional[Path]
    repo_root: Path
    raw_data: Dict[str, Any] = field(default_factory=dict)

    artifacts: ArtifactsConfig = field(default_factory=ArtifactsConfig)
    browser: BrowserConfig = field(default_factory=BrowserConfig)
    inspection: InspectionConfig = field(default_factory=InspectionConfig)
    judge: JudgeConfig = field(default_factory=JudgeConfig)
    unit_tests: UnitTestConfig = field(default_factory=UnitTestConfig)

    def resolve_path(self, relative_path: str) -> Path:
        """Resolve a path relative to the repo root."""
        path = Path(relative_path)
        if path.is_absolute():
            return path
        return self.repo_root / path

    @property
    def artifacts_root(self) -> Path:
        return self.resolve_path(self.artifacts.root)


def _parse_artifacts(data: Dict[str, Any]) -> ArtifactsConfig:
    return ArtifactsConfig(
        root=data.get("root", ".artifacts"),
        screenshots_dir=data.get("screenshots_dir", "screenshots"),
    )


def _parse_browser(data: Dict[str, Any]) -> BrowserConfig:
    viewport = data.get("viewport", {})
    defaults = BrowserConfig()
    return BrowserConfig(
        browser=data.get("browser", defaults.browser),
        headless=data.get("headless", defaults.headless),
        viewport_width=viewport.get("width", defaults.viewport_width),
        viewport_height=viewport.get("height", defaults.viewport_height),
        launch_args=data.get("launch_args", defaults.launch_args),
        retry_backoff_ms=data.get("retry_backoff_ms", defaults.retry_backoff_ms),
    )


def _parse_inspection(data: Dict[str, Any]) -> InspectionConfig:
    return InspectionConfig(
        diff_threshold_percent=data.get("diff_threshold_percent", 5.0),
        pixel_threshold=data.get("pixel_threshold", 0.1),
        count_anti_aliased=data.get("count_anti_aliased", False),
        ocr_languages=data.get("ocr_languages", ["eng"]),
    )


def _parse_judge(data: Dict[str, Any]) -> JudgeConfig:
    # Environment wins over the file so CI can point at a shared judge
    host = os.environ.get("OLLAMA_HOST") or data.get("host") or DEFAULT_JUDGE_HOST
    if "://" not in host:
        host = f"http://{host}"
    return JudgeConfig(
        host=host.rstrip("/"),
        model=data.get("model", DEFAULT_JUDGE_MODEL),
        temperature=data.get("temperature", 0.1),
        seed=data.get("seed", 42),
        timeout_seconds=data.get("timeout_seconds", 120),
    )


def _parse_unit_tests(data: Dict[str, Any]) -> UnitTestConfig:
    return UnitTestConfig(
        command=data.get("command", "pytest"),
        timeout_seconds=data.get("timeout_seconds", 1800),
        max_results=data.get("max_results", 50),
    )


def parse_config(
    raw_data: Dict[str, Any],
    repo_root: Path,
    path: Optional[Path] = None,
) -> EyesConfig:
    """Validate a raw config mapping and build an EyesConfig.

    Raises:
        ConfigError: If the data does not match the config schema.
    """
    valid, errors = validate_against_schema(raw_data, "eyes-config.schema.json")
    if not valid:
        where = path or "<inline>"
        raise ConfigError(
            f"Invalid configuration in {where}:\n" +
            "\n".join(f"  - {e}" for e in errors)
        )

    return EyesConfig(
        path=path,
        repo_root=repo_root,
        raw_data=raw_data,
        artifacts=_parse_artifacts(raw_data.get("artifacts", {})),
        browser=_parse_browser(raw_data.get("browser", {})),
        inspection=_parse_inspection(raw_data.get("inspection", {})),
        judge=_parse_judge(raw_data.get("judge", {})),
        unit_tests=_parse_unit_tests(raw_data.get("unit_tests", {})),
    )


def load_config(
    config_path: Optional[Path] = None,
    repo_root: Optional[Path] = None,
) -> EyesConfig:
    """Load and validate Eyes configuration from a YAML file.

    Args:
        config_path: Path to eyes.yml. Defaults to .eyes/eyes.yml in repo_root.
        repo_root: Repository root directory. Defaults to current working directory.

    Returns:
        EyesConfig instance. Defaults are used when no config file exists
        and no explicit path was requested.

    Raises:
        ConfigError: If an explicitly requested file is missing, or if the
            config is invalid against the schema.
    """
    if repo_root is None:
        repo_root = Path.cwd()
    repo_root = repo_root.resolve()

    explicit = config_path is not None

    # Check for environment override
    env_config = os.environ.get("EYES_CONFIG")
    if env_config:
        config_path = Path(env_config)
        explicit = True

    if config_path is None:
        config_path = get_default_config_path(repo_root)
    config_path = config_path.resolve()

    if not config_path.exists():
        if explicit:
            raise ConfigError(f"Configuration file not found: {config_path}")
        return parse_config({}, repo_root=repo_root)

    try:
        raw_data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse {config_path}: {e}") from e

    return parse_config(raw_data, repo_root=repo_root, path=config_path)


def get_default_config_path(repo_root: Optional[Path] = None) -> Path:
    """Get the default configuration file path."""
    if repo_root is None:
        repo_root = Path.cwd()
    return repo_root / ".eyes" / "eyes.yml"
