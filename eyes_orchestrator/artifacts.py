"""Artifact store for reports, screenshots and logs.

Everything a tool call produces lands under one root directory (default
``.artifacts``). The store only ever creates and overwrites files; nothing in
the pipeline deletes from it.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)


UNIT_TEST_RESULTS = "unit-test-results.json"
E2E_RESULTS = "e2e-results.json"
E2E_STEPS = "e2e-steps.json"
INSPECTION_RESULTS = "inspection-results.json"
CONSOLIDATED_REPORT = "consolidated-report.json"
HTML_REPORT = "test-report.html"
JUNIT_XML = "junit.xml"
COVERAGE_JSON = "coverage.json"

SCREENSHOT_EXTENSIONS = (".png", ".jpg")


def list_images(directory: Path) -> List[Path]:
    """Return ``.png``/``.jpg`` files directly in ``directory``, sorted by name.

    Raises:
        FileNotFoundError: If the directory does not exist.
    """
    if not directory.is_dir():
        raise FileNotFoundError(f"Screenshot directory not found: {directory}")
    return sorted(
        p for p in directory.iterdir()
        if p.is_file() and p.suffix.lower() in SCREENSHOT_EXTENSIONS
    )


class ArtifactStore:
    """Filesystem-backed store rooted at the artifacts directory."""

    def __init__(self, root: Union[str, Path] = ".artifacts", screenshots_dir: str = "screenshots"):
        self.root = Path(root)
        self.screenshots_dir = self.root / screenshots_dir

    @classmethod
    def from_config(cls, config) -> "ArtifactStore":
        """Build a store from an EyesConfig."""
        return cls(config.artifacts_root, config.artifacts.screenshots_dir)

    def path(self, name: str) -> Path:
        return self.root / name

    @property
    def logs_dir(self) -> Path:
        return self.root / "logs"

    def ensure_dirs(self) -> None:
        self.screenshots_dir.mkdir(parents=True, exist_ok=True)

    def screenshot_path(self, name: str) -> Path:
        """Path for a screenshot named ``name`` (without extension)."""
        return self.screenshots_dir / f"{name}.png"

    def write_json(self, name: str, data: Any, path: Optional[Path] = None) -> Path:
        """Write ``data`` as indented JSON to ``name`` (or an explicit path)."""
        target = path or self.path(name)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
        logger.debug("Wrote %s", target)
        return target

    def read_json(self, name: str, path: Optional[Path] = None) -> Optional[Dict[str, Any]]:
        """Read a JSON artifact.

        Returns:
            Parsed content, or None when the file is absent or unreadable.
        """
        target = path or self.path(name)
        if not target.exists():
            return None
        try:
            return json.loads(target.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable artifact %s: %s", target, e)
            return None

    def write_text(self, name: str, text: str, path: Optional[Path] = None) -> Path:
        target = path or self.path(name)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(text, encoding="utf-8")
        return target

    def list_screenshots(self) -> List[Path]:
        """Screenshots currently in the store, sorted; empty when none exist."""
        if not self.screenshots_dir.is_dir():
            return []
        return list_images(self.screenshots_dir)
