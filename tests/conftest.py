"""
Shared test fixtures for Eyes orchestrator tests.

This module provides pytest fixtures for unit tests, including:
- Temporary directory management
- Default configuration and artifact store rooted in a temp dir
- Image fabrication with Pillow
- A fake Playwright page built from AsyncMocks
"""

import os
import sys
import pytest
import tempfile
from pathlib import Path
from typing import Callable, Generator, Optional, Tuple
from unittest.mock import AsyncMock, MagicMock

from PIL import Image

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from eyes_orchestrator.artifacts import ArtifactStore
from eyes_orchestrator.config import EyesConfig, parse_config


# =============================================================================
# Function-scoped fixtures (created fresh for each test)
# =============================================================================

@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test use.

    The directory is automatically cleaned up after the test.
    """
    with tempfile.TemporaryDirectory() as td:
        yield Path(td)


@pytest.fixture
def isolated_cwd(temp_dir: Path) -> Generator[Path, None, None]:
    """Change to temporary directory for test, restore afterward."""
    original_cwd = os.getcwd()
    os.chdir(temp_dir)
    try:
        yield temp_dir
    finally:
        os.chdir(original_cwd)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep host environment overrides out of config resolution."""
    monkeypatch.delenv("OLLAMA_HOST", raising=False)
    monkeypatch.delenv("EYES_CONFIG", raising=False)


@pytest.fixture
def eyes_config(temp_dir: Path) -> EyesConfig:
    """Default configuration rooted at the temp dir."""
    return parse_config({}, repo_root=temp_dir)


@pytest.fixture
def store(eyes_config: EyesConfig) -> ArtifactStore:
    """Artifact store under <temp_dir>/.artifacts."""
    s = ArtifactStore.from_config(eyes_config)
    s.ensure_dirs()
    return s


# =============================================================================
# Images
# =============================================================================

ImageFactory = Callable[..., Path]


def write_image(
    path: Path,
    size: Tuple[int, int] = (40, 20),
    color: Tuple[int, int, int] = (255, 255, 255),
    box: Optional[Tuple[int, int, int, int]] = None,
    box_color: Tuple[int, int, int] = (0, 0, 0),
) -> Path:
    """Write a solid PNG, optionally with a filled rectangle."""
    path.parent.mkdir(parents=True, exist_ok=True)
    image = Image.new("RGB", size, color)
    if box:
        x0, y0, x1, y1 = box
        for x in range(x0, x1):
            for y in range(y0, y1):
                image.putpixel((x, y), box_color)
    image.save(path)
    return path


@pytest.fixture
def make_image() -> ImageFactory:
    """Factory fixture wrapping write_image."""
    return write_image


# =============================================================================
# Fake Playwright page
# =============================================================================

@pytest.fixture
def fake_page() -> MagicMock:
    """A page whose async methods are AsyncMocks.

    ``screenshot`` writes a real small PNG to the requested path so that
    captured files can be inspected afterwards.
    """
    page = MagicMock()
    for name in (
        "goto", "click", "hover", "fill", "select_option", "evaluate",
        "wait_for_timeout", "query_selector", "content",
    ):
        setattr(page, name, AsyncMock())

    async def _screenshot(path: str, full_page: bool = False, **kwargs):
        write_image(Path(path))
        return b""

    page.screenshot = AsyncMock(side_effect=_screenshot)
    page.content.return_value = "<html><body><h1>Welcome</h1></body></html>"
    page.query_selector.return_value = object()

    locator = MagicMock()
    locator.scroll_into_view_if_needed = AsyncMock()
    page.locator = MagicMock(return_value=locator)
    return page
