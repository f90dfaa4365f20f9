"""Judging strategies for screenshot inspection.

Each judge turns one screenshot (plus whatever it compares against) into a
``CheckResult``. Judges never raise for a failing page: errors such as a
dimension mismatch, a missing expected value or an unreachable judge service
become failed checks carrying the error message.
"""

from __future__ import annotations

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Union

import pytesseract
from PIL import Image
from pixelmatch.contrib.PIL import pixelmatch

from .errors import DimensionMismatch, JudgeServiceError, MissingExpectedValue
from .models import DEFAULT_PASS_CONDITION, Assertion, CheckKind, CheckResult
from .vlm import OllamaJudgeClient

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


# =============================================================================
# Pixel diff
# =============================================================================


class PixelDiffJudge:
    """Compare a screenshot to its baseline pixel by pixel."""

    def __init__(
        self,
        threshold_percent: float = 5.0,
        pixel_threshold: float = 0.1,
        count_anti_aliased: bool = False,
    ):
        self.threshold_percent = threshold_percent
        self.pixel_threshold = pixel_threshold
        self.count_anti_aliased = count_anti_aliased

    def diff_ratio(self, current: PathLike, baseline: PathLike) -> float:
        """Fraction of pixels that differ, in [0, 1].

        Raises:
            DimensionMismatch: If the images differ in size.
        """
        with Image.open(current) as cur_img, Image.open(baseline) as base_img:
            cur = cur_img.convert("RGBA")
            base = base_img.convert("RGBA")

        if cur.size != base.size:
            raise DimensionMismatch(cur.size, base.size)

        width, height = cur.size
        mismatched = pixelmatch(cur, base, threshold=self.pixel_threshold, includeAA=self.count_anti_aliased)
        return mismatched / float(width * height)

    def check(self, current: PathLike, baseline: PathLike) -> CheckResult:
        try:
            percent = self.diff_ratio(current, baseline) * 100
        except Exception as e:
            return CheckResult(CheckKind.VISUAL_DIFF, False, str(e) or "Comparison failed")

        return CheckResult(
            CheckKind.VISUAL_DIFF,
            passed=percent < self.threshold_percent,
            details=f"{percent:.2f}% pixels different",
            confidence=100 - percent,
        )

    async def judge(self, current: PathLike, baseline: PathLike) -> CheckResult:
        return await asyncio.to_thread(self.check, current, baseline)


# =============================================================================
# OCR
# =============================================================================


@dataclass
class OcrText:
    """Recognised text and the engine's mean word confidence (0-100)."""
    text: str
    confidence: Optional[float] = None


class OcrEngine(ABC):
    """Interface for text recognition backends."""

    @abstractmethod
    def recognize(self, image_path: PathLike, languages: Sequence[str]) -> OcrText:
        """Return the text found in the image."""
        pass


class TesseractOcrEngine(OcrEngine):
    """Tesseract via pytesseract. Requires the ``tesseract`` binary on PATH."""

    def recognize(self, image_path: PathLike, languages: Sequence[str]) -> OcrText:
        with Image.open(image_path) as image:
            data = pytesseract.image_to_data(
                image,
                lang="+".join(languages),
                output_type=pytesseract.Output.DICT,
            )

        words: List[str] = []
        confidences: List[float] = []
        for word, conf in zip(data.get("text", []), data.get("conf", [])):
            if not str(word).strip():
                continue
            words.append(str(word))
            conf = float(conf)
            if conf >= 0:
                confidences.append(conf)

        confidence = sum(confidences) / len(confidences) if confidences else None
        return OcrText(" ".join(words), confidence)


def normalize_text(text: Optional[str]) -> str:
    """Lower-case, collapse whitespace runs to one space and strip."""
    return re.sub(r"\s+", " ", (text or "").lower()).strip()


class OcrJudge:
    """Check that expected text appears in a screenshot."""

    def __init__(self, engine: Optional[OcrEngine] = None):
        self.engine = engine or TesseractOcrEngine()

    def check(self, image_path: PathLike, expected: Optional[str], languages: Sequence[str] = ("eng",)) -> CheckResult:
        try:
            if not expected or not isinstance(expected, str):
                raise MissingExpectedValue("No expected text provided for OCR check")

            recognized = self.engine.recognize(image_path, list(languages))
            text = normalize_text(recognized.text)
            found = normalize_text(expected) in text
        except Exception as e:
            return CheckResult(CheckKind.OCR, False, str(e) or "OCR failed")

        if found:
            details = f'Text "{expected}" found'
        else:
            details = f'Text "{expected}" not found in OCR result: "{text[:100]}..."'
        return CheckResult(CheckKind.OCR, found, details, recognized.confidence)

    async def judge(self, image_path: PathLike, expected: Optional[str], languages: Sequence[str] = ("eng",)) -> CheckResult:
        return await asyncio.to_thread(self.check, image_path, expected, languages)


# =============================================================================
# Vision-language model
# =============================================================================


class VlmJudge:
    """Ask a vision model a question about a screenshot."""

    def __init__(self, client: OllamaJudgeClient):
        self.client = client

    async def judge(self, image_path: PathLike, assertion: Assertion) -> CheckResult:
        if not assertion.prompt:
            return CheckResult(CheckKind.VLM_EVAL, False, "No prompt provided for VLM evaluation")

        try:
            reply = await self.client.judge(image_path, assertion.prompt, assertion.model)
        except JudgeServiceError as e:
            logger.warning("VLM check on %s failed: %s", Path(image_path).name, e)
            return CheckResult(CheckKind.VLM_EVAL, False, str(e))
        except Exception as e:
            return CheckResult(CheckKind.VLM_EVAL, False, str(e) or "VLM evaluation failed")

        pass_if = (assertion.pass_if or DEFAULT_PASS_CONDITION).upper()
        return CheckResult(
            CheckKind.VLM_EVAL,
            passed=pass_if in reply.upper(),
            details=f"VLM response: {reply[:200]}...",
        )
