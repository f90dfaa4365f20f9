"""Inline assertion evaluation against the live page.

``text`` and ``element`` assertions are judged immediately. ``ocr``,
``visual-diff`` and ``vlm-eval`` need the captured screenshot, so inline
evaluation records them as passing and leaves the verdict to inspection.
"""

from __future__ import annotations

import logging
from typing import Iterable, List

from playwright.async_api import Page

from .models import Assertion, AssertionKind, AssertionResult

logger = logging.getLogger(__name__)

DEFERRED_DETAILS = "Deferred for inspection phase"


async def evaluate_assertion(page: Page, assertion: Assertion) -> AssertionResult:
    """Evaluate one assertion. Never raises; errors become failed results."""
    try:
        if assertion.kind == AssertionKind.TEXT:
            if not assertion.expected:
                return AssertionResult(assertion.kind, False, "No expected text provided")
            content = await page.content()
            found = assertion.expected in content
            return AssertionResult(assertion.kind, found, "Text found" if found else "Text not found")

        if assertion.kind == AssertionKind.ELEMENT:
            if not assertion.selector:
                return AssertionResult(assertion.kind, False, "No selector provided")
            element = await page.query_selector(assertion.selector)
            exists = element is not None
            return AssertionResult(
                assertion.kind, exists, "Element exists" if exists else "Element not found"
            )

        return AssertionResult(assertion.kind, True, DEFERRED_DETAILS)

    except Exception as e:
        logger.debug("Assertion %s raised: %s", assertion.kind.value, e)
        return AssertionResult(assertion.kind, False, str(e))


async def evaluate_assertions(page: Page, assertions: Iterable[Assertion]) -> List[AssertionResult]:
    """Evaluate assertions in declaration order."""
    results: List[AssertionResult] = []
    for assertion in assertions:
        results.append(await evaluate_assertion(page, assertion))
    return results
