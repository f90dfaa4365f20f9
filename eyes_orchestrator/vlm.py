"""Async client for an Ollama-compatible vision judge service.

The judge receives a screenshot (base64) plus a prompt through ``/api/chat``
and replies in free text. Sampling is pinned (low temperature, fixed seed) so
repeated inspections of the same screenshot give the same verdict.
"""

from __future__ import annotations

import base64
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Optional, Union

import httpx

from .config import DEFAULT_JUDGE_HOST, DEFAULT_JUDGE_MODEL, JudgeConfig
from .errors import JudgeServiceError, JudgeServiceUnavailable

logger = logging.getLogger(__name__)


class OllamaJudgeClient:
    """Client for the judge service at an explicitly configured host."""

    def __init__(
        self,
        host: str = DEFAULT_JUDGE_HOST,
        default_model: str = DEFAULT_JUDGE_MODEL,
        temperature: float = 0.1,
        seed: int = 42,
        timeout_seconds: float = 120.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.host = host.rstrip("/")
        self.default_model = default_model
        self.temperature = temperature
        self.seed = seed
        self.timeout = float(timeout_seconds)
        self._http_client = http_client

    @classmethod
    def from_config(cls, config: JudgeConfig, http_client: Optional[httpx.AsyncClient] = None) -> "OllamaJudgeClient":
        return cls(
            host=config.host,
            default_model=config.model,
            temperature=config.temperature,
            seed=config.seed,
            timeout_seconds=config.timeout_seconds,
            http_client=http_client,
        )

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            yield client

    def build_payload(self, image: bytes, prompt: str, model: Optional[str] = None) -> Dict[str, Any]:
        """Build the ``/api/chat`` request body."""
        return {
            "model": model or self.default_model,
            "messages": [
                {
                    "role": "user",
                    "content": prompt,
                    "images": [base64.b64encode(image).decode("ascii")],
                }
            ],
            "stream": False,
            "options": {
                "temperature": self.temperature,
                "seed": self.seed,
            },
        }

    async def judge(self, image_path: Union[str, Path], prompt: str, model: Optional[str] = None) -> str:
        """Ask the judge about a screenshot.

        Returns:
            The model's reply, stripped.

        Raises:
            JudgeServiceUnavailable: The service refused the connection or
                the connect attempt timed out.
            JudgeServiceError: The service answered with a non-2xx status.
        """
        payload = self.build_payload(Path(image_path).read_bytes(), prompt, model)
        url = f"{self.host}/api/chat"
        logger.debug("Judging %s with %s", image_path, payload["model"])

        try:
            async with self._client() as client:
                resp = await client.post(url, json=payload, timeout=self.timeout)
        except (httpx.ConnectError, httpx.ConnectTimeout) as e:
            raise JudgeServiceUnavailable(self.host) from e

        if not resp.is_success:
            raise JudgeServiceError(
                f"Judge service HTTP {resp.status_code}: {resp.text}",
                status_code=resp.status_code,
            )

        data = resp.json()
        message = data.get("message") or {}
        return (message.get("content") or "").strip()

    async def is_model_available(self, model: Optional[str] = None) -> bool:
        """Check ``/api/tags`` for the model (or another tag of the same family)."""
        model = model or self.default_model
        family = model.split(":")[0]
        try:
            async with self._client() as client:
                resp = await client.get(f"{self.host}/api/tags", timeout=10.0)
        except httpx.HTTPError as e:
            logger.debug("Judge service availability check failed: %s", e)
            return False

        if not resp.is_success:
            return False

        for entry in resp.json().get("models") or []:
            name = entry.get("name", "")
            if name == model or name.startswith(family):
                return True
        return False
