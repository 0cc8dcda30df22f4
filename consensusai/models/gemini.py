"""Native Gemini API client for ConsensusAI."""
from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Dict

import httpx

logger = logging.getLogger(__name__)


@dataclass
class GeminiResult:
    """Result from a Gemini API call."""
    text: str = ""
    ok: bool = True
    error: str | None = None
    duration_ms: float = 0.0
    usage: Dict[str, Any] | None = None


class GeminiClient:
    """Gemini ``generateContent`` client using httpx."""

    MODEL_MAP = {
        "2.5-flash": "gemini-2.5-flash",
        "2.5-pro": "gemini-2.5-pro",
        "2.0-flash": "gemini-2.0-flash",
        "1.5-flash": "gemini-1.5-flash",
        "1.5-pro": "gemini-1.5-pro",
    }
    DEFAULT_MODEL = "2.0-flash"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
    ) -> None:
        self.api_key = api_key if api_key is not None else os.environ.get("GEMINI_API_KEY", "")
        self.base_url = base_url.rstrip("/")

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    def generate(
        self,
        prompt: str,
        model: str | None = None,
        system: str | None = None,
        temperature: float = 0.2,
        timeout: float = 60,
        json_mode: bool = True,
    ) -> GeminiResult:
        if not self.api_key:
            return GeminiResult(ok=False, error="GEMINI_API_KEY not set")

        model_id = self.MODEL_MAP.get(model or self.DEFAULT_MODEL, model or self.DEFAULT_MODEL)
        url = f"{self.base_url}/models/{model_id}:generateContent"
        headers = {"x-goog-api-key": self.api_key, "Content-Type": "application/json"}

        generation_config: Dict[str, Any] = {"temperature": temperature}
        if json_mode:
            generation_config["responseMimeType"] = "application/json"
        body: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }
        if system:
            body["systemInstruction"] = {"parts": [{"text": system}]}

        start = time.perf_counter()
        try:
            with httpx.Client(timeout=timeout) as client:
                response = client.post(url, json=body, headers=headers)

            duration_ms = (time.perf_counter() - start) * 1000

            if response.status_code != 200:
                return GeminiResult(
                    ok=False,
                    error=f"HTTP {response.status_code}: {response.text[:500]}",
                    duration_ms=duration_ms,
                )

            data = response.json()
            candidates = data.get("candidates", [])
            if not candidates:
                return GeminiResult(ok=False, error="No candidates in response", duration_ms=duration_ms)

            parts = candidates[0].get("content", {}).get("parts", [])
            text = "".join(p.get("text", "") for p in parts)

            usage_meta = data.get("usageMetadata", {})
            return GeminiResult(
                text=text,
                ok=True,
                duration_ms=duration_ms,
                usage={
                    "prompt_tokens": usage_meta.get("promptTokenCount", 0),
                    "completion_tokens": usage_meta.get("candidatesTokenCount", 0),
                    "total_tokens": usage_meta.get("totalTokenCount", 0),
                },
            )

        except httpx.TimeoutException:
            return GeminiResult(
                ok=False,
                error=f"Gemini API timeout after {timeout}s",
                duration_ms=(time.perf_counter() - start) * 1000,
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"Gemini request failed: {e}")
            return GeminiResult(ok=False, error=str(e), duration_ms=(time.perf_counter() - start) * 1000)
