"""Groq (OpenAI-compatible chat completions) client for ConsensusAI."""
from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, List

import httpx

logger = logging.getLogger(__name__)


@dataclass
class GroqResult:
    text: str = ""
    ok: bool = True
    error: str | None = None
    duration_ms: float = 0.0
    usage: Dict[str, Any] | None = None


class GroqClient:
    DEFAULT_MODEL = "llama-3.3-70b-versatile"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str = "https://api.groq.com/openai/v1",
    ) -> None:
        self.api_key = api_key if api_key is not None else os.environ.get("GROQ_API_KEY", "")
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
    ) -> GroqResult:
        if not self.api_key:
            return GroqResult(ok=False, error="GROQ_API_KEY not set")

        messages: List[Dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        payload: Dict[str, Any] = {
            "model": model or self.DEFAULT_MODEL,
            "messages": messages,
            "temperature": temperature,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        start = time.perf_counter()
        try:
            with httpx.Client(timeout=timeout) as client:
                response = client.post(f"{self.base_url}/chat/completions", json=payload, headers=headers)
            duration_ms = (time.perf_counter() - start) * 1000

            if response.status_code != 200:
                return GroqResult(
                    ok=False,
                    error=f"Groq API Error {response.status_code}: {response.text[:500]}",
                    duration_ms=duration_ms,
                )

            data = response.json()
            choices = data.get("choices") or []
            if not choices:
                return GroqResult(ok=False, error="No choices in response", duration_ms=duration_ms)
            text = (choices[0].get("message") or {}).get("content") or ""
            usage = data.get("usage") or {}
            return GroqResult(
                text=text,
                ok=True,
                duration_ms=duration_ms,
                usage={
                    "prompt_tokens": usage.get("prompt_tokens", 0),
                    "completion_tokens": usage.get("completion_tokens", 0),
                    "total_tokens": usage.get("total_tokens", 0),
                },
            )
        except httpx.TimeoutException:
            return GroqResult(
                ok=False,
                error=f"Groq API timeout after {timeout}s",
                duration_ms=(time.perf_counter() - start) * 1000,
            )
        except (httpx.HTTPError, ValueError) as exc:
            logger.debug(f"Groq request failed: {exc}")
            return GroqResult(ok=False, error=str(exc), duration_ms=(time.perf_counter() - start) * 1000)
