"""Generative backend interface. Ollama primary; offline templates when the local LLM is disabled."""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import httpx

logger = logging.getLogger("testgen.backend")


@dataclass
class BackendError(Exception):
    """Structured error from a backend call. Never expose raw tracebacks."""
    kind: str  # timeout | unavailable | provider_error | empty_response
    message: str
    details: Optional[Dict[str, Any]] = None

    def __str__(self) -> str:
        return f"{self.kind}: {self.message}"


class LLMBackend(ABC):
    """
    One external call per submit(). No retries, no caching.

    Implementations must tolerate concurrent submit() calls and release
    their resources when the awaiting task is cancelled.
    """

    name: str = "base"

    @abstractmethod
    async def submit(self, prompt: str) -> str:
        """Return raw model text or raise BackendError."""
        ...

    @abstractmethod
    async def test_connection(self) -> tuple[bool, str]:
        """Test if backend is available. Returns (ok, message)."""
        ...


class OllamaBackend(LLMBackend):
    """Ollama HTTP API backend."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "qwen2.5:7b-instruct",
        timeout_s: float = 20,
        temperature: float = 0.3,
        top_p: float = 0.95,
        max_output_tokens: int = 2048,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout_s = timeout_s
        self.temperature = temperature
        self.top_p = top_p
        self.max_output_tokens = max_output_tokens
        self.transport = transport
        self.name = "ollama"

    async def submit(self, prompt: str) -> str:
        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "format": "json",
            "options": {
                "temperature": self.temperature,
                "top_p": self.top_p,
                "num_predict": self.max_output_tokens,
            },
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout_s, transport=self.transport) as client:
                resp = await client.post(f"{self.base_url}/api/generate", json=payload)
        except httpx.TimeoutException as e:
            raise BackendError(kind="timeout", message="Model request timed out", details={"error": str(e)})
        except httpx.ConnectError as e:
            raise BackendError(kind="unavailable", message="Cannot connect to Ollama", details={"error": str(e)})
        except httpx.HTTPError as e:
            logger.exception("Ollama request failed")
            raise BackendError(kind="provider_error", message="Model request failed", details={"error": str(e)})
        if resp.status_code != 200:
            raise BackendError(
                kind="provider_error",
                message=f"Ollama returned {resp.status_code}",
                details={"status": resp.status_code, "body": resp.text[:200]},
            )
        try:
            data = resp.json()
        except json.JSONDecodeError as e:
            raise BackendError(kind="provider_error", message="Invalid response envelope from Ollama", details={"error": str(e)})
        text = data.get("response", "") if isinstance(data, dict) else ""
        if not text or not text.strip():
            raise BackendError(kind="empty_response", message="Empty response from model")
        return text

    async def test_connection(self) -> tuple[bool, str]:
        try:
            async with httpx.AsyncClient(timeout=5, transport=self.transport) as client:
                resp = await client.get(f"{self.base_url}/api/tags")
            if resp.status_code == 200:
                return True, "Ollama available"
            return False, f"Ollama returned {resp.status_code}"
        except httpx.ConnectError:
            return False, "Ollama not detected. Install and run: ollama serve"
        except httpx.HTTPError as e:
            return False, str(e)


class OfflineBackend(LLMBackend):
    """
    Deterministic, network-free backend.

    Renders template questions for the slot named in the prompt as the same
    JSON contract a model is asked to produce.
    """

    def __init__(self):
        self.name = "offline"

    async def submit(self, prompt: str) -> str:
        from testgen.fallback import TemplateFallbackProvider
        from testgen.prompts import slot_from_prompt

        slot = slot_from_prompt(prompt)
        if slot is None:
            raise BackendError(kind="provider_error", message="Prompt carries no slot header")
        q = TemplateFallbackProvider().fallback_question(slot)
        out: Dict[str, Any] = {
            "contractVersion": "testgen.v1",
            "prompt": q.prompt,
            "correctAnswer": q.correct_answer,
            "rationale": q.explanation,
            "topic": slot.topic,
            "bloomLevel": slot.bloom_level.value,
            "difficulty": slot.difficulty.value,
            "templateType": slot.template_type.value,
        }
        if q.options is not None:
            out["choices"] = list(q.options)
            out["correctIndex"] = list(q.options).index(q.correct_answer)
        return json.dumps(out)

    async def test_connection(self) -> tuple[bool, str]:
        return True, "Offline template backend"


Script = Union[str, BackendError]


class FakeBackend(LLMBackend):
    """
    Test double: scripted responses and failure injection.

    Either pops responses (text or BackendError) from a queue in call order, or
    delegates to responder(prompt), which may return text or raise. Records
    every prompt it receives.
    """

    def __init__(
        self,
        responses: Optional[Sequence[Script]] = None,
        *,
        responder: Optional[Callable[[str], str]] = None,
        error: Optional[BackendError] = None,
        delay_s: float = 0.0,
    ):
        self._queue: List[Script] = list(responses or [])
        self.responder = responder
        self.error = error
        self.delay_s = delay_s
        self.prompts: List[str] = []
        self.cancelled_calls = 0
        self._lock = Lock()
        self.name = "fake"

    @property
    def call_count(self) -> int:
        return len(self.prompts)

    async def submit(self, prompt: str) -> str:
        with self._lock:
            self.prompts.append(prompt)
            scripted = self._queue.pop(0) if (self._queue and self.responder is None) else None
        if self.delay_s > 0:
            try:
                await asyncio.sleep(self.delay_s)
            except asyncio.CancelledError:
                with self._lock:
                    self.cancelled_calls += 1
                raise
        if self.error:
            raise self.error
        if self.responder is not None:
            return self.responder(prompt)
        if scripted is None:
            raise BackendError(kind="provider_error", message="No more scripted responses")
        if isinstance(scripted, BackendError):
            raise scripted
        return scripted

    async def test_connection(self) -> tuple[bool, str]:
        if self.error and self.error.kind == "unavailable":
            return False, "Fake unavailable"
        return True, "Fake OK"


_backend: Optional[LLMBackend] = None
_backend_lock = Lock()


def get_backend(settings) -> LLMBackend:
    """Get configured backend. Offline templates unless the local LLM is enabled."""
    global _backend
    with _backend_lock:
        if _backend is None:
            if not getattr(settings, "local_llm_enabled", False):
                _backend = OfflineBackend()
            else:
                provider_name = getattr(settings, "local_llm_provider", "ollama")
                if provider_name != "ollama":
                    raise ValueError(f"Unknown local LLM provider: {provider_name}")
                _backend = OllamaBackend(
                    base_url=getattr(settings, "local_llm_base_url", "http://localhost:11434"),
                    model=getattr(settings, "local_llm_model", "qwen2.5:7b-instruct"),
                    timeout_s=getattr(settings, "local_llm_timeout_s", 20),
                    temperature=getattr(settings, "local_llm_temperature", 0.3),
                    top_p=getattr(settings, "local_llm_top_p", 0.95),
                )
        return _backend


def reset_backend() -> None:
    """Reset cached backend (for tests)."""
    global _backend
    with _backend_lock:
        _backend = None
