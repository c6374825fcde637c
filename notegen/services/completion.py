"""
Streaming text-completion gateway.

Two providers are supported, chosen by ``LLM_PROVIDER``:

  gemini — Google Generative Language API, ``streamGenerateContent`` over SSE
  ollama — local Ollama ``/api/chat`` with NDJSON streaming

Both expose ``stream_completion(system_prompt, conversation)``, an async
iterator of text chunks.  Any transport or provider failure is raised as
CompletionError; nothing is retried.
"""
from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from notegen.config import settings
from notegen.models.schemas import ChatMessage

logger = logging.getLogger(__name__)


class CompletionError(Exception):
    """The completion service failed or returned an unusable response."""


class CompletionService:
    """Base class for streaming completion providers."""

    provider: str = ""

    def __init__(
        self,
        model: str,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.model = model
        self.timeout = httpx.Timeout(float(timeout or settings.LLM_TIMEOUT), connect=10.0)
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    @property
    def configured(self) -> bool:
        return True

    def stream_completion(
        self,
        system_prompt: str,
        conversation: List[ChatMessage],
    ) -> AsyncIterator[str]:
        """Yield response text chunks as the model produces them."""
        raise NotImplementedError

    async def _raise_for_status(self, response: httpx.Response) -> None:
        if response.status_code == 200:
            return
        body = (await response.aread()).decode("utf-8", errors="replace")
        logger.error(
            "%s completion returned HTTP %d: %s",
            self.provider,
            response.status_code,
            body[:300],
        )
        raise CompletionError(
            f"{self.provider} completion returned HTTP {response.status_code}"
        )


# ---------------------------------------------------------------------------
# Gemini
# ---------------------------------------------------------------------------

class GeminiCompletionService(CompletionService):
    """Gemini ``streamGenerateContent`` with server-sent events."""

    provider = "gemini"

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(model or settings.GEMINI_MODEL, timeout, transport)
        self.api_key = api_key if api_key is not None else settings.GEMINI_API_KEY
        self.base_url = (base_url or settings.GEMINI_BASE_URL).rstrip("/")

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def build_payload(self, system_prompt: str, conversation: List[ChatMessage]) -> Dict[str, Any]:
        contents = [
            {
                # Gemini calls the assistant role "model"
                "role": "model" if message.role == "assistant" else "user",
                "parts": [{"text": message.text()}],
            }
            for message in conversation
            if message.role != "system"
        ]
        return {
            "systemInstruction": {"parts": [{"text": system_prompt}]},
            "contents": contents,
        }

    @staticmethod
    def _chunk_text(event: Dict[str, Any]) -> str:
        candidates = event.get("candidates") or []
        if not candidates:
            return ""
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(part.get("text", "") for part in parts)

    async def stream_completion(
        self,
        system_prompt: str,
        conversation: List[ChatMessage],
    ) -> AsyncIterator[str]:
        if not self.api_key:
            raise CompletionError("GEMINI_API_KEY is not configured")

        url = f"{self.base_url}/models/{self.model}:streamGenerateContent"
        payload = self.build_payload(system_prompt, conversation)

        try:
            async with self._client() as client:
                async with client.stream(
                    "POST",
                    url,
                    params={"alt": "sse"},
                    headers={"x-goog-api-key": self.api_key},
                    json=payload,
                ) as response:
                    await self._raise_for_status(response)
                    async for line in response.aiter_lines():
                        if not line.startswith("data:"):
                            continue
                        data = line[len("data:"):].strip()
                        if not data:
                            continue
                        try:
                            event = json.loads(data)
                        except json.JSONDecodeError:
                            logger.warning("gemini: skipping malformed SSE event: %s", data[:200])
                            continue
                        if "error" in event:
                            error = event["error"]
                            if isinstance(error, dict):
                                error = error.get("message", error)
                            raise CompletionError(f"gemini stream error: {error}")
                        text = self._chunk_text(event)
                        if text:
                            yield text
        except httpx.TimeoutException as exc:
            raise CompletionError(f"gemini request timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise CompletionError(f"gemini transport error: {exc}") from exc


# ---------------------------------------------------------------------------
# Ollama
# ---------------------------------------------------------------------------

class OllamaCompletionService(CompletionService):
    """Ollama ``/api/chat`` with NDJSON streaming."""

    provider = "ollama"

    def __init__(
        self,
        *,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(model or settings.OLLAMA_LLM_MODEL, timeout, transport)
        self.base_url = (base_url or settings.OLLAMA_BASE_URL).rstrip("/")

    def build_payload(self, system_prompt: str, conversation: List[ChatMessage]) -> Dict[str, Any]:
        messages = [{"role": "system", "content": system_prompt}]
        messages.extend(
            {"role": message.role, "content": message.text()}
            for message in conversation
            if message.role != "system"
        )
        return {
            "model": self.model,
            "messages": messages,
            "stream": True,
            "options": {"temperature": 0.7},
        }

    async def stream_completion(
        self,
        system_prompt: str,
        conversation: List[ChatMessage],
    ) -> AsyncIterator[str]:
        payload = self.build_payload(system_prompt, conversation)
        try:
            async with self._client() as client:
                async with client.stream(
                    "POST",
                    f"{self.base_url}/api/chat",
                    json=payload,
                ) as response:
                    await self._raise_for_status(response)
                    async for line in response.aiter_lines():
                        if not line.strip():
                            continue
                        try:
                            data = json.loads(line)
                        except json.JSONDecodeError:
                            logger.warning("ollama: skipping malformed line: %s", line[:200])
                            continue
                        if data.get("error"):
                            raise CompletionError(f"ollama stream error: {data['error']}")
                        chunk = (data.get("message") or {}).get("content", "")
                        if chunk:
                            yield chunk
                        if data.get("done", False):
                            break
        except httpx.TimeoutException as exc:
            raise CompletionError(
                f"ollama request timed out after {self.timeout.read:.0f} s"
            ) from exc
        except httpx.HTTPError as exc:
            raise CompletionError(f"ollama transport error: {exc}") from exc


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def get_completion_service() -> CompletionService:
    """FastAPI dependency returning the configured provider."""
    provider = settings.LLM_PROVIDER.lower()
    if provider == "ollama":
        return OllamaCompletionService()
    if provider != "gemini":
        logger.warning("Unknown LLM_PROVIDER %r, falling back to gemini", settings.LLM_PROVIDER)
    return GeminiCompletionService()
