"""Ollama provider - streaming chat over the native HTTP API."""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

import httpx

from ai_coding_cli.exceptions import LLMAPIError, LLMError
from ai_coding_cli.logging import get_logger

log = get_logger(__name__)


OLLAMA_NATIVE_BASE_URL = "http://127.0.0.1:11434"


@dataclass
class Message:
    """A message in a request window."""

    role: str  # "system", "user", "assistant"
    content: str


@dataclass
class StreamEvent:
    """One item of a streamed reply.

    Text increments carry ``text``; the terminal event has ``done=True`` and
    optional usage counters.
    """

    text: str = ""
    done: bool = False
    usage: dict[str, int] = field(default_factory=dict)


class LLMProvider(ABC):
    """Abstract base class for inference providers."""

    @abstractmethod
    def stream_chat(self, messages: list[Message]) -> AsyncIterator[StreamEvent]:
        """Stream a reply for ``messages``.

        Implementations are async generators. Consumers may stop iterating at
        any point (cooperative cancellation) and should then ``aclose()`` the
        iterator.
        """

    async def check_connection(self) -> bool:
        return True

    def count_tokens(self, text: str) -> int:
        """Rough estimate: ~1 token per 4 characters."""
        return (len(text) + 3) // 4

    async def close(self) -> None:
        return None


def _usage_from_done_chunk(chunk: dict[str, Any]) -> dict[str, int]:
    """Extract usage counters from Ollama's final ``done`` line."""
    prompt_tokens = int(chunk.get("prompt_eval_count", 0) or 0)
    completion_tokens = int(chunk.get("eval_count", 0) or 0)
    usage = {
        "prompt_tokens": prompt_tokens,
        "completion_tokens": completion_tokens,
        "total_tokens": prompt_tokens + completion_tokens,
    }
    if chunk.get("eval_duration"):
        usage["eval_duration_ns"] = int(chunk["eval_duration"])
    return usage


class OllamaProvider(LLMProvider):
    """Direct Ollama API provider."""

    def __init__(
        self,
        model: str = "qwen2.5-coder:32b",
        base_url: str = OLLAMA_NATIVE_BASE_URL,
        temperature: float = 0.7,
        max_tokens: int = 4096,
        api_key: str | None = None,
        timeout: float = 300.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize Ollama provider.

        Args:
            model: Ollama model name (e.g., 'qwen2.5-coder:32b')
            base_url: Ollama API base URL
            temperature: Sampling temperature
            max_tokens: Max tokens to generate
            api_key: Optional bearer token for proxied deployments
            timeout: Request timeout in seconds
            transport: Optional httpx transport override (tests)
        """
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.api_key = api_key

        self.client = httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
        )

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _build_body(self, messages: list[Message]) -> dict[str, Any]:
        options: dict[str, Any] = {"temperature": self.temperature}
        if self.max_tokens:
            options["num_predict"] = self.max_tokens
        return {
            "model": self.model,
            "messages": [{"role": msg.role, "content": msg.content or ""} for msg in messages],
            "stream": True,
            "options": options,
        }

    async def stream_chat(self, messages: list[Message]) -> AsyncIterator[StreamEvent]:
        """Stream a chat completion as text increments plus a final done event."""
        url = f"{self.base_url}/api/chat"
        body = self._build_body(messages)
        usage: dict[str, int] = {}

        log.debug("Calling Ollama", model=self.model, url=url, msg_count=len(messages))

        try:
            async with self.client.stream("POST", url, json=body, headers=self._headers()) as response:
                if not response.is_success:
                    error_text = (await response.aread()).decode("utf-8", errors="replace")
                    raise LLMAPIError(
                        f"Ollama API error {response.status_code}: {error_text}",
                        status_code=response.status_code,
                    )

                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        chunk = json.loads(line)
                    except json.JSONDecodeError:
                        log.debug("Skipping unparseable stream line", line=line[:200])
                        continue
                    if not isinstance(chunk, dict):
                        continue
                    if chunk.get("error"):
                        raise LLMAPIError(f"Ollama stream error: {chunk['error']}")
                    content = (chunk.get("message") or {}).get("content")
                    if content:
                        yield StreamEvent(text=content)
                    if chunk.get("done"):
                        usage = _usage_from_done_chunk(chunk)
                        break
        except LLMError:
            raise
        except httpx.HTTPError as e:
            raise LLMAPIError(f"Ollama streaming error: {e}")

        yield StreamEvent(done=True, usage=usage)

    async def check_connection(self) -> bool:
        """Ping ``/api/tags`` to see whether the server is reachable."""
        try:
            response = await self.client.get(f"{self.base_url}/api/tags", timeout=5.0)
        except httpx.HTTPError as e:
            log.debug("Ollama connection check failed", error=str(e))
            return False
        return response.is_success

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()


def create_provider(
    provider: str = "ollama",
    model: str = "qwen2.5-coder:32b",
    api_key: str | None = None,
    base_url: str | None = None,
    temperature: float = 0.7,
    max_tokens: int = 4096,
    timeout: float = 300.0,
) -> LLMProvider:
    """Create an inference provider.

    Args:
        provider: Provider name (only 'ollama' is built in)
        model: Model name
        api_key: Optional API key
        base_url: Optional base URL
        temperature: Default temperature
        max_tokens: Default max tokens
        timeout: Request timeout in seconds

    Returns:
        Configured LLMProvider instance
    """
    if provider == "ollama":
        return OllamaProvider(
            model=model,
            base_url=base_url or OLLAMA_NATIVE_BASE_URL,
            temperature=temperature,
            max_tokens=max_tokens,
            api_key=api_key,
            timeout=timeout,
        )
    raise ValueError(f"Provider '{provider}' not supported. Use 'ollama' or set a provider manually.")


# Global provider instance
_provider: LLMProvider | None = None


def get_provider() -> LLMProvider:
    """Get the global provider instance."""
    global _provider
    if _provider is None:
        from ai_coding_cli.config import get_config
        cfg = get_config()
        _provider = create_provider(
            provider=cfg.model.provider,
            model=cfg.model.model,
            base_url=cfg.model.base_url,
            temperature=cfg.model.temperature,
            max_tokens=cfg.model.max_tokens,
            api_key=cfg.model.api_key or None,
            timeout=cfg.model.request_timeout,
        )
    return _provider
