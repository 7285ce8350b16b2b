"""
OpenAI LLM provider.

Uses the official openai Python SDK with SDK-level retries disabled.
"""
from __future__ import annotations

import logging
import time

from ..errors import ErrorKind
from .base import BaseLLMProvider, LLMResponse, classify_exception
from .config import get_all_models_for_provider, get_default_model

logger = logging.getLogger(__name__)

DEFAULT_MODEL = get_default_model("openai")

try:
    import openai

    _OPENAI_AVAILABLE = True
except ImportError:
    _OPENAI_AVAILABLE = False
    logger.info(
        "openai package not installed. OpenAI provider will not be available. "
        "Install with: pip install openai"
    )


def _register_if_available(cls):
    """Only register the provider if the openai SDK is importable."""
    if _OPENAI_AVAILABLE:
        from . import register_provider

        return register_provider(cls)
    return cls


@_register_if_available
class OpenAIProvider(BaseLLMProvider):
    """OpenAI GPT LLM provider."""

    PROVIDER_NAME = "openai"
    DEFAULT_MODEL = DEFAULT_MODEL

    def __init__(self, api_key: str = None):
        super().__init__(api_key=api_key)
        self._client = None

    def _ensure_client(self):
        """Lazily initialize the client if not yet created."""
        if self._client is None:
            if not _OPENAI_AVAILABLE:
                raise RuntimeError(
                    "openai package is not installed. "
                    "Install with: pip install openai"
                )
            if not self.api_key:
                raise ValueError("OpenAI API key is required.")
            self._client = openai.OpenAI(api_key=self.api_key, max_retries=0)
        return self._client

    def chat(
        self,
        messages: list,
        model: str = None,
        max_tokens: int = 4096,
        temperature: float = 0,
        timeout: float = None,
    ) -> LLMResponse:
        """Send a chat completion request to OpenAI."""
        client = self._ensure_client()
        model = model or DEFAULT_MODEL

        kwargs = {
            "model": model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if timeout is not None:
            kwargs["timeout"] = timeout

        start_time = time.time()
        response = client.chat.completions.create(**kwargs)
        latency_ms = int((time.time() - start_time) * 1000)

        choice = response.choices[0]
        content = choice.message.content or ""

        input_tokens = response.usage.prompt_tokens if response.usage else 0
        output_tokens = response.usage.completion_tokens if response.usage else 0

        return LLMResponse(
            content=content,
            model=model,
            provider=self.PROVIDER_NAME,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost=self.estimate_cost(input_tokens, output_tokens, model),
            latency_ms=latency_ms,
            finish_reason=choice.finish_reason or "",
        )

    def list_models(self) -> list[str]:
        """Return available OpenAI model identifiers."""
        return get_all_models_for_provider(self.PROVIDER_NAME)

    def classify_error(self, exc: Exception) -> ErrorKind:
        if _OPENAI_AVAILABLE:
            if isinstance(exc, openai.APITimeoutError):
                return ErrorKind.TIMEOUT
            if isinstance(exc, openai.APIConnectionError):
                return ErrorKind.TRANSIENT
        return classify_exception(exc)
