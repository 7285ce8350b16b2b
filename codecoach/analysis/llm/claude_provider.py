"""
Anthropic Claude LLM provider.

Uses the official anthropic Python SDK. SDK-level retries are disabled;
the analysis client owns the retry policy.
"""
from __future__ import annotations

import logging
import time

from ..errors import ErrorKind
from .base import BaseLLMProvider, LLMResponse, classify_exception
from .config import get_all_models_for_provider, get_default_model

logger = logging.getLogger(__name__)

DEFAULT_MODEL = get_default_model("claude")

try:
    import anthropic

    _ANTHROPIC_AVAILABLE = True
except ImportError:
    _ANTHROPIC_AVAILABLE = False
    logger.info(
        "anthropic package not installed. Claude provider will not be available. "
        "Install with: pip install anthropic"
    )


def _register_if_available(cls):
    """Only register the provider if the anthropic SDK is importable."""
    if _ANTHROPIC_AVAILABLE:
        from . import register_provider

        return register_provider(cls)
    return cls


@_register_if_available
class ClaudeProvider(BaseLLMProvider):
    """Anthropic Claude LLM provider."""

    PROVIDER_NAME = "claude"
    DEFAULT_MODEL = DEFAULT_MODEL

    def __init__(self, api_key: str = None):
        super().__init__(api_key=api_key)
        self._client = None

    def _ensure_client(self):
        """Lazily initialize the client if not yet created."""
        if self._client is None:
            if not _ANTHROPIC_AVAILABLE:
                raise RuntimeError(
                    "anthropic package is not installed. "
                    "Install with: pip install anthropic"
                )
            if not self.api_key:
                raise ValueError("Anthropic API key is required.")
            self._client = anthropic.Anthropic(api_key=self.api_key, max_retries=0)
        return self._client

    def chat(
        self,
        messages: list,
        model: str = None,
        max_tokens: int = 4096,
        temperature: float = 0,
        timeout: float = None,
    ) -> LLMResponse:
        """Send a chat completion request to Claude.

        A 'system' role message, if present, is extracted and passed as the
        system parameter.
        """
        client = self._ensure_client()
        model = model or DEFAULT_MODEL

        system_message = None
        chat_messages = []
        for msg in messages:
            if msg.get("role") == "system":
                system_message = msg["content"]
            else:
                chat_messages.append(msg)

        kwargs = {
            "model": model,
            "max_tokens": max_tokens,
            "messages": chat_messages,
            "temperature": temperature,
        }
        if system_message:
            kwargs["system"] = system_message
        if timeout is not None:
            kwargs["timeout"] = timeout

        start_time = time.time()
        response = client.messages.create(**kwargs)
        latency_ms = int((time.time() - start_time) * 1000)

        content = ""
        for block in response.content:
            if hasattr(block, "text"):
                content += block.text

        input_tokens = response.usage.input_tokens
        output_tokens = response.usage.output_tokens

        return LLMResponse(
            content=content,
            model=model,
            provider=self.PROVIDER_NAME,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost=self.estimate_cost(input_tokens, output_tokens, model),
            latency_ms=latency_ms,
            finish_reason=response.stop_reason or "",
        )

    def list_models(self) -> list[str]:
        """Return available Claude model identifiers."""
        return get_all_models_for_provider(self.PROVIDER_NAME)

    def classify_error(self, exc: Exception) -> ErrorKind:
        if _ANTHROPIC_AVAILABLE:
            if isinstance(exc, anthropic.APITimeoutError):
                return ErrorKind.TIMEOUT
            if isinstance(exc, anthropic.APIConnectionError):
                return ErrorKind.TRANSIENT
        return classify_exception(exc)
