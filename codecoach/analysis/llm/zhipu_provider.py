"""
Zhipu AI (GLM) LLM provider.

Uses the official zhipuai Python SDK.
"""
from __future__ import annotations

import logging
import time

from .base import BaseLLMProvider, LLMResponse
from .config import get_all_models_for_provider, get_default_model

logger = logging.getLogger(__name__)

DEFAULT_MODEL = get_default_model("zhipu")

try:
    from zhipuai import ZhipuAI

    _ZHIPU_AVAILABLE = True
except ImportError:
    _ZHIPU_AVAILABLE = False
    logger.info(
        "zhipuai package not installed. Zhipu provider will not be available. "
        "Install with: pip install zhipuai"
    )


def _register_if_available(cls):
    """Only register the provider if the zhipuai SDK is importable."""
    if _ZHIPU_AVAILABLE:
        from . import register_provider

        return register_provider(cls)
    return cls


@_register_if_available
class ZhipuProvider(BaseLLMProvider):
    """Zhipu AI (GLM) LLM provider."""

    PROVIDER_NAME = "zhipu"
    DEFAULT_MODEL = DEFAULT_MODEL

    def __init__(self, api_key: str = None):
        super().__init__(api_key=api_key)
        self._client = None

    def _ensure_client(self):
        """Lazily initialize the client if not yet created."""
        if self._client is None:
            if not _ZHIPU_AVAILABLE:
                raise RuntimeError(
                    "zhipuai package is not installed. "
                    "Install with: pip install zhipuai"
                )
            if not self.api_key:
                raise ValueError("Zhipu API key is required.")
            self._client = ZhipuAI(api_key=self.api_key, max_retries=0)
        return self._client

    def chat(
        self,
        messages: list,
        model: str = None,
        max_tokens: int = 4096,
        temperature: float = 0,
        timeout: float = None,
    ) -> LLMResponse:
        """Send a chat completion request to Zhipu GLM.

        Zhipu requires temperature > 0, so 0 is remapped to 0.01.
        """
        client = self._ensure_client()
        model = model or DEFAULT_MODEL

        if temperature <= 0:
            temperature = 0.01

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

        # Reasoning models may put the JSON body in reasoning_content
        choice = response.choices[0]
        content = choice.message.content or ""
        reasoning = getattr(choice.message, 'reasoning_content', None) or ""
        if not content.strip().startswith(('{', '```')) and reasoning.strip().startswith(('{', '```')):
            logger.info(f"Zhipu: using reasoning_content ({len(reasoning)} chars)")
            content = reasoning

        if not content or choice.finish_reason != "stop":
            logger.warning(
                f"Zhipu unexpected response: finish_reason={choice.finish_reason}, "
                f"content_len={len(content)}, model={model}"
            )

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
        """Return available Zhipu model identifiers."""
        return get_all_models_for_provider(self.PROVIDER_NAME)
