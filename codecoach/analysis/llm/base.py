"""
Base classes for LLM providers.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from ..errors import ErrorKind


@dataclass
class LLMResponse:
    """Standardized response from any LLM provider."""

    content: str
    model: str
    provider: str
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0
    latency_ms: int = 0
    finish_reason: str = ""


def classify_exception(exc: Exception) -> ErrorKind:
    """Map an SDK exception onto the analysis error taxonomy.

    The anthropic, openai and zhipuai SDKs all raise status errors that
    carry ``status_code`` and name their timeout errors ``*TimeoutError``,
    so classification works on those two traits.
    """
    if isinstance(exc, TimeoutError) or "Timeout" in type(exc).__name__:
        return ErrorKind.TIMEOUT

    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        if status == 408:
            return ErrorKind.TIMEOUT
        if status == 429 or status >= 500:
            return ErrorKind.TRANSIENT
        if 400 <= status < 500:
            return ErrorKind.REJECTED

    # Connection resets, DNS failures and unknown SDK errors
    return ErrorKind.TRANSIENT


class BaseLLMProvider(ABC):
    """Abstract base class for LLM providers.

    All provider implementations must subclass this and implement
    the required abstract methods.
    """

    PROVIDER_NAME: str = ""
    DEFAULT_MODEL: str = ""

    def __init__(self, api_key: str = None):
        self.api_key = api_key

    @abstractmethod
    def chat(
        self,
        messages: list,
        model: str = None,
        max_tokens: int = 4096,
        temperature: float = 0,
        timeout: float = None,
    ) -> LLMResponse:
        """Send a chat completion request.

        Args:
            messages: List of message dicts with 'role' and 'content' keys.
            model: Model identifier. If None, uses provider default.
            max_tokens: Maximum tokens in the response.
            temperature: Sampling temperature (0 = deterministic).
            timeout: Per-request timeout in seconds passed to the SDK.

        Returns:
            LLMResponse with the completion result and metadata.
        """
        ...

    @abstractmethod
    def list_models(self) -> list[str]:
        """Return a list of available model identifiers for this provider."""
        ...

    def estimate_cost(
        self, input_tokens: int, output_tokens: int, model: str
    ) -> float:
        """Estimate the cost in USD for the given token counts.

        Args:
            input_tokens: Number of input/prompt tokens.
            output_tokens: Number of output/completion tokens.
            model: Model identifier for pricing lookup.

        Returns:
            Estimated cost in USD, 0.0 when the model has no pricing entry.
        """
        from .config import get_model_pricing

        pricing = get_model_pricing(self.PROVIDER_NAME, model) or get_model_pricing(
            self.PROVIDER_NAME, self.DEFAULT_MODEL
        )
        if not pricing:
            return 0.0
        input_cost = (input_tokens / 1_000_000) * pricing["input_price"]
        output_cost = (output_tokens / 1_000_000) * pricing["output_price"]
        return round(input_cost + output_cost, 6)

    def classify_error(self, exc: Exception) -> ErrorKind:
        """Classify an exception raised by this provider's SDK."""
        return classify_exception(exc)
