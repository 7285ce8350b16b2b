"""
Analysis provider abstraction.

The remote analysis capability is a swappable interface. Two variants ship:

- ``RemoteLLMAnalysisProvider`` drives a chat LLM from the provider
  registry and parses its JSON answer.
- ``MockFixtureProvider`` replays scripted responses and failures, for
  tests and offline development.

Providers return the raw decoded response; validation happens in the
analysis client so every provider is held to the same schema.
"""
from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod

from .errors import AnalysisError, ErrorKind
from .llm import get_provider
from .prompts.code_review import build_code_review_prompt
from .validation import extract_json_object

logger = logging.getLogger(__name__)

_analysis_providers = {}


def register_analysis_provider(cls):
    """Decorator to register an analysis provider class."""
    _analysis_providers[cls.PROVIDER_NAME] = cls
    return cls


def get_analysis_provider(name: str, **kwargs):
    """Instantiate a registered analysis provider by name.

    Raises:
        ValueError: If the provider name is not registered.
    """
    cls = _analysis_providers.get(name)
    if cls is None:
        raise ValueError(
            f"Unknown analysis provider: {name}. "
            f"Available: {list(_analysis_providers.keys())}"
        )
    return cls(**kwargs)


class AnalysisProvider(ABC):
    """Request/response contract of the remote analysis capability.

    ``analyze`` takes code and language and returns the decoded
    ``{errors, weak_areas, quality_score, analysis_time_ms}`` body. Failures
    are raised as ``AnalysisError`` with a taxonomy kind.
    """

    PROVIDER_NAME: str = ""

    @property
    def name(self) -> str:
        return self.PROVIDER_NAME

    @abstractmethod
    def analyze(self, code: str, language: str, timeout: float = None) -> dict:
        ...


@register_analysis_provider
class RemoteLLMAnalysisProvider(AnalysisProvider):
    """Analysis backed by a chat LLM (Claude, OpenAI or Zhipu).

    Args:
        llm: A ``BaseLLMProvider`` instance. Built from *ai_provider* and
             *api_key* when omitted.
        model: Model identifier; provider default when empty.
    """

    PROVIDER_NAME = "remote_llm"

    def __init__(self, llm=None, ai_provider: str = "claude",
                 api_key: str = None, model: str = None,
                 max_tokens: int = 2000):
        self.llm = llm or get_provider(ai_provider, api_key=api_key)
        self.model = model or None
        self.max_tokens = max_tokens

    @property
    def name(self) -> str:
        return f"{self.PROVIDER_NAME}:{self.llm.PROVIDER_NAME}"

    def analyze(self, code: str, language: str, timeout: float = None) -> dict:
        messages = build_code_review_prompt(code, language)
        start = time.monotonic()
        try:
            response = self.llm.chat(
                messages,
                model=self.model,
                max_tokens=self.max_tokens,
                timeout=timeout,
            )
        except AnalysisError:
            raise
        except Exception as e:
            kind = self.llm.classify_error(e)
            raise AnalysisError(kind, f"{type(e).__name__}: {e}") from e

        parsed = extract_json_object(response.content)
        if not isinstance(parsed, dict):
            raise AnalysisError(
                ErrorKind.INVALID_RESPONSE,
                f"LLM reply is not a JSON object ({len(response.content)} chars)",
            )
        parsed.setdefault(
            "analysis_time_ms",
            response.latency_ms or int((time.monotonic() - start) * 1000),
        )
        logger.debug(
            f"LLM analysis: model={response.model}, "
            f"tokens={response.input_tokens}+{response.output_tokens}, "
            f"cost={response.cost}"
        )
        return parsed


@register_analysis_provider
class MockFixtureProvider(AnalysisProvider):
    """Scripted provider.

    Each call consumes the next script entry. An entry is either a response
    dict (returned), an exception instance (raised), or a callable taking
    ``(code, language)`` and returning a response. Once the script runs out
    the *default* response is returned.

    Args:
        script: Ordered entries to replay.
        default: Response used after the script is exhausted.
        delay: Seconds to sleep before answering, to simulate latency.
    """

    PROVIDER_NAME = "mock"

    DEFAULT_RESPONSE = {
        "errors": [],
        "weak_areas": [],
        "quality_score": 75,
        "analysis_time_ms": 5,
    }

    def __init__(self, script=None, default: dict = None, delay: float = 0.0):
        self.script = list(script or [])
        self.default = dict(default) if default is not None else dict(self.DEFAULT_RESPONSE)
        self.delay = delay
        self.calls = []
        self._lock = threading.Lock()

    def push(self, *entries):
        """Append entries to the script."""
        with self._lock:
            self.script.extend(entries)

    def analyze(self, code: str, language: str, timeout: float = None) -> dict:
        with self._lock:
            self.calls.append((code, language))
            entry = self.script.pop(0) if self.script else self.default

        if self.delay:
            time.sleep(self.delay)

        if isinstance(entry, BaseException):
            raise entry
        if callable(entry):
            return entry(code, language)
        return dict(entry)
