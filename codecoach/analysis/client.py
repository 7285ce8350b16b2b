"""
Analysis client: the only component that talks to the remote provider.

Owns the hard per-attempt timeout, the retry loop with jittered exponential
backoff, response validation, and the hand-off to the deferred queue once
the retry budget is spent.
"""
from __future__ import annotations

import logging
import random
import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError

from .errors import AnalysisDeferred, AnalysisError, ErrorKind
from .llm.base import classify_exception
from .types import AnalysisReport
from .validation import validate_analysis_response

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_MAX_ATTEMPTS = 4
DEFAULT_BACKOFF_BASE_SECONDS = 1.0
DEFAULT_BACKOFF_JITTER = 0.2


class AnalysisClient:
    """Typed, retrying wrapper around an ``AnalysisProvider``.

    Args:
        provider: The analysis provider to call.
        queue: Deferred queue receiving requests whose retries ran out. When
            None, the last attempt's error is raised instead.
        timeout: Default hard timeout per attempt, in seconds.
        max_attempts: Total attempts before escalation.
        backoff_base: Delay before the second attempt; doubles each time.
        jitter: Relative jitter applied to every delay (0.2 means ±20%).
        max_code_chars: Longest code accepted; longer input is Rejected.
        supported_languages: Accepted languages; empty accepts any.
        sleep: Injected sleep, replaced in tests.
        rng: Injected ``random.Random`` for the jitter.
        Each attempt runs on its own worker thread, so the timeout clock starts
        when the provider call does and a hung call never delays another one.
    """

    def __init__(
        self,
        provider,
        queue=None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_base: float = DEFAULT_BACKOFF_BASE_SECONDS,
        jitter: float = DEFAULT_BACKOFF_JITTER,
        max_code_chars: int = 50000,
        supported_languages=(),
        sleep=time.sleep,
        rng: random.Random | None = None,
        redelivery_delay: float | None = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.provider = provider
        self.queue = queue
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.jitter = jitter
        self.max_code_chars = max_code_chars
        self.supported_languages = frozenset(l.lower() for l in supported_languages)
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._executors = set()
        self._executors_lock = threading.Lock()
        # The queue picks up where the in-line schedule stopped.
        if redelivery_delay is None:
            redelivery_delay = backoff_base * 2 ** (max_attempts - 1)
        self.redelivery_delay = redelivery_delay

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def analyze(
        self,
        code: str,
        language: str,
        timeout: float | None = None,
        submission_id: int | None = None,
    ) -> AnalysisReport:
        """Analyze one piece of code.

        Returns:
            The validated ``AnalysisReport``.

        Raises:
            AnalysisError: kind Rejected on invalid input or a provider
                rejection; the last attempt's error when retries run out
                and no queue is configured.
            AnalysisDeferred: retries ran out and the request was queued.
        """
        self._preflight(code, language)
        timeout = self.timeout if timeout is None else timeout
        delays = self.backoff_delays()

        last_error = None
        for attempt in range(1, self.max_attempts + 1):
            if attempt > 1:
                self._sleep(delays[attempt - 2])

            start = time.monotonic()
            try:
                report = self._attempt(code, language, timeout)
            except AnalysisError as e:
                latency_ms = int((time.monotonic() - start) * 1000)
                self._log_attempt(submission_id, attempt, latency_ms, e.kind.value, e.message)
                if not e.retryable:
                    raise
                last_error = e
                continue

            latency_ms = int((time.monotonic() - start) * 1000)
            self._log_attempt(submission_id, attempt, latency_ms, "success")
            return report

        return self._escalate(submission_id, last_error)

    def backoff_delays(self) -> list[float]:
        """Delays before attempts 2..N: base * 2^i, jittered, non-decreasing."""
        delays = []
        previous = 0.0
        for i in range(self.max_attempts - 1):
            nominal = self.backoff_base * (2 ** i)
            factor = 1 + self._rng.uniform(-self.jitter, self.jitter)
            delay = max(previous, nominal * factor)
            delays.append(delay)
            previous = delay
        return delays

    def shutdown(self, wait: bool = False):
        """Shut down the workers of attempts that are still running."""
        with self._executors_lock:
            executors = list(self._executors)
        for executor in executors:
            executor.shutdown(wait=wait)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _preflight(self, code, language):
        if not isinstance(code, str) or not code.strip():
            raise AnalysisError(ErrorKind.REJECTED, "code is empty")
        if len(code) > self.max_code_chars:
            raise AnalysisError(
                ErrorKind.REJECTED,
                f"code is {len(code)} characters, limit is {self.max_code_chars}",
            )
        if not isinstance(language, str) or not language.strip():
            raise AnalysisError(ErrorKind.REJECTED, "language is required")
        if self.supported_languages and language.strip().lower() not in self.supported_languages:
            raise AnalysisError(
                ErrorKind.REJECTED, f"unsupported language: {language}"
            )

    def _attempt(self, code, language, timeout) -> AnalysisReport:
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="analysis")
        with self._executors_lock:
            self._executors.add(executor)
        future = executor.submit(self.provider.analyze, code, language, timeout)
        future.add_done_callback(lambda _: self._forget(executor))
        executor.shutdown(wait=False)
        try:
            raw = future.result(timeout=timeout)
        except FuturesTimeoutError:
            # The worker thread cannot be killed; it finishes in the background.
            raise AnalysisError(
                ErrorKind.TIMEOUT, f"no response within {timeout:g}s"
            ) from None
        except AnalysisError:
            raise
        except Exception as e:
            raise AnalysisError(
                classify_exception(e), f"{type(e).__name__}: {e}"
            ) from e
        return validate_analysis_response(raw, provider=self.provider.name)

    def _forget(self, executor):
        with self._executors_lock:
            self._executors.discard(executor)

    def _escalate(self, submission_id, last_error: AnalysisError):
        if self.queue is None or submission_id is None:
            logger.warning(
                f"Analysis retries exhausted after {self.max_attempts} attempts "
                f"(submission={submission_id}): {last_error.kind.value}"
            )
            raise last_error

        self.queue.enqueue(
            submission_id,
            error_kind=last_error.kind.value,
            error_message=last_error.message,
            delay=self.redelivery_delay,
        )
        logger.warning(
            f"Analysis for submission {submission_id} deferred to queue after "
            f"{self.max_attempts} attempts: {last_error.kind.value}"
        )
        raise AnalysisDeferred(
            last_error.kind, last_error.message, attempts=self.max_attempts
        )

    def _log_attempt(self, submission_id, attempt, latency_ms, outcome, detail=None):
        level = logging.INFO if outcome == "success" else logging.WARNING
        message = (
            f"analysis attempt {attempt}/{self.max_attempts} "
            f"submission={submission_id} outcome={outcome} latency_ms={latency_ms}"
        )
        if detail:
            message += f" ({detail})"
        logger.log(
            level,
            message,
            extra={
                "submission_id": submission_id,
                "attempt_number": attempt,
                "latency_ms": latency_ms,
                "outcome": outcome,
            },
        )
