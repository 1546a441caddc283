"""
NoteKeeper Backend: Completion Service Interface
==================================================

What:  Abstract contract for the external text-completion model, plus the
       circuit breaker every provider call goes through.
How:   `CompletionService.complete()` is a template method: it consults the
       breaker, delegates the single upstream request to the provider's
       `_request_completion()`, and records the outcome. Providers translate
       their own failures into exactly two exception types:

           CompletionTransportError  no success response (network, timeout, non-2xx)
           CompletionResponseError   success response, unreadable envelope

Who:   Called by TagGenerator, which absorbs every failure into a sentinel tag.

No retries happen here. Each `complete()` call issues at most one upstream
request; retrying belongs to whoever calls the HTTP API.

Implementations:
    - OpenAICompletionService: OpenAI-compatible chat-completions endpoint (httpx)
    - GeminiCompletionService: Google Gemini via google-generativeai
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Optional

from notekeeper.exceptions import (
    CircuitBreakerOpenError,
    CompletionResponseError,
    CompletionTransportError,
)

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    Circuit breaker in front of the completion service.

    State Machine:
        CLOSED (normal operation)
            → On transport failure: increment failure_count
            → When failure_count >= threshold: transition to OPEN

        OPEN (skipping all requests)
            → can_execute() raises CircuitBreakerOpenError immediately
            → After recovery_timeout seconds: transition to HALF_OPEN

        HALF_OPEN (testing recovery)
            → Allow the next request through
            → On success: CLOSED (failure_count reset)
            → On failure: back to OPEN (timer restarts)

    Not thread-safe; uvicorn async workers share one event loop per process,
    and each worker process keeps its own breaker.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    def can_execute(self) -> bool:
        """
        Returns True if a request may proceed.

        Raises:
            CircuitBreakerOpenError if OPEN and the recovery timeout hasn't elapsed.
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            elapsed = time.time() - (self.last_failure_time or 0)
            if elapsed >= self.recovery_timeout:
                logger.info(
                    "Circuit breaker transitioning to HALF_OPEN after %.1fs",
                    elapsed,
                )
                self.state = self.HALF_OPEN
                return True
            remaining = int(self.recovery_timeout - elapsed)
            raise CircuitBreakerOpenError(recovery_time=remaining)

        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker transitioning to CLOSED (service recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker returning to OPEN (test request failed)")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker OPENING after %d consecutive failures",
                self.failure_count,
            )
            self.state = self.OPEN


# ══════════════════════════════════════════════════════════════════════════
# Completion Service
# ══════════════════════════════════════════════════════════════════════════

class CompletionService(ABC):
    """
    Abstract interface for a single-turn text completion.

    Contract:
        - complete(instruction, text) returns the model's message content,
          which may be an empty string
        - raises CompletionTransportError, CompletionResponseError or
          CircuitBreakerOpenError; nothing else escapes
        - the caller does not need to know which provider is used
    """

    provider_name = "abstract"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60):
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
        )

    async def complete(self, instruction: str, text: str) -> str:
        """
        Run one completion through the circuit breaker.

        Only transport failures count against the breaker. An unreadable
        envelope means the service answered, so it resets the failure count.
        """
        self.circuit_breaker.can_execute()

        start_time = time.perf_counter()
        try:
            content = await self._request_completion(instruction, text)
        except CompletionTransportError as e:
            self.circuit_breaker.record_failure()
            logger.warning(
                "%s completion failed after %.0fms: %s",
                self.provider_name,
                (time.perf_counter() - start_time) * 1000,
                e.message,
            )
            raise
        except CompletionResponseError as e:
            self.circuit_breaker.record_success()
            logger.warning("%s returned an unreadable response: %s", self.provider_name, e.message)
            raise
        except Exception as e:
            # Provider bug or unexpected SDK error: treat as no usable response
            self.circuit_breaker.record_failure()
            logger.error(
                "Unexpected %s completion error: %s",
                self.provider_name,
                str(e),
                exc_info=True,
            )
            raise CompletionTransportError(
                message="Unexpected error calling the completion service",
                context={"error_type": type(e).__name__},
            ) from e

        self.circuit_breaker.record_success()
        logger.info(
            "%s completion finished in %.0fms (%d chars)",
            self.provider_name,
            (time.perf_counter() - start_time) * 1000,
            len(content),
        )
        return content

    @abstractmethod
    async def _request_completion(self, instruction: str, text: str) -> str:
        """
        Issue exactly one upstream request and return the message content.

        Raises:
            CompletionTransportError: no success response
            CompletionResponseError: success response that cannot be read
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Lightweight reachability/configuration check; must not raise."""
        ...

    async def aclose(self) -> None:
        """Release network resources held by the provider."""
        return None
