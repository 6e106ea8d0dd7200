from __future__ import annotations

"""
Retry/backoff policy for request dispatch.

This module centralizes retry classification and backoff timing so the
dispatcher stays thin. Only transport-level failures are retried; an HTTP
response of any status is a result, not an error.
"""

from dataclasses import dataclass
from typing import Callable, Optional

import httpx


Classifier = Callable[[BaseException], bool]


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    backoff_step_s: float = 0.1
    classify_exception: Optional[Classifier] = None

    def should_retry(self, exc: BaseException, attempt: int) -> bool:
        """
        Return True when another attempt should follow the failed one.
        attempt is one-based (1 == the first attempt just failed).
        """
        if attempt >= max(1, int(self.max_attempts)):
            return False
        cls = self.classify_exception or _default_exception_classifier
        return bool(cls(exc))

    def backoff_seconds(self, attempt: int) -> float:
        """
        Linear backoff; attempt is one-based.
        1 -> step, 2 -> step*2, 3 -> step*3, ...
        """
        return max(0.0, float(self.backoff_step_s)) * max(1, attempt)


def _default_exception_classifier(exc: BaseException) -> bool:
    """Transport failures (connect, read, write, protocol) are retryable."""
    return isinstance(exc, httpx.TransportError)
