"""
Retry policy for rate-limited LLM backends.

Some backends enforce aggressive per-minute quotas and report the
wait time inside the error text ("... Please retry in 2.5s"). This
module classifies such failures and retries them with either the
advertised delay or exponential backoff.

Example:
    policy = RetryPolicy(max_attempts=3)
    message = await policy.run(lambda: provider._generate(body), "chat")
"""

from __future__ import annotations

import asyncio
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Markers that identify a quota / rate limit failure in free-form error text
RATE_LIMIT_MARKERS = (
    "429",
    "too many requests",
    "quota",
    "rate limit",
    "resource_exhausted",
)

_RETRY_IN_PATTERN = re.compile(
    r"retry in (\d+(?:\.\d+)?)\s*(ms|seconds?|minutes?|hours?|s|m|h)?",
    re.IGNORECASE,
)

# Milliseconds per unit, keyed by the unit's canonical form
_UNIT_MS = {
    "ms": 1,
    "s": 1000,
    "m": 60 * 1000,
    "h": 60 * 60 * 1000,
}

# Safety margin added on top of an advertised delay
MAX_BUFFER_MS = 1000


def _canonical_unit(unit: Optional[str]) -> str:
    if not unit:
        return "s"
    unit = unit.lower()
    if unit == "ms":
        return "ms"
    if unit.startswith("h"):
        return "h"
    if unit.startswith("m"):
        return "m"
    return "s"


def parse_retry_delay_ms(message: Optional[str]) -> Optional[int]:
    """Extract an advertised retry delay from an error message.

    Recognizes ``retry in <number> <unit>`` where unit is one of
    ms, s/seconds, m/minutes or h/hours (seconds when omitted).
    The delay is rounded up to whole milliseconds and padded by one
    unit of the stated precision, capped at one second.

    Returns:
        Delay in milliseconds, or None if the message has no hint
    """
    if not message:
        return None

    match = _RETRY_IN_PATTERN.search(message)
    if not match:
        return None

    value = float(match.group(1))
    unit_ms = _UNIT_MS[_canonical_unit(match.group(2))]
    return math.ceil(value * unit_ms) + min(unit_ms, MAX_BUFFER_MS)


def _status_code(error: BaseException) -> Optional[int]:
    for attr in ("status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def is_rate_limited(error: BaseException) -> bool:
    """Return True if the error signals HTTP 429 or a quota marker."""
    if _status_code(error) == 429:
        return True
    text = str(error).lower()
    return any(marker in text for marker in RATE_LIMIT_MARKERS)


@dataclass
class RetryPolicy:
    """Retry rate-limited operations.

    Attributes:
        max_attempts: Total attempts including the first call
        initial_delay_ms: Base for exponential backoff
        sleep: Awaitable sleep taking seconds (patched in tests)
    """

    max_attempts: int = 3
    initial_delay_ms: int = 1000
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)

    def compute_delay_ms(self, error: BaseException, attempt: int) -> int:
        """Delay before retrying after the given zero-based attempt failed."""
        advertised = parse_retry_delay_ms(str(error))
        if advertised is not None:
            return advertised
        return self.initial_delay_ms * (2 ** attempt)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        operation_name: str = "request",
    ) -> T:
        """Run ``operation``, retrying while it is rate limited.

        Non rate-limit errors, and the last rate-limit error once
        attempts are exhausted, propagate unchanged.
        """
        for attempt in range(self.max_attempts):
            try:
                return await operation()
            except Exception as e:
                if not is_rate_limited(e) or attempt >= self.max_attempts - 1:
                    raise

                delay_ms = self.compute_delay_ms(e, attempt)
                logger.warning(
                    f"Rate limited on {operation_name}, retrying in {delay_ms}ms "
                    f"(attempt {attempt + 1}/{self.max_attempts})"
                )
                await self.sleep(delay_ms / 1000)

        raise RuntimeError("Retry logic error")
