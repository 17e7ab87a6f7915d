"""
Per-caller rate limiting for AI processing.

Token bucket per caller id:
- Each caller starts with ``capacity`` tokens (default 10/minute)
- Tokens refill continuously at ``capacity / 60`` per second
- Each admitted request consumes one token; a consumed token is never refunded

Backoff:
- When the model service reports a rate limit, the caller enters a backoff
  window during which every request is denied
- Each further rate limit doubles the window, up to a cap
- A successful request clears the window

State is in-memory and per-process. Entries idle longer than
``idle_seconds`` with no pending backoff are swept periodically.

Usage:
    from api.services.rate_limiter import get_rate_limiter

    limiter = get_rate_limiter()
    result = await limiter.with_rate_limit(user_id, lambda: pipeline_call())
"""
import logging
import math
import threading
import time
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Optional, TypeVar

from config.settings import settings
from api.services.ai_errors import RateLimitError

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass
class RateLimitState:
    """Token bucket and backoff state for one caller."""
    tokens: float
    last_refill: float
    backoff_until: float = 0.0
    backoff_seconds: float = 0.0  # last window applied; 0 after a success


@dataclass
class RateLimitDecision:
    """Result of an admission check."""
    allowed: bool
    wait_seconds: Optional[float] = None


class RateLimiter:
    """
    Thread-safe token bucket rate limiter keyed by caller id.

    All reads and writes of caller state happen under a single lock, so
    concurrent requests for the same caller can't lose token or backoff updates.
    """

    def __init__(
        self,
        capacity: Optional[int] = None,
        refill_rate: Optional[float] = None,
        backoff_base: Optional[float] = None,
        backoff_max: Optional[float] = None,
        idle_seconds: Optional[float] = None,
        sweep_interval: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize rate limiter.

        Args:
            capacity: Bucket size (requests per minute)
            refill_rate: Tokens per second (default capacity / 60)
            backoff_base: First backoff window in seconds
            backoff_max: Cap for doubled backoff windows
            idle_seconds: Inactivity after which state may be swept
            sweep_interval: Minimum seconds between sweeps
            clock: Monotonic time source in seconds
        """
        self.capacity = capacity if capacity is not None else settings.rate_limit_capacity
        if refill_rate is None:
            refill_rate = (
                settings.rate_limit_refill_rate if capacity is None else self.capacity / 60
            )
        if refill_rate <= 0:
            raise ValueError("refill_rate must be positive")
        self.refill_rate = refill_rate
        self.backoff_base = backoff_base if backoff_base is not None else settings.backoff_base_seconds
        self.backoff_max = backoff_max if backoff_max is not None else settings.backoff_max_seconds
        self.idle_seconds = idle_seconds if idle_seconds is not None else settings.rate_limit_idle_seconds
        self.sweep_interval = (
            sweep_interval if sweep_interval is not None else settings.rate_limit_sweep_seconds
        )
        self._clock = clock
        self._states: dict[str, RateLimitState] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def check_rate_limit(self, caller_id: str) -> RateLimitDecision:
        """
        Check whether a request is allowed, consuming a token if so.

        Returns:
            RateLimitDecision; when denied, wait_seconds estimates how long
            until a request would be admitted
        """
        with self._lock:
            now = self._clock()
            self._maybe_sweep_locked(now)

            state = self._states.get(caller_id)
            if state is None:
                state = RateLimitState(tokens=float(self.capacity), last_refill=now)
                self._states[caller_id] = state

            if now < state.backoff_until:
                return RateLimitDecision(allowed=False, wait_seconds=state.backoff_until - now)

            elapsed = max(0.0, now - state.last_refill)
            state.tokens = min(float(self.capacity), state.tokens + elapsed * self.refill_rate)
            state.last_refill = now

            if state.tokens < 1:
                wait = (1 - state.tokens) / self.refill_rate
                return RateLimitDecision(allowed=False, wait_seconds=wait)

            state.tokens -= 1
            return RateLimitDecision(allowed=True)

    def apply_backoff(self, caller_id: str, retry_after: Optional[float] = None) -> float:
        """
        Start or extend the caller's backoff window.

        The window starts at ``backoff_base`` and doubles on every further
        rate limit until a successful request resets it. A retry-after hint
        from the service is honoured as a lower bound. The result is always
        capped at ``backoff_max``.

        Returns:
            The window length applied, in seconds
        """
        with self._lock:
            now = self._clock()
            state = self._states.get(caller_id)
            if state is None:
                state = RateLimitState(tokens=float(self.capacity), last_refill=now)
                self._states[caller_id] = state

            if state.backoff_seconds > 0:
                window = state.backoff_seconds * 2
            else:
                window = self.backoff_base

            if retry_after:
                window = max(window, retry_after)
            window = min(window, self.backoff_max)

            state.backoff_seconds = window
            state.backoff_until = now + window

        logger.warning(f"Rate limit backoff for {caller_id}: {window:.1f}s")
        return window

    def reset_backoff(self, caller_id: str) -> None:
        """Clear the caller's backoff window after a successful request."""
        with self._lock:
            state = self._states.get(caller_id)
            if state:
                state.backoff_until = 0.0
                state.backoff_seconds = 0.0

    def get_state(self, caller_id: str) -> Optional[RateLimitState]:
        """Get a snapshot of a caller's state (None if untracked)."""
        with self._lock:
            state = self._states.get(caller_id)
            return replace(state) if state else None

    def cleanup(self) -> int:
        """
        Remove state for idle callers with no pending backoff.

        Returns:
            Number of entries removed
        """
        with self._lock:
            return self._cleanup_locked(self._clock())

    def _maybe_sweep_locked(self, now: float) -> None:
        if now - self._last_sweep >= self.sweep_interval:
            self._cleanup_locked(now)

    def _cleanup_locked(self, now: float) -> int:
        self._last_sweep = now
        stale = [
            caller_id for caller_id, state in self._states.items()
            if now - state.last_refill > self.idle_seconds and state.backoff_until <= now
        ]
        for caller_id in stale:
            del self._states[caller_id]
        if stale:
            logger.debug(f"Swept {len(stale)} idle rate limit entries")
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)

    async def with_rate_limit(
        self,
        caller_id: str,
        fn: Callable[[], Awaitable[T]],
    ) -> T:
        """
        Run an async call under the caller's rate limit.

        Raises:
            RateLimitError: Admission denied (carries retry_after seconds),
                or the call itself hit a rate limit (backoff applied first)
        """
        decision = self.check_rate_limit(caller_id)
        if not decision.allowed:
            wait = math.ceil(decision.wait_seconds or 0)
            logger.info(f"Rate limited {caller_id}, retry in {wait}s")
            raise RateLimitError(
                f"Rate limit exceeded. Please wait {wait} seconds.",
                retry_after=wait or None,
            )

        try:
            result = await fn()
        except RateLimitError as e:
            self.apply_backoff(caller_id, e.retry_after)
            raise

        self.reset_backoff(caller_id)
        return result


# Singleton instance
_rate_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    """Get or create RateLimiter singleton."""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter()
    return _rate_limiter


def reset_rate_limiter() -> None:
    """
    Reset the rate limiter singleton.

    For testing only - allows tests to start with fresh buckets.
    """
    global _rate_limiter
    _rate_limiter = None
