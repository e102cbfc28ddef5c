from __future__ import annotations

import random
import threading
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable

from gateway.errors import ProviderError


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 30000
    jitter_ratio: float = 0.1


def backoff_delay(retry: RetryConfig, attempt: int) -> float:
    delay_ms = min(
        retry.max_delay_ms,
        retry.base_delay_ms * (2 ** (attempt - 1)),
    )
    jitter = delay_ms * retry.jitter_ratio
    delay_ms += random.uniform(0, jitter)
    return delay_ms / 1000


@dataclass(frozen=True)
class LastError:
    status: int | None
    message: str
    at: str


@dataclass
class ProviderState:
    cooldown_until: float = 0.0
    disabled_until: float = 0.0
    consecutive_failures: int = 0
    last_error: LastError | None = None


class ProviderHealth:
    """Cooldown and disable deadlines per provider.

    Eligibility is a time comparison against both deadlines, so cooling and
    disabled providers come back on their own once the clock passes them.
    Deadlines only ever move forward.
    """

    def __init__(self, names: Iterable[str], clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._states: dict[str, ProviderState] = {}
        self._locks: dict[str, threading.Lock] = {}
        for name in names:
            self._states[name] = ProviderState()
            self._locks[name] = threading.Lock()

    def state(self, name: str) -> ProviderState:
        return self._states[name]

    def is_cooling(self, name: str) -> bool:
        return self._clock() < self._states[name].cooldown_until

    def is_disabled(self, name: str) -> bool:
        return self._clock() < self._states[name].disabled_until

    def is_eligible(self, name: str) -> bool:
        return not (self.is_disabled(name) or self.is_cooling(name))

    def cooldown(self, name: str, seconds: float) -> float:
        with self._locks[name]:
            state = self._states[name]
            state.cooldown_until = max(state.cooldown_until, self._clock() + seconds)
            return state.cooldown_until

    def disable(self, name: str, seconds: float) -> float:
        with self._locks[name]:
            state = self._states[name]
            state.disabled_until = max(state.disabled_until, self._clock() + seconds)
            return state.disabled_until

    def mark_success(self, name: str) -> None:
        # disabled_until is left alone; only its deadline clears it
        with self._locks[name]:
            state = self._states[name]
            state.consecutive_failures = 0
            state.cooldown_until = 0.0

    def mark_failure(self, name: str, error: ProviderError) -> None:
        with self._locks[name]:
            state = self._states[name]
            state.consecutive_failures += 1
            state.last_error = LastError(
                status=error.status,
                message=error.message,
                at=datetime.now(timezone.utc).isoformat(),
            )

    def reset(self) -> None:
        for name in self._states:
            with self._locks[name]:
                self._states[name] = ProviderState()

    def snapshot(self) -> dict[str, dict]:
        now = self._clock()
        result = {}
        for name, state in self._states.items():
            last_error = None
            if state.last_error is not None:
                last_error = {
                    "status": state.last_error.status,
                    "message": state.last_error.message,
                    "at": state.last_error.at,
                }
            result[name] = {
                "eligible": now >= state.cooldown_until and now >= state.disabled_until,
                "cooldown_remaining_s": round(max(0.0, state.cooldown_until - now), 3),
                "disabled_remaining_s": round(max(0.0, state.disabled_until - now), 3),
                "consecutive_failures": state.consecutive_failures,
                "last_error": last_error,
            }
        return result


class LocalQuota:
    """Sliding-window admission control: at most max_requests per window_s."""

    def __init__(
        self,
        names: Iterable[str],
        max_requests: int = 5,
        window_s: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_s = window_s
        self._clock = clock
        self._events: dict[str, deque[float]] = {}
        self._locks: dict[str, threading.Lock] = {}
        for name in names:
            self._events[name] = deque()
            self._locks[name] = threading.Lock()

    def try_consume(self, name: str) -> bool:
        with self._locks[name]:
            now = self._clock()
            events = self._events[name]
            self._prune(events, now)
            if len(events) >= self.max_requests:
                return False
            events.append(now)
            return True

    def usage(self, name: str) -> dict:
        with self._locks[name]:
            events = self._events[name]
            self._prune(events, self._clock())
            return {"used": len(events), "max": self.max_requests, "window_s": self.window_s}

    def reset(self) -> None:
        for name in self._events:
            with self._locks[name]:
                self._events[name].clear()

    def _prune(self, events: deque[float], now: float) -> None:
        window_start = now - self.window_s
        while events and events[0] < window_start:
            events.popleft()
