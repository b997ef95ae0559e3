import asyncio
from collections import deque
from dataclasses import dataclass
from time import monotonic

from fastapi import HTTPException, Request, status


@dataclass(frozen=True, slots=True)
class RateLimitRule:
    limit: int
    window_seconds: int


class InMemoryRateLimiter:
    """Sliding-window limiter keyed by client; idle keys are pruned."""

    def __init__(self, prune_every: int = 1000) -> None:
        self._events: dict[str, deque[float]] = {}
        self._lock = asyncio.Lock()
        self._prune_every = prune_every
        self._calls = 0
        self._longest_window = 0

    def __len__(self) -> int:
        return len(self._events)

    async def allow(self, key: str, rule: RateLimitRule) -> bool:
        now = monotonic()
        window_start = now - rule.window_seconds

        async with self._lock:
            self._calls += 1
            self._longest_window = max(self._longest_window, rule.window_seconds)
            if self._calls % self._prune_every == 0:
                self._prune(now - self._longest_window)

            events = self._events.setdefault(key, deque())
            while events and events[0] <= window_start:
                events.popleft()

            if len(events) >= rule.limit:
                return False

            events.append(now)
            return True

    def _prune(self, cutoff: float) -> None:
        idle_keys = [
            key
            for key, events in self._events.items()
            if not events or events[-1] <= cutoff
        ]
        for key in idle_keys:
            del self._events[key]


def client_key(request: Request, scope: str) -> str:
    forwarded_for = request.headers.get("x-forwarded-for", "")
    client_ip = forwarded_for.split(",")[0].strip() if forwarded_for else ""
    if not client_ip and request.client is not None:
        client_ip = request.client.host
    return f"{scope}:{client_ip or 'unknown'}"


def rate_limited(scope: str, rule: RateLimitRule):
    """FastAPI dependency that rejects a client over ``rule`` with 429."""

    async def dependency(request: Request) -> None:
        limiter: InMemoryRateLimiter | None = getattr(
            request.app.state, "rate_limiter", None
        )
        if limiter is None:
            return
        if not await limiter.allow(client_key(request, scope), rule):
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many requests, please try again later",
            )

    return dependency
