"""Fixed-window, per-identity rate limiting."""

from __future__ import annotations

from dataclasses import dataclass, replace
from threading import Lock

from quantforge_guard.utilities.logging_patterns import get_logger
from quantforge_guard.utilities.time_provider import Clock, SystemClock

logger = get_logger(__name__, component="security")

DEFAULT_SHARDS = 16


@dataclass
class RateLimitRecord:
    """Request count for one identity inside its current window."""

    identity: str
    count: int
    window_reset_at: float  # epoch seconds, exclusive end of the window


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of one rate limit check."""

    allowed: bool
    identity: str
    count: int
    limit: int
    window_reset_at: float
    retry_after: float = 0.0

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)


class _Shard:
    __slots__ = ("lock", "records")

    def __init__(self) -> None:
        self.lock = Lock()
        self.records: dict[str, RateLimitRecord] = {}


class FixedWindowRateLimiter:
    """
    Count requests per identity in fixed windows of ``window_seconds``.

    The first request of an identity opens a window ``[now, now + window)``
    with a count of 1. Later requests inside the window increment the count
    while it stays within ``max_requests``; denied requests leave it
    untouched. Once the window has elapsed the next request starts a new
    window exactly like a first request. A caller can therefore spend a full
    budget at the end of one window and another at the start of the next.

    Records live in lock-guarded shards keyed by identity hash, so
    concurrent checks for one identity never lose an increment. Expired
    records are removed by ``sweep``.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        *,
        clock: Clock | None = None,
        shards: int = DEFAULT_SHARDS,
        name: str = "default",
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        if shards < 1:
            raise ValueError("shards must be at least 1")
        self.max_requests = max_requests
        self.window_seconds = float(window_seconds)
        self.name = name
        self._clock = clock or SystemClock()
        self._shards = tuple(_Shard() for _ in range(shards))

    def _shard_for(self, identity: str) -> _Shard:
        return self._shards[hash(identity) % len(self._shards)]

    def _now(self, now: float | None) -> float:
        return self._clock.time() if now is None else float(now)

    def check(self, identity: str, now: float | None = None) -> RateLimitDecision:
        """
        Register a request for ``identity`` and decide whether it may proceed.

        Args:
            identity: Caller key, typically a user id or client IP.
            now: Epoch seconds; defaults to the limiter's clock.

        Returns:
            RateLimitDecision. Denials carry ``retry_after`` seconds until
            the current window ends.
        """
        current = self._now(now)
        shard = self._shard_for(identity)

        with shard.lock:
            record = shard.records.get(identity)
            if record is None or current >= record.window_reset_at:
                record = RateLimitRecord(
                    identity=identity,
                    count=1,
                    window_reset_at=current + self.window_seconds,
                )
                shard.records[identity] = record
                allowed = True
            elif record.count < self.max_requests:
                record.count += 1
                allowed = True
            else:
                allowed = False
            count = record.count
            reset_at = record.window_reset_at

        if allowed:
            return RateLimitDecision(
                allowed=True,
                identity=identity,
                count=count,
                limit=self.max_requests,
                window_reset_at=reset_at,
            )

        retry_after = max(0.0, reset_at - current)
        logger.warning(
            f"Rate limit exceeded for {identity}",
            operation="rate_limit",
            status="blocked",
            limiter=self.name,
            retry_after=round(retry_after, 3),
        )
        return RateLimitDecision(
            allowed=False,
            identity=identity,
            count=count,
            limit=self.max_requests,
            window_reset_at=reset_at,
            retry_after=retry_after,
        )

    def check_limit(self, identity: str, now: float | None = None) -> bool:
        """Return True when the request for ``identity`` is within its budget."""
        return self.check(identity, now).allowed

    def sweep(self, now: float | None = None) -> int:
        """Drop records whose window has elapsed; return how many were removed."""
        current = self._now(now)
        removed = 0
        for shard in self._shards:
            with shard.lock:
                expired = [
                    identity
                    for identity, record in shard.records.items()
                    if current >= record.window_reset_at
                ]
                for identity in expired:
                    del shard.records[identity]
                removed += len(expired)
        if removed:
            logger.debug(
                "Swept expired rate limit records",
                operation="rate_limit_sweep",
                limiter=self.name,
                removed=removed,
            )
        return removed

    def get_record(self, identity: str) -> RateLimitRecord | None:
        """Return a snapshot of the record for ``identity``, if any."""
        shard = self._shard_for(identity)
        with shard.lock:
            record = shard.records.get(identity)
            return replace(record) if record is not None else None

    def reset(self, identity: str | None = None) -> None:
        """Forget one identity, or every identity when none is given."""
        if identity is not None:
            shard = self._shard_for(identity)
            with shard.lock:
                shard.records.pop(identity, None)
            return
        for shard in self._shards:
            with shard.lock:
                shard.records.clear()

    def __len__(self) -> int:
        total = 0
        for shard in self._shards:
            with shard.lock:
                total += len(shard.records)
        return total


__all__ = [
    "FixedWindowRateLimiter",
    "RateLimitDecision",
    "RateLimitRecord",
]
