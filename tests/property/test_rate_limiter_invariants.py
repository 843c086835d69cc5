"""Property-based tests for fixed-window rate limiter invariants."""

from __future__ import annotations

import threading

from hypothesis import given, seed, settings
from hypothesis import strategies as st

from quantforge_guard.security.rate_limiter import FixedWindowRateLimiter

T0 = 1_000.0

steps = st.lists(
    st.tuples(st.sampled_from(["a", "b", "c"]), st.floats(0, 30, allow_nan=False)),
    min_size=1,
    max_size=80,
)


@seed(4301)
@settings(max_examples=150, deadline=None)
@given(max_requests=st.integers(1, 5), window=st.floats(1, 60, allow_nan=False), steps=steps)
def test_limiter_matches_reference_model(
    max_requests: int, window: float, steps: list[tuple[str, float]]
) -> None:
    """
    Property: Decisions match a direct fixed-window model.

    Count never exceeds the budget and a window always ends at its opening
    time plus the window length.
    """
    limiter = FixedWindowRateLimiter(max_requests, window)
    model: dict[str, tuple[int, float]] = {}
    now = T0

    for identity, gap in steps:
        now += gap
        decision = limiter.check(identity, now=now)

        count, reset_at = model.get(identity, (0, float("-inf")))
        if now >= reset_at:
            count, reset_at = 1, now + window
            expected = True
        elif count < max_requests:
            count += 1
            expected = True
        else:
            expected = False
        model[identity] = (count, reset_at)

        assert decision.allowed is expected
        assert decision.count == count <= max_requests
        assert decision.window_reset_at == reset_at


@seed(4302)
@settings(max_examples=25, deadline=None)
@given(threads=st.integers(2, 8), per_thread=st.integers(1, 40))
def test_concurrent_checks_count_every_request(threads: int, per_thread: int) -> None:
    """
    Property: N concurrent checks within one window yield a count of N.
    """
    limiter = FixedWindowRateLimiter(10_000, 60)
    barrier = threading.Barrier(threads)

    def worker() -> None:
        barrier.wait()
        for _ in range(per_thread):
            limiter.check("shared", now=T0)

    workers = [threading.Thread(target=worker) for _ in range(threads)]
    for thread in workers:
        thread.start()
    for thread in workers:
        thread.join()

    record = limiter.get_record("shared")
    assert record is not None
    assert record.count == threads * per_thread
