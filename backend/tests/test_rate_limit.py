from genstudio.services import rate_limit
from genstudio.services.rate_limit import RateLimiter


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_allows_up_to_limit_then_blocks():
    limiter = RateLimiter(limit=3, window_seconds=60, clock=FakeClock())

    assert [limiter.allow("1.2.3.4") for _ in range(4)] == [True, True, True, False]


def test_window_slides():
    clock = FakeClock()
    limiter = RateLimiter(limit=2, window_seconds=60, clock=clock)
    limiter.allow("a")
    clock.now += 30
    limiter.allow("a")
    assert not limiter.allow("a")

    clock.now += 31
    assert limiter.allow("a")
    assert not limiter.allow("a")


def test_keys_are_independent():
    limiter = RateLimiter(limit=1, window_seconds=60, clock=FakeClock())

    assert limiter.allow("a")
    assert limiter.allow("b")
    assert not limiter.allow("a")


def test_retry_after():
    clock = FakeClock()
    limiter = RateLimiter(limit=1, window_seconds=60, clock=clock)
    assert limiter.retry_after("a") == 0.0

    limiter.allow("a")
    clock.now += 20

    assert limiter.retry_after("a") == 40.0


def test_reset():
    limiter = RateLimiter(limit=1, window_seconds=60, clock=FakeClock())
    limiter.allow("a")
    limiter.allow("b")

    limiter.reset("a")
    assert limiter.allow("a")
    assert not limiter.allow("b")

    limiter.reset()
    assert limiter.allow("b")


def test_prunes_idle_keys(monkeypatch):
    monkeypatch.setattr(rate_limit, "MAX_TRACKED_KEYS", 2)
    clock = FakeClock()
    limiter = RateLimiter(limit=1, window_seconds=10, clock=clock)
    limiter.allow("a")
    limiter.allow("b")

    clock.now += 11
    limiter.allow("c")

    assert set(limiter._hits) == {"c"}
