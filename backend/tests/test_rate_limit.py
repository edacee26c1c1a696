import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from tracker_api.rate_limit import InMemoryRateLimitStore, RateLimiter, rate_limited


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_limiter_allows_up_to_max_then_rejects() -> None:
    clock = FakeClock()
    limiter = RateLimiter(InMemoryRateLimitStore(clock=clock), max_requests=3, window_seconds=60)

    decisions = [limiter.check("10.0.0.1") for _ in range(4)]

    assert [d.allowed for d in decisions] == [True, True, True, False]
    assert [d.remaining for d in decisions] == [2, 1, 0, 0]
    assert decisions[0].reset_at == 1_060.0


def test_window_resets_after_expiry() -> None:
    clock = FakeClock()
    limiter = RateLimiter(InMemoryRateLimitStore(clock=clock), max_requests=1, window_seconds=60)

    assert limiter.check("a").allowed
    assert not limiter.check("a").allowed

    clock.now += 61
    decision = limiter.check("a")

    assert decision.allowed
    assert decision.reset_at == 1_121.0


def test_keys_are_counted_independently() -> None:
    limiter = RateLimiter(InMemoryRateLimitStore(clock=FakeClock()), max_requests=1, window_seconds=60)

    assert limiter.check("a").allowed
    assert limiter.check("b").allowed
    assert not limiter.check("a").allowed


def test_evict_expired_and_reset() -> None:
    clock = FakeClock()
    store = InMemoryRateLimitStore(clock=clock)
    store.hit("old", 10)
    clock.now += 5
    store.hit("fresh", 10)

    clock.now += 6
    assert store.evict_expired() == 1
    assert len(store) == 1

    store.reset("fresh")
    assert len(store) == 0

    store.hit("x", 10)
    store.hit("y", 10)
    store.reset()
    assert len(store) == 0


def test_store_sweeps_expired_keys_during_normal_hits() -> None:
    clock = FakeClock()
    store = InMemoryRateLimitStore(clock=clock, sweep_interval_seconds=10)

    for index in range(1000):
        store.hit(f"10.0.{index // 256}.{index % 256}", 10)
        clock.now += 1

    assert len(store) <= 20
    assert store.hit("10.0.0.0", 10).count == 1


def test_limiter_rejects_bad_configuration() -> None:
    with pytest.raises(ValueError):
        RateLimiter(InMemoryRateLimitStore(), max_requests=0, window_seconds=60)
    with pytest.raises(ValueError):
        RateLimiter(InMemoryRateLimitStore(), max_requests=5, window_seconds=0)


def _app(limiter: RateLimiter | None) -> FastAPI:
    app = FastAPI()
    app.state.rate_limiter = limiter

    @app.get("/ping", dependencies=[Depends(rate_limited)])
    def ping() -> dict[str, str]:
        return {"status": "ok"}

    return app


def test_dependency_sets_headers_and_returns_429() -> None:
    limiter = RateLimiter(InMemoryRateLimitStore(clock=FakeClock()), max_requests=2, window_seconds=60)

    with TestClient(_app(limiter)) as client:
        first = client.get("/ping")
        second = client.get("/ping")
        third = client.get("/ping")

    assert first.status_code == 200
    assert first.headers["X-RateLimit-Limit"] == "2"
    assert first.headers["X-RateLimit-Remaining"] == "1"
    assert first.headers["X-RateLimit-Reset"] == "1060"
    assert second.headers["X-RateLimit-Remaining"] == "0"
    assert third.status_code == 429
    assert third.json()["detail"] == "Too many requests, please try again later"
    assert third.headers["X-RateLimit-Remaining"] == "0"


def test_dependency_is_noop_without_limiter() -> None:
    with TestClient(_app(None)) as client:
        response = client.get("/ping")

    assert response.status_code == 200
    assert "X-RateLimit-Limit" not in response.headers
