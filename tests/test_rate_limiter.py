from __future__ import annotations

import sys
from pathlib import Path

import pytest
from fastapi import HTTPException

# Make the autohub package importable when running the tests locally
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from autohub.core import rate_limiter  # noqa: E402


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def time(self) -> float:
        return self.now


@pytest.fixture
def clock(monkeypatch):
    fake = FakeClock()
    monkeypatch.setattr(rate_limiter.time, "time", fake.time)
    return fake


def test_limit_blocks_until_window_resets(clock):
    limiter = rate_limiter._RateLimiter()
    limiter.check("login:1.2.3.4", limit=2, window_seconds=60)
    limiter.check("login:1.2.3.4", limit=2, window_seconds=60)

    with pytest.raises(HTTPException) as exc:
        limiter.check("login:1.2.3.4", limit=2, window_seconds=60)
    assert exc.value.status_code == 429
    assert exc.value.headers == {"Retry-After": "60"}

    clock.now += 61
    limiter.check("login:1.2.3.4", limit=2, window_seconds=60)


def test_expired_windows_are_forgotten(clock):
    limiter = rate_limiter._RateLimiter()
    for index in range(50):
        limiter.check(f"subscribe:10.0.0.{index}", limit=5, window_seconds=60)
    assert len(limiter._hits) == 50

    clock.now += 61
    limiter.check("subscribe:10.0.1.1", limit=5, window_seconds=60)

    assert list(limiter._hits) == ["subscribe:10.0.1.1"]
