"""Shared fixtures — a controllable millisecond clock and a store built on it."""

from __future__ import annotations

import pytest

from otp_manager.store.token_store import TokenStore


class FakeClock:
    """Manually advanced clock returning milliseconds."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> TokenStore:
    return TokenStore(clock=clock)
