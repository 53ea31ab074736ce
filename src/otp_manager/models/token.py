"""Token record — validity window of one issued passcode."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class TokenRecord:
    """Value object describing when a passcode was issued and when it lapses.

    All instants are milliseconds read from the owning store's clock.
    """

    created_at: float
    expires_at: float
    duration: float

    def is_expired(self, now: float) -> bool:
        return self.expires_at <= now

    def remaining_ms(self, now: float) -> int:
        """Milliseconds left before expiry, never negative."""
        return max(0, int(self.expires_at - now))
