"""Passcode generator — produces the integer codes handed to the store."""

from __future__ import annotations

import secrets

from otp_manager.errors import InvalidArgument


class PasscodeGenerator:
    """Draws uniformly random passcodes with a fixed number of digits."""

    def __init__(self, digits: int = 6) -> None:
        if digits < 1:
            raise InvalidArgument("digits must be at least 1")
        self._low = 10 ** (digits - 1) if digits > 1 else 0
        self._high = 10**digits

    def generate(self) -> int:
        """Return a passcode in ``[10**(digits-1), 10**digits)``."""
        return self._low + secrets.randbelow(self._high - self._low)
