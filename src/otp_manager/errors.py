"""Exceptions raised by the passcode store and its collaborators."""

from __future__ import annotations


class InvalidArgument(ValueError):
    """Raised when a passcode or duration fails validation.

    This is a programming error on the caller's side, not a user-facing
    condition: callers must pass an integer passcode and a positive duration.
    """


class DeliveryError(RuntimeError):
    """Raised when a delivery channel could not hand a passcode to the user."""


class PasscodeUnavailableError(RuntimeError):
    """Raised when no unused passcode could be drawn for a new challenge."""


__all__ = ["InvalidArgument", "DeliveryError", "PasscodeUnavailableError"]
