"""Login flow — request-OTP and verify-and-login on top of the passcode store."""

from __future__ import annotations

import logging
import secrets
import threading
from collections.abc import Callable
from dataclasses import dataclass

from pydantic import BaseModel

from otp_manager.errors import DeliveryError, PasscodeUnavailableError
from otp_manager.models.token import TokenRecord
from otp_manager.services.delivery import DeliveryChannel
from otp_manager.services.passcode_generator import PasscodeGenerator
from otp_manager.store.token_store import TokenStore

logger = logging.getLogger(__name__)

# How many random draws to try before giving up on finding an unused passcode
MAX_GENERATION_ATTEMPTS = 10

INVALID_OTP_MESSAGE = "Invalid or expired OTP"


class OTPChallenge(BaseModel):
    user_id: str
    sent: bool
    message: str
    expires_in_ms: int = 0


class LoginResult(BaseModel):
    success: bool
    message: str
    session_token: str | None = None


@dataclass(frozen=True)
class _PendingCode:
    """A user's outstanding passcode and the store record it was issued as."""

    passcode: int
    record: TokenRecord


def _default_session_token(user_id: str) -> str:
    return secrets.token_urlsafe(32)


class LoginFlow:
    """Second-factor step of a login.

    Flow
    ----
    1. After the primary credentials check, the caller invokes
       :meth:`request_otp`; a fresh passcode is issued in the store,
       remembered as the user's pending code and delivered out of band.
    2. The user submits the code; :meth:`verify_and_login` consumes it and,
       on success, returns a session token.

    Each user has at most one pending passcode; requesting another one
    withdraws the previous code.  A pending code is tied to the exact
    store record it was issued as, so once it lapses a later issuance of
    the same value to someone else does not revive it.
    """

    def __init__(
        self,
        store: TokenStore,
        delivery: DeliveryChannel,
        generator: PasscodeGenerator | None = None,
        *,
        duration_ms: int | None = None,
        session_issuer: Callable[[str], str] | None = None,
    ) -> None:
        self._store = store
        self._delivery = delivery
        self._generator = generator or PasscodeGenerator()
        self._duration_ms = duration_ms
        self._session_issuer = session_issuer or _default_session_token
        self._pending: dict[str, _PendingCode] = {}
        self._lock = threading.Lock()

    @property
    def channel(self) -> str:
        """Name of the delivery channel passcodes are sent through."""
        return self._delivery.name

    @property
    def pending_count(self) -> int:
        """Number of users with an outstanding passcode."""
        with self._lock:
            return len(self._pending)

    async def request_otp(self, user_id: str, destination: str) -> OTPChallenge:
        """Issue and deliver a passcode for *user_id*."""
        self._prune_lapsed()
        pending = self._issue_unused_passcode()
        with self._lock:
            previous = self._pending.get(user_id)
            self._pending[user_id] = pending
        if previous is not None:
            self._store.consume(previous.passcode, record=previous.record)

        expires_in_ms = self._store.remaining_time(pending.passcode)
        try:
            await self._delivery.send(destination, pending.passcode, expires_in_ms)
        except DeliveryError:
            logger.exception("Failed to deliver OTP for user %s via %s", user_id, self._delivery.name)
            self._withdraw(user_id, pending)
            return OTPChallenge(
                user_id=user_id,
                sent=False,
                message="Unable to send the verification code. Please try again later.",
            )

        logger.info("OTP sent to %s for user %s", destination, user_id)
        return OTPChallenge(
            user_id=user_id,
            sent=True,
            message=f"OTP sent to {destination}",
            expires_in_ms=expires_in_ms,
        )

    def verify_and_login(self, user_id: str, passcode: int) -> LoginResult:
        """Consume *passcode* for *user_id* and return the login outcome."""
        with self._lock:
            pending = self._pending.get(user_id)
            if pending is None or pending.passcode != passcode:
                logger.info("Invalid OTP for user %s", user_id)
                return LoginResult(success=False, message=INVALID_OTP_MESSAGE)
            del self._pending[user_id]

        if not self._store.consume(passcode, record=pending.record):
            logger.info("Expired OTP for user %s", user_id)
            return LoginResult(success=False, message=INVALID_OTP_MESSAGE)

        logger.info("User %s authenticated via OTP", user_id)
        return LoginResult(
            success=True,
            message="Login successful",
            session_token=self._session_issuer(user_id),
        )

    def cancel(self, user_id: str) -> None:
        """Withdraw the pending passcode of *user_id*, if any."""
        with self._lock:
            pending = self._pending.pop(user_id, None)
        if pending is not None:
            self._store.consume(pending.passcode, record=pending.record)

    # ── Private helpers ──────────────────────────────────

    def _issue_unused_passcode(self) -> _PendingCode:
        for _ in range(MAX_GENERATION_ATTEMPTS):
            candidate = self._generator.generate()
            record = self._store.issue_if_absent(candidate, self._duration_ms)
            if record is not None:
                return _PendingCode(passcode=candidate, record=record)
        raise PasscodeUnavailableError("could not find an unused passcode")

    def _prune_lapsed(self) -> None:
        """Forget pending codes whose store record is no longer live."""
        with self._lock:
            lapsed = [
                user_id
                for user_id, pending in self._pending.items()
                if self._store.inspect(pending.passcode) is not pending.record
            ]
            for user_id in lapsed:
                del self._pending[user_id]
        if lapsed:
            logger.debug("Dropped %d lapsed pending OTP(s)", len(lapsed))

    def _withdraw(self, user_id: str, pending: _PendingCode) -> None:
        with self._lock:
            if self._pending.get(user_id) is pending:
                del self._pending[user_id]
        self._store.consume(pending.passcode, record=pending.record)


__all__ = ["LoginFlow", "LoginResult", "OTPChallenge"]
