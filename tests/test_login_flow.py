"""Tests for the LoginFlow — request-OTP and verify-and-login."""

from __future__ import annotations

import pytest

from otp_manager.errors import DeliveryError, PasscodeUnavailableError
from otp_manager.services.delivery import DeliveryChannel
from otp_manager.services.login_flow import INVALID_OTP_MESSAGE, LoginFlow
from otp_manager.services.passcode_generator import PasscodeGenerator


class RecordingDelivery(DeliveryChannel):
    """Captures delivered passcodes instead of sending them."""

    def __init__(self, fail: bool = False) -> None:
        self.sent: list[tuple[str, int, int]] = []
        self.fail = fail

    @property
    def name(self) -> str:
        return "recording"

    async def send(self, destination: str, passcode: int, expires_in_ms: int) -> None:
        if self.fail:
            raise DeliveryError("smtp down")
        self.sent.append((destination, passcode, expires_in_ms))

    @property
    def last_passcode(self) -> int:
        return self.sent[-1][1]


class SequenceGenerator(PasscodeGenerator):
    """Returns passcodes from a fixed list."""

    def __init__(self, *codes: int) -> None:
        super().__init__()
        self._codes = list(codes)

    def generate(self) -> int:
        return self._codes.pop(0)


@pytest.fixture
def delivery():
    return RecordingDelivery()


@pytest.fixture
def flow(store, delivery):
    return LoginFlow(store, delivery, session_issuer=lambda user_id: f"session_{user_id}")


# ──────────────────────────────────────────────────────────
# Happy path
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_request_then_login(flow, store, delivery):
    challenge = await flow.request_otp("user123", "user123@example.com")

    assert challenge.sent is True
    assert challenge.expires_in_ms == 300_000
    destination, passcode, expires_in_ms = delivery.sent[0]
    assert destination == "user123@example.com"
    assert 100_000 <= passcode <= 999_999
    assert expires_in_ms == 300_000
    assert store.verify(passcode) is True

    result = flow.verify_and_login("user123", passcode)
    assert result.success is True
    assert result.message == "Login successful"
    assert result.session_token == "session_user123"
    assert store.verify(passcode) is False


@pytest.mark.asyncio
async def test_default_session_token_is_random(store, delivery):
    flow = LoginFlow(store, delivery)
    await flow.request_otp("a", "a@example.com")
    first = flow.verify_and_login("a", delivery.last_passcode).session_token
    await flow.request_otp("a", "a@example.com")
    second = flow.verify_and_login("a", delivery.last_passcode).session_token

    assert first and second
    assert first != second


@pytest.mark.asyncio
async def test_configured_duration_is_used(store, delivery):
    flow = LoginFlow(store, delivery, duration_ms=60_000)
    challenge = await flow.request_otp("a", "a@example.com")
    assert challenge.expires_in_ms == 60_000
    assert store.remaining_time(delivery.last_passcode) == 60_000


# ──────────────────────────────────────────────────────────
# Failures
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_passcode_cannot_be_replayed(flow, delivery):
    await flow.request_otp("user123", "user123@example.com")
    passcode = delivery.last_passcode

    assert flow.verify_and_login("user123", passcode).success is True
    replay = flow.verify_and_login("user123", passcode)
    assert replay.success is False
    assert replay.message == INVALID_OTP_MESSAGE
    assert replay.session_token is None


@pytest.mark.asyncio
async def test_wrong_passcode_keeps_pending_code(flow, delivery):
    await flow.request_otp("user123", "user123@example.com")
    passcode = delivery.last_passcode

    assert flow.verify_and_login("user123", passcode + 1).success is False
    assert flow.verify_and_login("user123", passcode).success is True


@pytest.mark.asyncio
async def test_passcode_is_bound_to_requesting_user(flow, store, delivery):
    await flow.request_otp("alice", "alice@example.com")
    passcode = delivery.last_passcode

    assert flow.verify_and_login("mallory", passcode).success is False
    assert store.verify(passcode) is True
    assert flow.verify_and_login("alice", passcode).success is True


@pytest.mark.asyncio
async def test_expired_passcode_is_rejected(flow, clock, delivery):
    await flow.request_otp("user123", "user123@example.com")
    clock.advance(300_000)

    result = flow.verify_and_login("user123", delivery.last_passcode)
    assert result.success is False
    assert result.message == INVALID_OTP_MESSAGE


def test_unknown_user_is_rejected(flow):
    result = flow.verify_and_login("nobody", 123456)
    assert result.success is False
    assert result.message == INVALID_OTP_MESSAGE


@pytest.mark.asyncio
async def test_new_request_withdraws_previous_passcode(store, delivery):
    flow = LoginFlow(store, delivery, SequenceGenerator(111111, 222222))
    await flow.request_otp("user123", "user123@example.com")
    await flow.request_otp("user123", "user123@example.com")

    assert store.verify(111111) is False
    assert flow.verify_and_login("user123", 111111).success is False
    assert flow.verify_and_login("user123", 222222).success is True


@pytest.mark.asyncio
async def test_delivery_failure_withdraws_passcode(store):
    delivery = RecordingDelivery(fail=True)
    flow = LoginFlow(store, delivery, SequenceGenerator(333333))

    challenge = await flow.request_otp("user123", "user123@example.com")

    assert challenge.sent is False
    assert challenge.expires_in_ms == 0
    assert store.active_count() == 0
    assert flow.verify_and_login("user123", 333333).success is False


@pytest.mark.asyncio
async def test_live_passcodes_are_not_reused(store, delivery):
    store.issue(444444)
    flow = LoginFlow(store, delivery, SequenceGenerator(444444, 555555))

    await flow.request_otp("user123", "user123@example.com")

    assert delivery.last_passcode == 555555


@pytest.mark.asyncio
async def test_gives_up_when_no_unused_passcode(store, delivery):
    store.issue(444444)
    flow = LoginFlow(store, delivery, SequenceGenerator(*([444444] * 10)))

    with pytest.raises(PasscodeUnavailableError):
        await flow.request_otp("user123", "user123@example.com")


@pytest.mark.asyncio
async def test_cancel_withdraws_pending_passcode(flow, store, delivery):
    await flow.request_otp("user123", "user123@example.com")
    passcode = delivery.last_passcode

    flow.cancel("user123")

    assert store.verify(passcode) is False
    assert flow.verify_and_login("user123", passcode).success is False
    flow.cancel("user123")


# ──────────────────────────────────────────────────────────
# Passcode reuse across users
# ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_lapsed_code_is_not_revived_by_reissue_to_another_user(store, clock, delivery):
    flow = LoginFlow(store, delivery, SequenceGenerator(111111, 111111))
    await flow.request_otp("alice", "alice@example.com")
    clock.advance(300_000)
    await flow.request_otp("bob", "bob@example.com")

    result = flow.verify_and_login("alice", 111111)
    assert result.success is False
    assert result.message == INVALID_OTP_MESSAGE
    assert store.verify(111111) is True
    assert flow.verify_and_login("bob", 111111).success is True


@pytest.mark.asyncio
async def test_stale_pending_code_cannot_withdraw_reissued_code(store, clock, delivery):
    flow = LoginFlow(store, delivery, SequenceGenerator(111111, 222222))
    await flow.request_otp("alice", "alice@example.com")
    clock.advance(300_000)
    # Another caller re-issues the same value directly in the store.
    store.issue(111111)

    flow.cancel("alice")
    assert store.verify(111111) is True

    await flow.request_otp("alice", "alice@example.com")
    assert store.verify(111111) is True
    assert flow.verify_and_login("alice", 222222).success is True


@pytest.mark.asyncio
async def test_lapsed_pending_codes_are_pruned(store, clock, delivery):
    flow = LoginFlow(store, delivery, SequenceGenerator(111111, 222222, 333333))
    await flow.request_otp("alice", "alice@example.com")
    await flow.request_otp("bob", "bob@example.com")
    assert flow.pending_count == 2

    clock.advance(300_000)
    await flow.request_otp("carol", "carol@example.com")

    assert flow.pending_count == 1
    assert flow.verify_and_login("carol", 333333).success is True
    assert flow.pending_count == 0


@pytest.mark.asyncio
async def test_drawing_a_live_code_leaves_its_window_untouched(store, clock, delivery):
    store.issue(444444, 60_000)
    clock.advance(10_000)
    flow = LoginFlow(store, delivery, SequenceGenerator(444444, 555555))

    await flow.request_otp("user123", "user123@example.com")

    assert store.remaining_time(444444) == 50_000
    assert delivery.last_passcode == 555555


def test_channel_reports_delivery_name(flow):
    assert flow.channel == "recording"
