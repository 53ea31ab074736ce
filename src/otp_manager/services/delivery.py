"""Delivery channels — hand a passcode to the user out of band."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from email.message import EmailMessage

import aiosmtplib

from otp_manager.config import Settings, settings
from otp_manager.errors import DeliveryError

logger = logging.getLogger(__name__)


class DeliveryChannel(ABC):
    """Abstract transport for passcodes.

    The store has no knowledge of delivery; the login flow calls a channel
    after issuing a passcode and withdraws it again if delivery fails.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable channel name (used in logs)."""

    @abstractmethod
    async def send(self, destination: str, passcode: int, expires_in_ms: int) -> None:
        """Deliver *passcode* to *destination*.

        Parameters
        ----------
        destination:
            Address understood by the channel (an email address for
            :class:`EmailDelivery`).
        passcode:
            The code the user must type back.
        expires_in_ms:
            Validity window, used to tell the user how long the code lasts.

        Raises
        ------
        DeliveryError
            If the passcode could not be handed over.
        """


class LoggingDelivery(DeliveryChannel):
    """Development channel: writes the passcode to the log instead of sending it."""

    @property
    def name(self) -> str:
        return "log"

    async def send(self, destination: str, passcode: int, expires_in_ms: int) -> None:
        logger.info(
            "📧 OTP for %s: %s  (valid for %ds)",
            destination,
            passcode,
            expires_in_ms // 1000,
        )


class EmailDelivery(DeliveryChannel):
    """Sends passcodes using the configured SMTP server."""

    def __init__(self, config: Settings = settings) -> None:
        self._config = config

    @property
    def name(self) -> str:
        return "email"

    async def send(self, destination: str, passcode: int, expires_in_ms: int) -> None:
        minutes = max(1, expires_in_ms // 60_000)
        config = self._config
        body = (
            "Hello,\n\n"
            f"Your one-time login code for {config.app_name} is: {passcode}\n\n"
            f"The code expires in {minutes} minute(s) and can be used only once.\n\n"
            "If you did not try to sign in, please contact support "
            "immediately.\n\n"
            "Best regards,\n"
            f"The {config.app_name} Team"
        )

        msg = EmailMessage()
        msg["Subject"] = f"Your login code — {config.app_name}"
        msg["From"] = config.email_from
        msg["To"] = destination
        msg.set_content(body)

        logger.info("Sending OTP email to %s", destination)

        try:
            await aiosmtplib.send(
                msg,
                hostname=config.smtp_host,
                port=config.smtp_port,
                username=config.smtp_username or None,
                password=config.smtp_password or None,
                start_tls=config.smtp_start_tls,
            )
        except (aiosmtplib.SMTPException, OSError) as exc:
            raise DeliveryError(f"could not email passcode to {destination}") from exc

        logger.info("OTP email sent to %s", destination)


def channel_for(backend: str, config: Settings = settings) -> DeliveryChannel:
    """Return the delivery channel registered under *backend*, configured from *config*."""
    if backend == "email":
        return EmailDelivery(config)
    if backend == "log":
        return LoggingDelivery()
    raise ValueError(f"unknown delivery backend: {backend!r}")
