"""Application wiring — logging setup and factories for the store and login flow."""

import logging

from otp_manager.config import Settings, settings
from otp_manager.services.delivery import channel_for
from otp_manager.services.login_flow import LoginFlow
from otp_manager.services.passcode_generator import PasscodeGenerator
from otp_manager.store.token_store import TokenStore

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

logger = logging.getLogger(__name__)


def build_store(config: Settings = settings) -> TokenStore:
    """Create a passcode store from *config*."""
    return TokenStore(
        config.otp_max_duration_ms,
        auto_cleanup=config.otp_auto_cleanup,
    )


def build_login_flow(config: Settings = settings, store: TokenStore | None = None) -> LoginFlow:
    """Create a login flow wired to the configured delivery backend."""
    delivery = channel_for(config.delivery_backend, config)
    logger.info("Starting %s with %s delivery", config.app_name, delivery.name)
    return LoginFlow(
        store or build_store(config),
        delivery,
        PasscodeGenerator(config.otp_digits),
        duration_ms=config.otp_duration_ms,
    )
