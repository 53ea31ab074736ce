"""OTP Manager — configuration loaded from environment."""

from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, loaded from .env or environment variables."""

    # ── Passcode policy ───────────────────────────────────
    otp_max_duration_ms: int = 300_000  # 5 minutes, also the default duration
    otp_duration_ms: int = 300_000
    otp_auto_cleanup: bool = False
    otp_digits: int = 6

    # ── Delivery ──────────────────────────────────────────
    delivery_backend: Literal["log", "email"] = "log"
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_start_tls: bool = True
    email_from: str = "no-reply@example.com"

    # ── App ───────────────────────────────────────────────
    app_name: str = "OTP Manager"
    debug: bool = False

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton settings instance
settings = Settings()
