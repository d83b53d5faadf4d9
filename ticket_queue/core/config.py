"""
Application Configuration Module

Centralizes all configuration using environment variables with Pydantic Settings.
Supports two modes:
    - DEVELOPMENT: Uses the mock notification transport (no API keys needed)
    - PRODUCTION: Uses real providers (SendGrid email, Twilio WhatsApp)

The ENV_MODE variable controls which notification transport is instantiated,
while the queue settings (timezone, ticket prefixes, data files) apply to
every mode.

Usage:
    from ticket_queue.core.config import get_settings

    settings = get_settings()
    if settings.is_development:
        # Mock transport, messages are only logged
    else:
        # SendGrid + Twilio

Author: Khalil Bannouri
Version: 3.0.0
"""

import logging
import sys
from enum import Enum
from typing import Optional
from functools import lru_cache
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EnvironmentMode(str, Enum):
    """
    Application environment modes.

    Attributes:
        DEVELOPMENT: Local testing with the mock notification transport
        PRODUCTION: Live environment with real provider integrations
        STAGING: Pre-production testing with real providers and test numbers
    """
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    STAGING = "staging"


class TicketPrefixMode(str, Enum):
    """How the ticket prefix rotates at the daily reset."""
    LETTER = "letter"
    DATE = "date"


class MissingCreatedAtPolicy(str, Enum):
    """What to do with an ingested order that carries no createdAt."""
    NOW = "now"
    REJECT = "reject"


class Settings(BaseSettings):
    """
    Queue service settings, read from the environment or a .env file.

    Provider credentials belong in .env, which stays out of git.

    Attributes:
        env_mode: Selects the notification transport
        debug: DEBUG logs and detailed 500 bodies

        # Queue
        business_timezone: IANA timezone that defines the business day
        default_ticket_prefix: Prefix used for a fresh queue
        ticket_prefix_mode: Prefix rotation strategy at the daily reset
        ticket_number_width: Zero padding of the ticket number

        # Storage
        data_directory: Directory holding the queue, recipients and archive
        queue_lock_timeout: Seconds to wait for the queue file lock

        # Notifications
        notification_timeout_seconds: Per-channel dispatch deadline
        channel_max_attempts: Attempts a channel adapter makes per recipient
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # ENVIRONMENT
    # ==========================================================================

    env_mode: EnvironmentMode = Field(
        default=EnvironmentMode.DEVELOPMENT,
        description="development wires the mock transport, staging and production the real providers"
    )
    debug: bool = Field(
        default=False,
        description="DEBUG logging and exception details in 500 responses"
    )

    # ==========================================================================
    # APPLICATION
    # ==========================================================================

    app_name: str = Field(
        default="Ticket Queue Service",
        description="Name shown in the API docs and the startup banner"
    )
    app_version: str = Field(
        default="3.0.0",
        description="Version reported at / and /docs"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="Interface uvicorn binds to"
    )
    api_port: int = Field(
        default=8001,
        description="Port uvicorn listens on"
    )

    # ==========================================================================
    # REDIS / CELERY
    # ==========================================================================

    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Celery broker and result backend"
    )

    # ==========================================================================
    # TWILIO (WHATSAPP)
    # ==========================================================================

    twilio_account_sid: Optional[str] = Field(
        default=None,
        description="Twilio account that owns the WhatsApp sender"
    )
    twilio_auth_token: Optional[str] = Field(
        default=None,
        description="Secret paired with TWILIO_ACCOUNT_SID"
    )
    twilio_whatsapp_number: Optional[str] = Field(
        default=None,
        description="WhatsApp-enabled Twilio sender number (E.164)"
    )
    whatsapp_verify_token: str = Field(
        default="ticket_queue_whatsapp_token",
        description="Token the WhatsApp webhook subscription check must present"
    )

    # ==========================================================================
    # SENDGRID (EMAIL)
    # ==========================================================================

    sendgrid_api_key: Optional[str] = Field(
        default=None,
        description="Key used for establishment emails"
    )
    sendgrid_from_email: str = Field(
        default="orders@snackbar.example",
        description="Sender address of new-order emails"
    )

    # ==========================================================================
    # BUSINESS CONFIGURATION
    # ==========================================================================

    restaurant_name: str = Field(
        default="Corner Snack Bar",
        description="Name used in customer messages and email subjects"
    )
    business_timezone: str = Field(
        default="UTC",
        description="IANA timezone of the establishment (defines the business day)"
    )
    default_country_code: str = Field(
        default="1",
        description="Country calling code added to phone numbers without one"
    )

    # ==========================================================================
    # TICKETS
    # ==========================================================================

    default_ticket_prefix: str = Field(
        default="A",
        min_length=1,
        description="Ticket prefix of a freshly created queue"
    )
    ticket_prefix_mode: TicketPrefixMode = Field(
        default=TicketPrefixMode.LETTER,
        description="Prefix rotation strategy at the daily reset"
    )
    ticket_number_width: int = Field(
        default=3,
        ge=1,
        le=6,
        description="Zero padding applied to ticket numbers"
    )
    missing_created_at_policy: MissingCreatedAtPolicy = Field(
        default=MissingCreatedAtPolicy.NOW,
        description="Default missing createdAt to now, or reject the order"
    )

    # ==========================================================================
    # FILE STORAGE
    # ==========================================================================

    data_directory: str = Field(
        default="data",
        description="Holds the queue document, recipients and archive"
    )
    queue_filename: str = Field(
        default="queue.json",
        description="Queue state document"
    )
    recipients_filename: str = Field(
        default="recipients.json",
        description="Notification recipients document"
    )
    archive_filename: str = Field(
        default="queue_archive.xlsx",
        description="Excel archive of orders removed by the daily reset"
    )
    archive_on_reset: bool = Field(
        default=True,
        description="Archive and clear the previous day's orders on reset"
    )
    queue_lock_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Seconds a cycle waits for the queue lock before failing"
    )

    # ==========================================================================
    # NOTIFICATIONS
    # ==========================================================================

    notification_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Deadline for a single channel to deliver one event"
    )
    channel_max_attempts: int = Field(
        default=2,
        ge=1,
        description="Attempts per recipient inside a channel adapter"
    )
    channel_retry_delay_seconds: float = Field(
        default=0.5,
        ge=0,
        description="Pause between channel adapter attempts"
    )
    mock_notification_failure_rate: float = Field(
        default=0.05,
        ge=0,
        le=1,
        description="Simulated failure rate of the mock transport"
    )
    establishment_emails: str = Field(
        default="",
        description="Comma-separated seed list of establishment emails"
    )
    admin_whatsapp_numbers: str = Field(
        default="",
        description="Comma-separated seed list of admin WhatsApp numbers"
    )
    admin_api_key: Optional[str] = Field(
        default=None,
        description="Value required in X-Admin-Key for admin endpoints"
    )

    # ==========================================================================
    # VALIDATORS
    # ==========================================================================

    @field_validator("env_mode", mode="before")
    @classmethod
    def validate_env_mode(cls, v: str) -> EnvironmentMode:
        """Accept ENV_MODE in any case."""
        if isinstance(v, EnvironmentMode):
            return v
        try:
            return EnvironmentMode(v.lower())
        except ValueError:
            valid = [e.value for e in EnvironmentMode]
            raise ValueError(f"Invalid env_mode. Must be one of: {valid}")

    @field_validator("business_timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v

    # ==========================================================================
    # COMPUTED PROPERTIES
    # ==========================================================================

    @property
    def is_development(self) -> bool:
        """Mock transport, nothing leaves the machine."""
        return self.env_mode == EnvironmentMode.DEVELOPMENT

    @property
    def is_production(self) -> bool:
        """Live providers, real customers."""
        return self.env_mode == EnvironmentMode.PRODUCTION

    @property
    def is_staging(self) -> bool:
        """Live providers with test recipients."""
        return self.env_mode == EnvironmentMode.STAGING

    @property
    def use_real_services(self) -> bool:
        """SendGrid and Twilio are wired instead of the mock."""
        return self.env_mode in (EnvironmentMode.PRODUCTION, EnvironmentMode.STAGING)

    @property
    def timezone(self) -> ZoneInfo:
        return ZoneInfo(self.business_timezone)

    @property
    def data_path(self) -> Path:
        return Path(self.data_directory)

    @property
    def queue_path(self) -> Path:
        return self.data_path / self.queue_filename

    @property
    def recipients_path(self) -> Path:
        return self.data_path / self.recipients_filename

    @property
    def archive_path(self) -> Path:
        return self.data_path / self.archive_filename

    @property
    def establishment_emails_list(self) -> list[str]:
        """Get seed establishment emails as a list."""
        return [e.strip() for e in self.establishment_emails.split(",") if e.strip()]

    @property
    def admin_whatsapp_numbers_list(self) -> list[str]:
        """Get seed admin WhatsApp numbers as a list."""
        return [n.strip() for n in self.admin_whatsapp_numbers.split(",") if n.strip()]

    # ==========================================================================
    # VALIDATION METHODS
    # ==========================================================================

    def validate_production_config(self) -> list[str]:
        """
        Validate that all required production settings are configured.

        Returns:
            List of missing configuration keys (empty if all present)
        """
        missing = []

        if self.use_real_services:
            if not self.sendgrid_api_key:
                missing.append("SENDGRID_API_KEY")
            if not self.twilio_account_sid:
                missing.append("TWILIO_ACCOUNT_SID")
            if not self.twilio_auth_token:
                missing.append("TWILIO_AUTH_TOKEN")
            if not self.twilio_whatsapp_number:
                missing.append("TWILIO_WHATSAPP_NUMBER")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings, read once; tests override this dependency."""
    return Settings()


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """
    Route every logger to stdout in one format.

    DEBUG wins over `level` when the settings enable it. Returns the
    `ticket_queue` package logger.
    """
    settings = get_settings()

    if settings.debug:
        level = logging.DEBUG

    log_format = "%(asctime)s │ %(levelname)-8s │ %(name)-25s │ %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"

    logging.basicConfig(
        level=level,
        format=log_format,
        datefmt=date_format,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    # Provider clients are chatty at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("twilio.http_client").setLevel(logging.WARNING)
    logging.getLogger("filelock").setLevel(logging.WARNING)

    return logging.getLogger("ticket_queue")
