from typing import Dict, List, Union
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Application
    ENVIRONMENT: str = "development"
    NAME: str = "Booking Notifications"
    VERSION: str = "1.0.0"
    API_PREFIX: str = "/api/v1"
    WEBHOOK_PREFIX: str = "/webhooks"
    """Pydantic v2 doesn't support parsing List[str] from a plain comma-separated string by default anymore."""
    ALLOWED_HOSTS: Union[str, List[str]] = "http://localhost:3000"
    LOG_LEVEL: str = "INFO"
    BASE_URL: str = "http://localhost:3000"

    # Business timezone, all scheduling math is done in this zone
    TIMEZONE: str = "America/Toronto"

    # Database
    DATABASE_URL: str = "sqlite:///./booking_notifications.db"

    # Cron endpoint authentication (empty disables the check)
    CRON_SECRET: str = ""

    # Scheduled notification sweep
    NOTIFICATION_SWEEP_INTERVAL_MINUTES: int = 15
    NOTIFICATION_SWEEP_BATCH_SIZE: int = 200
    NOTIFICATION_SWEEP_CONCURRENCY: int = 5
    NOTIFICATION_SEND_TIMEOUT_SECONDS: float = 10.0
    NOTIFICATION_MAX_ATTEMPTS: int = 1
    NOTIFICATION_CLAIM_TIMEOUT_MINUTES: int = 15

    # Same-day reminders close to "now" can be sent right after scheduling
    IMMEDIATE_DISPATCH_ENABLED: bool = False
    IMMEDIATE_DISPATCH_WINDOW_MINUTES: int = 5

    # "inline" runs scheduling in the request, "task" hands it to Celery
    NOTIFICATION_SCHEDULING_MODE: str = "inline"

    # Resend (transactional email)
    RESEND_API_KEY: str = "<your-resend-api-key>"
    EMAIL_FROM_ADDRESS: str = "Bookings <noreply@example.com>"

    # Twilio WhatsApp
    TWILIO_ACCOUNT_SID: str = ""
    TWILIO_AUTH_TOKEN: str = ""
    TWILIO_WHATSAPP_NUMBER: str = ""
    TWILIO_MESSAGING_SERVICE_SID: str = ""
    # Default Content Template, overridden per kind by TWILIO_WHATSAPP_TEMPLATE_SIDS
    # (JSON object, e.g. {"urgency-2w": "HX..."})
    TWILIO_WHATSAPP_TEMPLATE_SID: str = ""
    TWILIO_WHATSAPP_TEMPLATE_SIDS: Dict[str, str] = {}
    TWILIO_STATUS_CALLBACK_URL: str = ""

    # Redis & Celery
    REDIS_PASSWORD: str = "<your-redis-password>"
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0

    @field_validator("ALLOWED_HOSTS", mode="before")
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if not v:
            return []
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        return v

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )


settings = Settings()
