# app/config.py
from typing import Optional, List
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import SecretStr, field_validator
import logging

logger = logging.getLogger("app")

# .env relative to the project: app/ -> backend/ -> .env
ENV_FILE = (Path(__file__).resolve().parent.parent / ".env")

def _mask(s: Optional[str], keep: int = 6) -> str:
    if not s:
        return "(empty)"
    if len(s) <= keep:
        return "*" * len(s)
    return s[:keep] + "…" + s[-keep:]


class Settings(BaseSettings):
    # DB
    DATABASE_URL: str

    # Auth / tokens
    SECRET_KEY: SecretStr
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7

    # SMTP (optional, can also be configured from the admin panel)
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASS: Optional[SecretStr] = None
    SMTP_FROM: Optional[str] = None

    # Twilio WhatsApp (optional)
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[SecretStr] = None
    TWILIO_WHATSAPP_FROM: Optional[str] = None
    TWILIO_MESSAGING_SERVICE_SID: Optional[str] = None

    # S3-compatible media storage (optional)
    MEDIA_ENDPOINT_URL: Optional[str] = None
    MEDIA_ACCESS_KEY_ID: Optional[str] = None
    MEDIA_SECRET_ACCESS_KEY: Optional[SecretStr] = None
    MEDIA_BUCKET: Optional[str] = None
    MEDIA_PUBLIC_BASE_URL: Optional[str] = None
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024

    CHANNEL_CONFIG_TTL_SECONDS: int = 60

    CORS_ORIGINS: List[str] = ["http://localhost:5173"]
    LOG_LEVEL: str = "INFO"
    APP_ENV: str = "dev"

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("SMTP_HOST", "SMTP_USER", "SMTP_FROM", "TWILIO_ACCOUNT_SID",
                     "TWILIO_MESSAGING_SERVICE_SID", "MEDIA_ENDPOINT_URL", "MEDIA_BUCKET",
                     "MEDIA_PUBLIC_BASE_URL", mode="before")
    @classmethod
    def _trim(cls, v: Optional[str]) -> Optional[str]:
        v = (v or "").strip()
        return v or None

    @field_validator("TWILIO_WHATSAPP_FROM", mode="before")
    @classmethod
    def _trim_from(cls, v: Optional[str]) -> Optional[str]:
        v = (v or "").strip()
        if not v:
            return None
        if v.startswith("whatsapp:"):
            v = v[len("whatsapp:"):]
        if not v.startswith("+"):
            raise ValueError("TWILIO_WHATSAPP_FROM must be E.164, e.g. +14155238886")
        return v

    # Plain-text helpers
    @property
    def secret_key_plain(self) -> str:
        return self.SECRET_KEY.get_secret_value()

    @property
    def smtp_pass_plain(self) -> Optional[str]:
        return self.SMTP_PASS.get_secret_value() if self.SMTP_PASS else None

    @property
    def twilio_auth_token_plain(self) -> Optional[str]:
        return self.TWILIO_AUTH_TOKEN.get_secret_value() if self.TWILIO_AUTH_TOKEN else None

    @property
    def media_secret_plain(self) -> Optional[str]:
        return self.MEDIA_SECRET_ACCESS_KEY.get_secret_value() if self.MEDIA_SECRET_ACCESS_KEY else None


settings = Settings()

logger.info(
    "[CHANNEL CONFIG] SMTP=%s:%s FROM=%s TWILIO_SID=%s WHATSAPP_FROM=%s MEDIA_BUCKET=%s",
    settings.SMTP_HOST or "(unset)",
    settings.SMTP_PORT,
    settings.SMTP_FROM or "(unset)",
    _mask(settings.TWILIO_ACCOUNT_SID, keep=6),
    settings.TWILIO_WHATSAPP_FROM or "(unset)",
    settings.MEDIA_BUCKET or "(unset)",
)
