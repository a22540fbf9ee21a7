import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from app import models
from app.config import Settings

logger = logging.getLogger("notifications")


@dataclass(frozen=True)
class SmtpConfig:
    host: str
    port: int
    user: str
    password: str
    sender: str

    @property
    def use_tls(self) -> bool:
        # 465 is implicit TLS, everything else upgrades with STARTTLS
        return self.port == 465


@dataclass(frozen=True)
class WhatsAppConfig:
    account_sid: str
    auth_token: str
    from_number: Optional[str] = None
    messaging_service_sid: Optional[str] = None


_UNSET = object()


class ChannelConfigProvider:
    """
    Resolves SMTP / WhatsApp configuration for the outbound channels.

    Precedence per channel:
      1. a `notification_settings` row that is disabled -> channel off (None)
      2. an enabled row with a complete config -> that config
      3. otherwise the environment settings (None if incomplete)

    Results are cached for `ttl_seconds`; `invalidate()` drops the cache right away,
    which the admin settings endpoint calls after every update.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        settings: Settings,
        ttl_seconds: int = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._session_factory = session_factory
        self._settings = settings
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._cache: Dict[models.ChannelType, Tuple[float, object]] = {}

    # -------------------------
    # Public API
    # -------------------------
    def smtp(self) -> Optional[SmtpConfig]:
        return self._get(models.ChannelType.EMAIL)

    def whatsapp(self) -> Optional[WhatsAppConfig]:
        return self._get(models.ChannelType.WHATSAPP)

    def invalidate(self, channel: Optional[models.ChannelType] = None) -> None:
        with self._lock:
            if channel is None:
                self._cache.clear()
            else:
                self._cache.pop(channel, None)

    # -------------------------
    # Internals
    # -------------------------
    def _get(self, channel: models.ChannelType):
        now = self._clock()
        with self._lock:
            hit = self._cache.get(channel)
            if hit and now - hit[0] < self._ttl:
                return hit[1]

        value = self._resolve(channel)
        with self._lock:
            self._cache[channel] = (now, value)
        return value

    def _resolve(self, channel: models.ChannelType):
        row = _UNSET
        try:
            db = self._session_factory()
            try:
                setting = (
                    db.query(models.NotificationSetting)
                    .filter(models.NotificationSetting.type == channel)
                    .first()
                )
                if setting is not None:
                    row = (setting.enabled, dict(setting.config or {}))
            finally:
                db.close()
        except Exception as e:
            logger.warning("[ChannelConfig] Could not load %s settings from database: %s", channel.value, e)

        if row is not _UNSET:
            enabled, cfg = row
            if not enabled:
                return None
            from_db = self._from_mapping(channel, cfg)
            if from_db is not None:
                logger.info("[ChannelConfig] %s configured from database settings", channel.value)
                return from_db

        return self._from_env(channel)

    @staticmethod
    def _from_mapping(channel: models.ChannelType, cfg: dict):
        if channel == models.ChannelType.EMAIL:
            if all(cfg.get(k) for k in ("host", "port", "user", "pass", "from")):
                try:
                    port = int(cfg["port"])
                except (TypeError, ValueError):
                    return None
                return SmtpConfig(
                    host=str(cfg["host"]).strip(),
                    port=port,
                    user=str(cfg["user"]).strip(),
                    password=str(cfg["pass"]),
                    sender=str(cfg["from"]).strip(),
                )
            return None

        sid = (cfg.get("account_sid") or "").strip()
        token = (cfg.get("auth_token") or "").strip()
        from_number = (cfg.get("from_number") or "").strip() or None
        mg = (cfg.get("messaging_service_sid") or "").strip() or None
        if sid and token and (from_number or mg):
            return WhatsAppConfig(sid, token, from_number, mg)
        return None

    def _from_env(self, channel: models.ChannelType):
        s = self._settings
        if channel == models.ChannelType.EMAIL:
            if s.SMTP_HOST and s.SMTP_USER and s.smtp_pass_plain and s.SMTP_FROM:
                return SmtpConfig(s.SMTP_HOST, s.SMTP_PORT, s.SMTP_USER, s.smtp_pass_plain, s.SMTP_FROM)
            return None

        if s.TWILIO_ACCOUNT_SID and s.twilio_auth_token_plain and (
            s.TWILIO_WHATSAPP_FROM or s.TWILIO_MESSAGING_SERVICE_SID
        ):
            return WhatsAppConfig(
                s.TWILIO_ACCOUNT_SID,
                s.twilio_auth_token_plain,
                s.TWILIO_WHATSAPP_FROM,
                s.TWILIO_MESSAGING_SERVICE_SID,
            )
        return None
