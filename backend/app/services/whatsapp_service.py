from datetime import datetime
from typing import Callable, Optional, Dict, Any
from twilio.rest import Client
from twilio.base.exceptions import TwilioRestException
import logging

from app.services.channel_config import ChannelConfigProvider, WhatsAppConfig
from app.services.email_service import STATUS_MESSAGES, format_scheduled, short_ref, status_label

logger = logging.getLogger("notifications")


def _whatsapp_address(number: str) -> str:
    number = number.strip()
    return number if number.startswith("whatsapp:") else f"whatsapp:{number}"


class WhatsAppService:
    def __init__(
        self,
        config_provider: ChannelConfigProvider,
        client_factory: Callable[[WhatsAppConfig], Client] = None,
    ):
        """
        Twilio WhatsApp sender. The Twilio client is rebuilt whenever the resolved
        configuration changes (admin panel update or environment fallback).
        """
        self.config_provider = config_provider
        self.client_factory = client_factory or (lambda cfg: Client(cfg.account_sid, cfg.auth_token))
        self._client: Optional[Client] = None
        self._client_config: Optional[WhatsAppConfig] = None

    def is_enabled(self) -> bool:
        return self.config_provider.whatsapp() is not None

    def _client_for(self, config: WhatsAppConfig) -> Client:
        if self._client is None or self._client_config != config:
            self._client = self.client_factory(config)
            self._client_config = config
            logger.info("[WhatsAppService] Using account %s", config.account_sid[:8] + "…")
        return self._client

    def send_message(self, to_e164: str, text: str) -> Optional[str]:
        config = self.config_provider.whatsapp()
        if config is None:
            logger.debug("[WhatsAppService] Disabled, skipping message to %s", to_e164)
            return None

        kwargs: Dict[str, Any] = {"body": text, "to": _whatsapp_address(to_e164)}
        if config.messaging_service_sid:
            kwargs["messaging_service_sid"] = config.messaging_service_sid
        else:
            kwargs["from_"] = _whatsapp_address(config.from_number)

        try:
            msg = self._client_for(config).messages.create(**kwargs)
        except TwilioRestException as e:
            logger.warning(
                "[WhatsAppService] Twilio error status=%s code=%s msg=%s to=%s",
                getattr(e, "status", None),
                getattr(e, "code", None),
                getattr(e, "msg", None),
                to_e164,
            )
            return None
        except Exception as e:
            logger.warning("[WhatsAppService] FAILED to send message to %s: %s", to_e164, e)
            return None

        logger.info(
            "[WhatsAppService] Sent! sid=%s status=%s to=%s",
            getattr(msg, "sid", None), getattr(msg, "status", None), to_e164
        )
        return msg.sid

    # Content-specific helpers
    def send_booking_confirmation(self, to_e164: str, name: str, service_name: str,
                                  scheduled: Optional[datetime], booking_id: str) -> Optional[str]:
        return self.send_message(to_e164, self.render_booking_confirmation(name, service_name, scheduled, booking_id))

    def send_booking_status_update(self, to_e164: str, name: str, service_name: str,
                                   status: str, booking_id: str) -> Optional[str]:
        return self.send_message(to_e164, self.render_status_update(name, service_name, status, booking_id))

    def send_staff_assignment(self, to_e164: str, name: str, service_name: str,
                              customer_name: str, scheduled: Optional[datetime]) -> Optional[str]:
        text = "\n\n".join([
            f"Hi {name}!",
            "You have been assigned to a new booking.",
            f"Service: {service_name}\nCustomer: {customer_name}\nScheduled: {format_scheduled(scheduled)}",
            "Please log in to your staff dashboard to view details.",
        ])
        return self.send_message(to_e164, text)

    def send_task_assignment(self, to_e164: str, name: str, description: str,
                             booking_id: str, customer_name: str) -> Optional[str]:
        text = "\n\n".join([
            f"Hi {name}!",
            "You have been assigned a new task.",
            f"Task: {description}\nCustomer: {customer_name}\nBooking ID: {short_ref(booking_id)}",
            "Please log in to your staff dashboard to view details and update the task status.",
        ])
        return self.send_message(to_e164, text)

    def send_user_approval(self, to_e164: str, name: str) -> Optional[str]:
        text = "\n\n".join([
            f"Hi {name}!",
            "Great news! Your account has been approved.",
            "Log in to your account to get started!",
        ])
        return self.send_message(to_e164, text)

    def send_quotation(self, to_e164: str, name: str, service_name: str,
                       amount: int, note: str) -> Optional[str]:
        return self.send_message(to_e164, self.render_quotation(name, service_name, amount, note))

    @staticmethod
    def render_booking_confirmation(name: str, service_name: str,
                                    scheduled: Optional[datetime], booking_id: str) -> str:
        return "\n\n".join([
            f"Hi {name}!",
            "Your booking has been confirmed.",
            f"Service: {service_name}\nScheduled: {format_scheduled(scheduled)}\nBooking ID: {short_ref(booking_id)}",
            "You can track your booking status through your dashboard.",
        ])

    @staticmethod
    def render_status_update(name: str, service_name: str, status: str, booking_id: str) -> str:
        return "\n\n".join([
            f"Hi {name}!",
            STATUS_MESSAGES.get(status, "Your booking status has been updated."),
            f"Service: {service_name}\nBooking ID: {short_ref(booking_id)}\nNew Status: {status_label(status)}",
            "Log in to your dashboard for more details.",
        ])

    @staticmethod
    def render_quotation(name: str, service_name: str, amount: int, note: str) -> str:
        lines = [
            f"Hi {name}!",
            "You've received a new quotation.",
            f"Service: {service_name}\nQuoted Amount: ${amount:.2f}",
        ]
        if note:
            lines.append(f"Message: {note}")
        lines.append("Log in to your dashboard to respond to this quotation.")
        return "\n\n".join(lines)
