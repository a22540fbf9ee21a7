import logging
from datetime import datetime
from email.message import EmailMessage
from typing import Optional

from aiosmtplib import send
from jinja2 import Template

from app.services.channel_config import ChannelConfigProvider, SmtpConfig

logger = logging.getLogger("notifications")

# ONE shared HTML template for every e-mail
BASE_EMAIL_TEMPLATE = """
<!DOCTYPE html>
<html>
  <body style="font-family: sans-serif; background-color: #f8f8f8; padding: 20px;">
    <div style="max-width: 600px; margin: auto; background-color: #ffffff; padding: 30px; border-radius: 8px;">
      <h2>{{ heading }}</h2>
      {% for paragraph in paragraphs %}
      <p>{{ paragraph }}</p>
      {% endfor %}
      {% if details %}
      <table style="margin: 20px 0; border-collapse: collapse;">
        {% for label, value in details %}
        <tr>
          <td style="padding: 4px 12px 4px 0; color: #555;">{{ label }}</td>
          <td style="padding: 4px 0;"><strong>{{ value }}</strong></td>
        </tr>
        {% endfor %}
      </table>
      {% endif %}
      <p style="font-size: 14px; color: #555;">Don't hesitate to contact us if you have any questions.</p>
    </div>
  </body>
</html>
"""

_html_template = Template(BASE_EMAIL_TEMPLATE, autoescape=True)

STATUS_MESSAGES = {
    "pending": "Your booking is pending review.",
    "confirmed": "Great news! Your booking has been confirmed.",
    "in_progress": "Your service is now in progress.",
    "completed": "Your service has been completed. Thank you for choosing us!",
    "cancelled": "Your booking has been cancelled.",
}


def format_scheduled(scheduled: Optional[datetime]) -> str:
    if not scheduled:
        return "To be scheduled"
    return f"{scheduled:%A, %B} {scheduled.day}, {scheduled.year}"


def short_ref(booking_id: str) -> str:
    return booking_id[:8].upper()


def status_label(status: str) -> str:
    return status.replace("_", " ").upper()


def render_email(heading: str, paragraphs: list, details: Optional[list] = None) -> tuple[str, str]:
    """Returns (text_body, html_body)."""
    lines = [heading, ""]
    lines.extend(p + "\n" for p in paragraphs)
    for label, value in details or []:
        lines.append(f"{label}: {value}")
    text_body = "\n".join(lines).rstrip() + "\n"

    html_body = _html_template.render(heading=heading, paragraphs=paragraphs, details=details or [])
    return text_body, html_body


async def send_email(config: SmtpConfig, to_email: str, subject: str, text_body: str, html_body: str):
    msg = EmailMessage()
    msg["From"] = config.sender
    msg["To"] = to_email
    msg["Subject"] = subject

    msg.set_content(text_body)
    msg.add_alternative(html_body, subtype="html")

    await send(
        msg,
        hostname=config.host,
        port=config.port,
        username=config.user,
        password=config.password,
        use_tls=config.use_tls,
        start_tls=not config.use_tls,
    )


class EmailService:
    def __init__(self, config_provider: ChannelConfigProvider):
        self.config_provider = config_provider

    def is_enabled(self) -> bool:
        return self.config_provider.smtp() is not None

    async def deliver(self, to_email: str, subject: str, heading: str, paragraphs: list,
                      details: Optional[list] = None) -> bool:
        config = self.config_provider.smtp()
        if config is None:
            logger.debug("[EmailService] Disabled, skipping %r to %s", subject, to_email)
            return False

        text_body, html_body = render_email(heading, paragraphs, details)
        try:
            await send_email(config, to_email, subject, text_body, html_body)
        except Exception as e:
            logger.warning("[EmailService] FAILED: %r to %s: %s", subject, to_email, e)
            return False

        logger.info("[EmailService] Sent: %r to %s", subject, to_email)
        return True

    # Content-specific helpers
    async def send_booking_confirmation(self, to_email: str, name: str, service_name: str,
                                        scheduled: Optional[datetime], booking_id: str) -> bool:
        return await self.deliver(
            to_email,
            f"Booking Confirmation - {service_name}",
            f"Hi {name}!",
            [
                "Your booking has been confirmed.",
                "You can track your booking status through your dashboard.",
            ],
            [("Service", service_name), ("Scheduled", format_scheduled(scheduled)),
             ("Booking ID", short_ref(booking_id))],
        )

    async def send_booking_status_update(self, to_email: str, name: str, service_name: str,
                                         status: str, booking_id: str) -> bool:
        return await self.deliver(
            to_email,
            f"Booking Status Update - {status_label(status)}",
            f"Hi {name}!",
            [STATUS_MESSAGES.get(status, "Your booking status has been updated."),
             "Log in to your dashboard for more details."],
            [("Service", service_name), ("Booking ID", short_ref(booking_id)),
             ("New Status", status_label(status))],
        )

    async def send_staff_assignment(self, to_email: str, name: str, service_name: str,
                                    customer_name: str, scheduled: Optional[datetime]) -> bool:
        return await self.deliver(
            to_email,
            f"New Booking Assignment - {service_name}",
            f"Hi {name}!",
            ["You have been assigned to a new booking.",
             "Please log in to your staff dashboard to view details."],
            [("Service", service_name), ("Customer", customer_name),
             ("Scheduled", format_scheduled(scheduled))],
        )

    async def send_task_assignment(self, to_email: str, name: str, description: str,
                                   booking_id: str, customer_name: str) -> bool:
        return await self.deliver(
            to_email,
            f"New Task Assignment - {description[:50]}",
            f"Hi {name}!",
            ["You have been assigned a new task.",
             "Please log in to your staff dashboard to view details and update the task status."],
            [("Task", description), ("Customer", customer_name), ("Booking ID", short_ref(booking_id))],
        )

    async def send_user_approval(self, to_email: str, name: str) -> bool:
        return await self.deliver(
            to_email,
            "Your Account Has Been Approved",
            f"Hi {name}!",
            ["Great news! Your account has been approved.",
             "You now have full access to book services, track bookings, chat with our team "
             "and receive quotations. Log in to your account to get started!"],
        )

    async def send_quotation(self, to_email: str, name: str, service_name: str,
                             amount: int, note: str) -> bool:
        paragraphs = ["You've received a new quotation."]
        if note:
            paragraphs.append(f"Message: {note}")
        paragraphs.append("Log in to your dashboard to respond to this quotation.")
        return await self.deliver(
            to_email,
            f"Quotation Received - ${amount:.2f} for {service_name}",
            f"Hi {name}!",
            paragraphs,
            [("Service", service_name), ("Quoted Amount", f"${amount:.2f}")],
        )
