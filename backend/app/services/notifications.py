import logging
from typing import Iterable, List, Optional

from fastapi import BackgroundTasks, Depends
from sqlalchemy.orm import Session

from app import models, schemas
from app.config import settings
from app.database import SessionLocal, get_db
from app.services.channel_config import ChannelConfigProvider
from app.services.email_service import EmailService
from app.services.realtime import RealtimeEvent, RealtimeHub, get_hub, user_topic
from app.services.whatsapp_service import WhatsAppService

logger = logging.getLogger("notifications")

channel_config = ChannelConfigProvider(SessionLocal, settings, ttl_seconds=settings.CHANNEL_CONFIG_TTL_SECONDS)
email_service = EmailService(channel_config)
whatsapp_service = WhatsAppService(channel_config)


def get_channel_config() -> ChannelConfigProvider:
    return channel_config


def get_email_service() -> EmailService:
    return email_service


def get_whatsapp_service() -> WhatsAppService:
    return whatsapp_service


async def _guarded_async(label: str, func, *args):
    try:
        await func(*args)
    except Exception:
        logger.exception("[Notifier] %s failed", label)


def _guarded_sync(label: str, func, *args):
    try:
        func(*args)
    except Exception:
        logger.exception("[Notifier] %s failed", label)


class Notifier:
    """
    Outbound side effects of booking/chat/task changes.

    In-app rows are written inside a savepoint of the request session; e-mail, WhatsApp and
    realtime pushes are scheduled as background tasks that run after the response.
    Nothing here raises into the caller.
    """

    def __init__(
        self,
        db: Session,
        background_tasks: BackgroundTasks,
        email: EmailService,
        whatsapp: WhatsAppService,
        hub: Optional[RealtimeHub] = None,
    ):
        self.db = db
        self.background_tasks = background_tasks
        self.email = email
        self.whatsapp = whatsapp
        self.hub = hub

    # -------------------------
    # In-app notifications
    # -------------------------
    def notify(
        self,
        user_id: str,
        type_: models.NotificationType,
        title: str,
        content: str,
        attachments: Optional[List[str]] = None,
    ) -> Optional[models.Notification]:
        try:
            with self.db.begin_nested():
                item = models.Notification(
                    user_id=user_id,
                    type=type_,
                    title=title,
                    content=content,
                    attachments=attachments or None,
                )
                self.db.add(item)
        except Exception as e:
            logger.warning("[Notifier] Could not store %s notification for %s: %s", type_.value, user_id, e)
            return None

        if self.hub is not None:
            payload = schemas.NotificationRead.model_validate(item).model_dump(mode="json")
            self.background_tasks.add_task(
                _guarded_async, "realtime push", self.hub.publish, user_topic(user_id), "notification", payload
            )
        return item

    def notify_many(self, user_ids: Iterable[str], type_: models.NotificationType, title: str,
                    content: str, attachments: Optional[List[str]] = None) -> List[models.Notification]:
        created = []
        for uid in user_ids:
            item = self.notify(uid, type_, title, content, attachments)
            if item is not None:
                created.append(item)
        return created

    def notify_role(self, role: models.UserRole, type_: models.NotificationType, title: str, content: str):
        ids = [u.id for u in self.db.query(models.User).filter(models.User.role == role).all()]
        return self.notify_many(ids, type_, title, content)

    # -------------------------
    # Realtime
    # -------------------------
    def publish(self, events: List[RealtimeEvent]):
        """Schedule realtime events; they go out after the response, so only for committed requests."""
        if self.hub is not None and events:
            self.background_tasks.add_task(_guarded_async, "realtime publish", self.hub.publish_all, list(events))

    # -------------------------
    # External channels
    # -------------------------
    def _email(self, label: str, method, *args):
        self.background_tasks.add_task(_guarded_async, f"email {label}", method, *args)

    def _whatsapp(self, label: str, phone: Optional[str], method, *args):
        if phone and self.whatsapp.is_enabled():
            self.background_tasks.add_task(_guarded_sync, f"whatsapp {label}", method, phone, *args)

    def booking_confirmation(self, booking: models.Booking):
        customer, service = booking.customer, booking.service
        args = (customer.name, service.name, booking.scheduled_date, booking.id)
        self._email("booking confirmation", self.email.send_booking_confirmation, customer.email, *args)
        self._whatsapp("booking confirmation", customer.phone, self.whatsapp.send_booking_confirmation, *args)

    def booking_status_update(self, booking: models.Booking, status: models.BookingStatus):
        customer, service = booking.customer, booking.service
        args = (customer.name, service.name, status.value, booking.id)
        self._email("status update", self.email.send_booking_status_update, customer.email, *args)
        self._whatsapp("status update", customer.phone, self.whatsapp.send_booking_status_update, *args)

    def staff_assignment(self, staff: models.User, booking: models.Booking):
        args = (staff.name, booking.service.name, booking.customer.name, booking.scheduled_date)
        self._email("staff assignment", self.email.send_staff_assignment, staff.email, *args)
        self._whatsapp("staff assignment", staff.phone, self.whatsapp.send_staff_assignment, *args)

    def task_assignment(self, staff: models.User, description: str, booking: models.Booking):
        args = (staff.name, description, booking.id, booking.customer.name)
        self._email("task assignment", self.email.send_task_assignment, staff.email, *args)
        self._whatsapp("task assignment", staff.phone, self.whatsapp.send_task_assignment, *args)

    def user_approval(self, user: models.User):
        self._email("user approval", self.email.send_user_approval, user.email, user.name)
        self._whatsapp("user approval", user.phone, self.whatsapp.send_user_approval, user.name)

    def quotation(self, booking: models.Booking, amount: int, note: str):
        customer, service = booking.customer, booking.service
        args = (customer.name, service.name, amount, note)
        self._email("quotation", self.email.send_quotation, customer.email, *args)
        self._whatsapp("quotation", customer.phone, self.whatsapp.send_quotation, *args)


def get_notifier(
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    email: EmailService = Depends(get_email_service),
    whatsapp: WhatsAppService = Depends(get_whatsapp_service),
    hub: RealtimeHub = Depends(get_hub),
) -> Notifier:
    return Notifier(db, background_tasks, email, whatsapp, hub)
