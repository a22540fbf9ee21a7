"""
Booking / chat / task state rules.

Every mutation site (booking routes, chat routes, task routes, service deletion, user
deletion) goes through the functions below, so the cross-entity rules stay in one place:

  * creating a booking creates its chat
  * assigning staff fans out one task per new staff member and promotes a primary assignee
  * removing staff deletes their tasks and re-elects or clears the primary assignee
  * the first staff/admin reply moves a pending/confirmed booking to in_progress
  * closing a chat completes the booking, completing a booking closes the chat
  * when every task of a booking is completed the booking is completed
  * deleting a service removes its bookings with their tasks, messages and chats

Functions collect realtime events into an `events` list instead of publishing; the caller
publishes them after the session has been committed.
"""
import logging
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple

from fastapi import HTTPException
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app import models, schemas
from app.models import BookingStatus, TaskStatus, UserRole, utcnow
from app.services.realtime import RealtimeEvent, chat_topic

logger = logging.getLogger("app")

_ALL_BOOKING = frozenset(BookingStatus)
_ALL_TASK = frozenset(TaskStatus)

# Admin status changes are permissive: any status may follow any status.
BOOKING_TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {s: _ALL_BOOKING for s in BookingStatus}
TASK_TRANSITIONS: Dict[TaskStatus, FrozenSet[TaskStatus]] = {s: _ALL_TASK for s in TaskStatus}
# is_open -> allowed next is_open values; closed is terminal
CHAT_TRANSITIONS: Dict[bool, FrozenSet[bool]] = {True: frozenset({False}), False: frozenset()}

# Automatic transitions only fire from these states
AUTO_CONFIRM_FROM = frozenset({BookingStatus.PENDING})
AUTO_IN_PROGRESS_FROM = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})


# -----------------------------
# Access
# -----------------------------

def is_assigned(booking: models.Booking, user_id: str) -> bool:
    return booking.assigned_staff_id == user_id or any(t.staff_id == user_id for t in booking.tasks)


def can_access_booking(booking: models.Booking, user: models.User) -> bool:
    """Customers only reach their own bookings, staff only bookings they are assigned to."""
    if user.role == UserRole.ADMIN:
        return True
    if user.role == UserRole.CUSTOMER:
        return booking.customer_id == user.id
    if user.role == UserRole.STAFF:
        return is_assigned(booking, user.id)
    return False


def assert_booking_access(booking: models.Booking, user: models.User) -> None:
    if not can_access_booking(booking, user):
        raise HTTPException(status_code=403, detail="Access denied")


def bookings_visible_to(db: Session, user: models.User):
    q = db.query(models.Booking)
    if user.role == UserRole.CUSTOMER:
        q = q.filter(models.Booking.customer_id == user.id)
    elif user.role == UserRole.STAFF:
        task_booking_ids = db.query(models.Task.booking_id).filter(models.Task.staff_id == user.id)
        q = q.filter(or_(
            models.Booking.assigned_staff_id == user.id,
            models.Booking.id.in_(task_booking_ids),
        ))
    return q.order_by(models.Booking.created_at.desc())


# -----------------------------
# Transition functions
# -----------------------------

def _chat_payload(chat: models.Chat) -> dict:
    return schemas.ChatRead.model_validate(chat).model_dump(mode="json")


def transition_booking(db: Session, booking: models.Booking, status: BookingStatus,
                       events: List[RealtimeEvent]) -> bool:
    """Set the booking status; completing a booking closes its open chat. Returns True if it changed."""
    if status not in BOOKING_TRANSITIONS[booking.status]:
        raise HTTPException(status_code=400, detail=f"Cannot move booking from {booking.status.value} to {status.value}")

    changed = booking.status != status
    booking.status = status
    if changed:
        logger.info("[Workflow] Booking %s -> %s", booking.id, status.value)

    if status == BookingStatus.COMPLETED and booking.chat is not None and booking.chat.is_open:
        transition_chat(db, booking.chat, False, events)
    return changed


def transition_chat(db: Session, chat: models.Chat, is_open: bool, events: List[RealtimeEvent]) -> bool:
    """Close a chat (the only legal move); closing completes the owning booking."""
    if is_open == chat.is_open:
        return False
    if is_open not in CHAT_TRANSITIONS[chat.is_open]:
        raise HTTPException(status_code=400, detail="A closed chat cannot be reopened")

    chat.is_open = False
    chat.closed_at = utcnow()
    events.append(RealtimeEvent(chat_topic(chat.id), "chat_closed", _chat_payload(chat)))
    logger.info("[Workflow] Chat %s closed", chat.id)

    booking = chat.booking
    if booking is not None and booking.status != BookingStatus.COMPLETED:
        transition_booking(db, booking, BookingStatus.COMPLETED, events)
    return True


def transition_task(db: Session, task: models.Task, status: TaskStatus,
                    events: List[RealtimeEvent]) -> bool:
    """Set the task status and stamp completed_at; entering completed completes the booking once every task is done."""
    if status not in TASK_TRANSITIONS[task.status]:
        raise HTTPException(status_code=400, detail=f"Cannot move task from {task.status.value} to {status.value}")

    changed = task.status != status
    task.status = status
    if status == TaskStatus.COMPLETED:
        if changed or task.completed_at is None:
            task.completed_at = utcnow()
    else:
        task.completed_at = None

    if status == TaskStatus.COMPLETED and changed and task.booking_id:
        db.flush()
        booking = task.booking
        siblings = db.query(models.Task).filter(models.Task.booking_id == task.booking_id).all()
        if booking is not None and siblings and all(t.status == TaskStatus.COMPLETED for t in siblings):
            if booking.status != BookingStatus.COMPLETED:
                transition_booking(db, booking, BookingStatus.COMPLETED, events)
    return changed


# -----------------------------
# Booking operations
# -----------------------------

def create_booking(db: Session, customer: models.User, payload: schemas.BookingCreate,
                   notifier=None) -> Tuple[models.Booking, models.Chat]:
    service = db.get(models.Service, payload.service_id)
    if not service or not service.is_active:
        raise HTTPException(status_code=404, detail="Service not found")

    booking = models.Booking(
        customer=customer,
        service=service,
        scheduled_date=payload.scheduled_date,
        notes=payload.notes,
        status=BookingStatus.PENDING,
    )
    chat = models.Chat(booking=booking, is_open=True)
    db.add_all([booking, chat])
    db.flush()

    if notifier is not None:
        notifier.notify_role(UserRole.ADMIN, models.NotificationType.BOOKING, "New Booking",
                             "A new service booking has been created.")
        notifier.booking_confirmation(booking)
    return booking, chat


def update_booking_status(db: Session, booking: models.Booking, status: BookingStatus,
                          events: List[RealtimeEvent], notifier=None) -> bool:
    changed = transition_booking(db, booking, status, events)
    if notifier is not None:
        notifier.notify(booking.customer_id, models.NotificationType.BOOKING, "Booking Updated",
                        f"Your booking status has been updated to {status.value}.")
        notifier.booking_status_update(booking, status)
    return changed


def load_staff(db: Session, staff_ids: Sequence[str]) -> Dict[str, models.User]:
    users = db.query(models.User).filter(models.User.id.in_(list(staff_ids))).all()
    found = {u.id: u for u in users}
    missing = [sid for sid in staff_ids if sid not in found]
    if missing:
        raise HTTPException(status_code=404, detail=f"Staff member not found: {', '.join(missing)}")
    not_staff = [u.name for u in users if u.role != UserRole.STAFF]
    if not_staff:
        raise HTTPException(status_code=400, detail=f"Not a staff member: {', '.join(not_staff)}")
    return found


def create_task_for_staff(db: Session, booking: Optional[models.Booking], staff_id: str, description: str,
                          title: Optional[str] = None,
                          attachments: Optional[List[str]] = None) -> Tuple[models.Task, bool]:
    """
    Create a task for one staff member. For a booking this is idempotent per (booking, staff):
    an existing task is returned with created=False, including when a concurrent request won
    the race on the unique constraint.
    """
    if booking is not None:
        existing = (
            db.query(models.Task)
            .filter(models.Task.booking_id == booking.id, models.Task.staff_id == staff_id)
            .first()
        )
        if existing:
            return existing, False

    task = models.Task(
        booking_id=booking.id if booking is not None else None,
        staff_id=staff_id,
        title=title,
        description=description,
        attachments=attachments or None,
        status=TaskStatus.PENDING,
    )
    try:
        with db.begin_nested():
            db.add(task)
    except IntegrityError:
        if booking is None:
            raise
        logger.info("[Workflow] Task for staff %s on booking %s already exists", staff_id, booking.id)
        existing = (
            db.query(models.Task)
            .filter(models.Task.booking_id == booking.id, models.Task.staff_id == staff_id)
            .one()
        )
        return existing, False
    return task, True


def assign_staff(db: Session, booking: models.Booking, staff_ids: Sequence[str],
                 events: List[RealtimeEvent], notifier=None) -> List[models.User]:
    """Assign staff to a booking. Already assigned staff are skipped; returns the newly assigned users."""
    staff_ids = list(dict.fromkeys(staff_ids))
    if not staff_ids:
        raise HTTPException(status_code=400, detail="Please select at least one staff member")

    staff = load_staff(db, staff_ids)
    existing = {t.staff_id for t in booking.tasks}
    new_ids = [sid for sid in staff_ids if sid not in existing]
    if not new_ids:
        return []

    if booking.assigned_staff_id is None:
        booking.assigned_staff_id = new_ids[0]
        if booking.status in AUTO_CONFIRM_FROM:
            transition_booking(db, booking, BookingStatus.CONFIRMED, events)

    description = f"Service: {booking.service.name} - Complete service for {booking.customer.name}"
    assigned = []
    for sid in new_ids:
        _, created = create_task_for_staff(db, booking, sid, description)
        if not created:
            continue
        member = staff[sid]
        assigned.append(member)
        if notifier is not None:
            notifier.notify(sid, models.NotificationType.TASK, "New Task Assigned",
                            "You have been assigned a new task for booking.")
            notifier.staff_assignment(member, booking)

    db.flush()
    db.expire(booking, ["tasks"])

    if assigned and notifier is not None:
        notifier.notify(booking.customer_id, models.NotificationType.BOOKING, "Staff Assigned",
                        f"{len(assigned)} staff member(s) have been assigned to your booking.")
    return assigned


def delete_tasks_for_staff(db: Session, booking_id: str, staff_id: str) -> int:
    tasks = (
        db.query(models.Task)
        .filter(models.Task.booking_id == booking_id, models.Task.staff_id == staff_id)
        .all()
    )
    for task in tasks:
        db.delete(task)
    return len(tasks)


def remove_staff(db: Session, booking: models.Booking, staff_id: str, notifier=None) -> None:
    remaining = [t.staff_id for t in booking.tasks if t.staff_id != staff_id]
    removed = delete_tasks_for_staff(db, booking.id, staff_id)
    if removed == 0:
        raise HTTPException(status_code=404, detail="Staff is not assigned to this booking")

    if booking.assigned_staff_id == staff_id:
        booking.assigned_staff_id = remaining[0] if remaining else None

    db.flush()
    db.expire(booking, ["tasks"])

    if notifier is not None:
        notifier.notify(staff_id, models.NotificationType.TASK, "Task Removed",
                        "You have been removed from a booking task.")


# -----------------------------
# Chat operations
# -----------------------------

def visible_messages(db: Session, chat: models.Chat, viewer: models.User) -> List[models.Message]:
    q = db.query(models.Message).filter(models.Message.chat_id == chat.id)
    if not viewer.is_staff_or_admin:
        q = q.filter(or_(models.Message.is_private.is_(False), models.Message.sender_id == viewer.id))
    return q.order_by(models.Message.created_at.asc()).all()


def _private_audience(sender_id: str):
    def _allowed(conn) -> bool:
        return conn.role in (UserRole.STAFF.value, UserRole.ADMIN.value) or conn.user_id == sender_id
    return _allowed


def post_message(db: Session, chat: models.Chat, sender: models.User, payload: schemas.MessageCreate,
                 events: List[RealtimeEvent], notifier=None) -> models.Message:
    if not chat.is_open:
        raise HTTPException(status_code=400, detail="Chat is closed")
    if payload.is_quotation and not sender.is_staff_or_admin:
        raise HTTPException(status_code=403, detail="Only staff can send quotations")

    message = models.Message(
        chat=chat,
        sender=sender,
        content=payload.content,
        is_private=payload.is_private,
        is_quotation=payload.is_quotation,
        quotation_amount=payload.quotation_amount,
        attachment_url=payload.attachment_url,
        attachment_type=payload.attachment_type,
    )
    db.add(message)
    db.flush()

    data = schemas.MessageRead.model_validate(message).model_dump(mode="json")
    audience = _private_audience(sender.id) if message.is_private else None
    events.append(RealtimeEvent(chat_topic(chat.id), "new_message", data, audience))

    booking = chat.booking
    if sender.is_staff_or_admin and booking.status in AUTO_IN_PROGRESS_FROM:
        transition_booking(db, booking, BookingStatus.IN_PROGRESS, events)

    if message.is_quotation and message.quotation_amount and notifier is not None:
        notifier.quotation(booking, message.quotation_amount, message.content)
    return message


def close_chat(db: Session, chat: models.Chat, events: List[RealtimeEvent]) -> bool:
    return transition_chat(db, chat, False, events)


# -----------------------------
# Cascading deletes
# -----------------------------

def purge_bookings(db: Session, booking_ids: Sequence[str]) -> None:
    """Delete bookings with their tasks, messages and chats (children first)."""
    booking_ids = list(booking_ids)
    if not booking_ids:
        return
    chat_ids = db.query(models.Chat.id).filter(models.Chat.booking_id.in_(booking_ids))
    db.query(models.Task).filter(models.Task.booking_id.in_(booking_ids)).delete(synchronize_session=False)
    db.query(models.Message).filter(models.Message.chat_id.in_(chat_ids)).delete(synchronize_session=False)
    db.query(models.Chat).filter(models.Chat.booking_id.in_(booking_ids)).delete(synchronize_session=False)
    db.query(models.Booking).filter(models.Booking.id.in_(booking_ids)).delete(synchronize_session=False)


def delete_service(db: Session, service: models.Service) -> None:
    booking_ids = [b.id for b in db.query(models.Booking.id).filter(models.Booking.service_id == service.id)]
    purge_bookings(db, booking_ids)
    db.delete(service)


def purge_users(db: Session, user_ids: Sequence[str]) -> None:
    """Remove users and everything that references them. The caller owns the transaction."""
    user_ids = list(user_ids)
    own_bookings = [b.id for b in db.query(models.Booking.id).filter(models.Booking.customer_id.in_(user_ids))]
    purge_bookings(db, own_bookings)

    primary_of = db.query(models.Booking).filter(models.Booking.assigned_staff_id.in_(user_ids)).all()
    db.query(models.Task).filter(models.Task.staff_id.in_(user_ids)).delete(synchronize_session=False)
    for booking in primary_of:
        # next remaining assignee becomes primary
        next_task = (
            db.query(models.Task)
            .filter(models.Task.booking_id == booking.id)
            .order_by(models.Task.created_at.asc())
            .first()
        )
        booking.assigned_staff_id = next_task.staff_id if next_task else None
        db.expire(booking, ["tasks"])
    db.flush()

    db.query(models.Message).filter(models.Message.sender_id.in_(user_ids)).delete(synchronize_session=False)
    db.query(models.Notification).filter(models.Notification.user_id.in_(user_ids)).delete(synchronize_session=False)
    db.query(models.Attendance).filter(models.Attendance.staff_id.in_(user_ids)).delete(synchronize_session=False)
    db.query(models.LeaveRequest).filter(models.LeaveRequest.staff_id.in_(user_ids)).delete(synchronize_session=False)
    db.query(models.LeaveRequest).filter(models.LeaveRequest.reviewed_by_id.in_(user_ids)).update(
        {models.LeaveRequest.reviewed_by_id: None}, synchronize_session=False
    )
    db.query(models.User).filter(models.User.id.in_(user_ids)).delete(synchronize_session=False)
