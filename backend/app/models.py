from sqlalchemy import (
    Column, Integer, String, ForeignKey, Date, DateTime, Text, Boolean, Float, JSON,
    UniqueConstraint, Index, CheckConstraint,
)
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import relationship, declarative_base
from datetime import datetime, timezone
import enum
import uuid

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum(py_enum, name: str):
    return SAEnum(
        py_enum,
        name=name,
        values_callable=lambda e: [x.value for x in e],
        native_enum=True,
        validate_strings=True,
        create_constraint=False,
    )


class UserRole(str, enum.Enum):
    CUSTOMER = "customer"
    STAFF = "staff"
    ADMIN = "admin"


class ServiceCategory(str, enum.Enum):
    HARDWARE = "hardware"
    SOFTWARE = "software"
    NETWORK = "network"
    SECURITY = "security"
    CLOUD = "cloud"
    CONSULTING = "consulting"
    MAINTENANCE = "maintenance"
    OTHER = "other"


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TaskStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class NotificationType(str, enum.Enum):
    BOOKING = "booking"
    MESSAGE = "message"
    TASK = "task"
    APPROVAL = "approval"
    BROADCAST = "broadcast"


class ChannelType(str, enum.Enum):
    EMAIL = "email"
    WHATSAPP = "whatsapp"


class AttendanceStatus(str, enum.Enum):
    PRESENT = "present"
    ABSENT = "absent"
    LATE = "late"
    HALF_DAY = "half_day"


class LeaveType(str, enum.Enum):
    ANNUAL = "annual"
    SICK = "sick"
    PERSONAL = "personal"
    UNPAID = "unpaid"


class LeaveStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String, unique=True, nullable=False, index=True)
    hashed_password = Column(String, nullable=False)
    name = Column(String, nullable=False)
    phone = Column(String, nullable=True)
    profile_photo = Column(String, nullable=True)

    role = Column(_enum(UserRole, "user_role"), nullable=False, server_default=UserRole.CUSTOMER.value)
    approved = Column(Boolean, nullable=False, default=False)

    # Leave quota (staff only)
    leave_days_quota = Column(Integer, nullable=False, default=20)
    leave_days_used = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    @property
    def is_staff_or_admin(self) -> bool:
        return self.role in (UserRole.STAFF, UserRole.ADMIN)


class Service(Base):
    __tablename__ = "services"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    category = Column(_enum(ServiceCategory, "service_category"), nullable=False,
                      default=ServiceCategory.OTHER)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    bookings = relationship("Booking", back_populates="service")


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=_uuid)
    customer_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    service_id = Column(String(36), ForeignKey("services.id"), nullable=False, index=True)
    status = Column(_enum(BookingStatus, "booking_status"), nullable=False, default=BookingStatus.PENDING)
    scheduled_date = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)

    # Primary assignee, kept for display; the full assignment set lives in tasks
    assigned_staff_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    customer = relationship("User", foreign_keys=[customer_id])
    assigned_staff = relationship("User", foreign_keys=[assigned_staff_id])
    service = relationship("Service", back_populates="bookings")
    chat = relationship("Chat", back_populates="booking", uselist=False)
    tasks = relationship("Task", back_populates="booking", order_by="Task.created_at")


class Chat(Base):
    __tablename__ = "chats"

    id = Column(String(36), primary_key=True, default=_uuid)
    booking_id = Column(String(36), ForeignKey("bookings.id"), nullable=False, unique=True)
    is_open = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    closed_at = Column(DateTime(timezone=True), nullable=True)

    booking = relationship("Booking", back_populates="chat")
    messages = relationship("Message", back_populates="chat", order_by="Message.created_at")


class Message(Base):
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=_uuid)
    chat_id = Column(String(36), ForeignKey("chats.id"), nullable=False, index=True)
    sender_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    content = Column(Text, nullable=False)
    is_private = Column(Boolean, nullable=False, default=False)
    is_quotation = Column(Boolean, nullable=False, default=False)
    quotation_amount = Column(Integer, nullable=True)
    attachment_url = Column(String, nullable=True)
    attachment_type = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    chat = relationship("Chat", back_populates="messages")
    sender = relationship("User")


class Task(Base):
    __tablename__ = "tasks"

    id = Column(String(36), primary_key=True, default=_uuid)
    booking_id = Column(String(36), ForeignKey("bookings.id"), nullable=True, index=True)
    staff_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String, nullable=True)
    description = Column(Text, nullable=False)
    status = Column(_enum(TaskStatus, "task_status"), nullable=False, default=TaskStatus.PENDING)
    attachments = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    booking = relationship("Booking", back_populates="tasks")
    staff = relationship("User")

    __table_args__ = (
        # One task per staff member per booking (NULL booking_id rows never collide)
        UniqueConstraint("booking_id", "staff_id", name="uq_task_booking_staff"),
    )


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    type = Column(_enum(NotificationType, "notification_type"), nullable=False)
    title = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    read = Column(Boolean, nullable=False, default=False)
    attachments = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class NotificationSetting(Base):
    __tablename__ = "notification_settings"

    id = Column(String(36), primary_key=True, default=_uuid)
    type = Column(_enum(ChannelType, "channel_type"), nullable=False, unique=True)
    enabled = Column(Boolean, nullable=False, default=False)
    config = Column(JSON, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class Attendance(Base):
    __tablename__ = "attendance"

    id = Column(String(36), primary_key=True, default=_uuid)
    staff_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)

    clock_in_time = Column(DateTime(timezone=True), nullable=True)
    clock_in_latitude = Column(Float, nullable=True)
    clock_in_longitude = Column(Float, nullable=True)
    clock_in_address = Column(String, nullable=True)

    clock_out_time = Column(DateTime(timezone=True), nullable=True)
    clock_out_latitude = Column(Float, nullable=True)
    clock_out_longitude = Column(Float, nullable=True)
    clock_out_address = Column(String, nullable=True)

    status = Column(_enum(AttendanceStatus, "attendance_status"), nullable=False,
                    default=AttendanceStatus.PRESENT)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    staff = relationship("User")

    __table_args__ = (
        Index("ix_attendance_staff_date", "staff_id", "date"),
    )


class LeaveRequest(Base):
    __tablename__ = "leave_requests"

    id = Column(String(36), primary_key=True, default=_uuid)
    staff_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    leave_type = Column(_enum(LeaveType, "leave_type"), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    reason = Column(Text, nullable=True)
    status = Column(_enum(LeaveStatus, "leave_status"), nullable=False, default=LeaveStatus.PENDING)

    reviewed_by_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    admin_notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    staff = relationship("User", foreign_keys=[staff_id])

    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="ck_leave_valid_range"),
    )

    @property
    def days(self) -> int:
        return (self.end_date - self.start_date).days + 1


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=_uuid)
    action = Column(String, nullable=False, index=True)
    actor_id = Column(String(36), nullable=True)
    actor_email = Column(String, nullable=True)
    actor_role = Column(String, nullable=True)
    target_id = Column(String(36), nullable=True)
    target_type = Column(String, nullable=True)
    details = Column(JSON, nullable=True)
    ip_address = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
