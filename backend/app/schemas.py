from pydantic import BaseModel, EmailStr, Field, ConfigDict, AliasChoices, model_validator
from typing import Optional, List, Any
from datetime import date, datetime

from .models import (
    UserRole, ServiceCategory, BookingStatus, TaskStatus, NotificationType, ChannelType,
    AttendanceStatus, LeaveType, LeaveStatus,
)


# ----------------------------
# USER / AUTH
# ----------------------------

class UserSimple(BaseModel):
    id: str
    name: str
    email: EmailStr
    phone: Optional[str] = None
    role: UserRole

    model_config = ConfigDict(from_attributes=True)


class UserRead(UserSimple):
    approved: bool
    profile_photo: Optional[str] = None
    leave_days_quota: int
    leave_days_used: int
    created_at: datetime


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6, description="Password must be at least 6 characters")
    confirm_password: Optional[str] = None
    name: str = Field(..., min_length=1)
    phone: Optional[str] = None
    role: UserRole = UserRole.CUSTOMER

    @model_validator(mode="after")
    def _passwords_match(self):
        if self.confirm_password is not None and self.confirm_password != self.password:
            raise ValueError("Passwords don't match")
        return self


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)


class AuthResponse(BaseModel):
    user: UserRead
    token: Optional[str] = None
    message: Optional[str] = None
    pending_approval: bool = False


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6, description="Password must be at least 6 characters")


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    phone: Optional[str] = None
    profile_photo: Optional[str] = None


class AdminUserUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    role: Optional[UserRole] = None
    approved: Optional[bool] = None
    leave_days_quota: Optional[int] = Field(None, ge=0)


class BulkDeleteRequest(BaseModel):
    user_ids: List[str] = Field(..., min_length=1, validation_alias=AliasChoices("user_ids", "userIds"))


# ----------------------------
# SERVICE
# ----------------------------

class ServiceBase(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    category: ServiceCategory = ServiceCategory.OTHER
    is_active: bool = True


class ServiceCreate(ServiceBase):
    pass


class ServiceUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = Field(None, min_length=1)
    category: Optional[ServiceCategory] = None
    is_active: Optional[bool] = None


class ServiceRead(ServiceBase):
    id: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ----------------------------
# CHAT / MESSAGE
# ----------------------------

class ChatRead(BaseModel):
    id: str
    booking_id: str
    is_open: bool
    created_at: datetime
    closed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class MessageCreate(BaseModel):
    content: str = Field(..., min_length=1)
    is_private: bool = False
    is_quotation: bool = False
    quotation_amount: Optional[int] = Field(None, ge=0)
    attachment_url: Optional[str] = None
    attachment_type: Optional[str] = None


class MessageRead(BaseModel):
    id: str
    chat_id: str
    sender_id: str
    content: str
    is_private: bool
    is_quotation: bool
    quotation_amount: Optional[int] = None
    attachment_url: Optional[str] = None
    attachment_type: Optional[str] = None
    created_at: datetime
    sender: Optional[UserSimple] = None

    model_config = ConfigDict(from_attributes=True)


# ----------------------------
# BOOKING
# ----------------------------

class BookingCreate(BaseModel):
    service_id: str
    scheduled_date: Optional[datetime] = None
    notes: Optional[str] = None


class BookingStatusUpdate(BaseModel):
    status: BookingStatus


class AssignStaffRequest(BaseModel):
    staff_ids: Optional[List[str]] = Field(None, validation_alias=AliasChoices("staff_ids", "staffIds"))
    staff_id: Optional[str] = Field(None, validation_alias=AliasChoices("staff_id", "staffId"))

    @property
    def requested_ids(self) -> List[str]:
        # Unique, order kept
        ids = list(self.staff_ids or [])
        if not ids and self.staff_id:
            ids = [self.staff_id]
        return list(dict.fromkeys(i for i in ids if i))


class BookingRead(BaseModel):
    id: str
    customer_id: str
    service_id: str
    status: BookingStatus
    scheduled_date: Optional[datetime] = None
    notes: Optional[str] = None
    assigned_staff_id: Optional[str] = None
    created_at: datetime

    customer: Optional[UserSimple] = None
    service: Optional[ServiceRead] = None
    assigned_staff: Optional[UserSimple] = None
    chat: Optional[ChatRead] = None

    model_config = ConfigDict(from_attributes=True)


class BookingCreated(BaseModel):
    booking: BookingRead
    chat: ChatRead


class AssignedStaffRead(UserSimple):
    task_id: str
    task_status: TaskStatus


# ----------------------------
# TASK
# ----------------------------

class TaskCreate(BaseModel):
    staff_ids: Optional[List[str]] = Field(None, validation_alias=AliasChoices("staff_ids", "staffIds"))
    staff_id: Optional[str] = Field(None, validation_alias=AliasChoices("staff_id", "staffId"))
    title: Optional[str] = None
    description: str = Field(..., min_length=1, description="Description is required")
    booking_id: Optional[str] = Field(None, validation_alias=AliasChoices("booking_id", "bookingId"))
    attachments: Optional[List[str]] = None

    @model_validator(mode="after")
    def _at_least_one_staff(self):
        if not self.requested_ids:
            raise ValueError("Please select at least one staff member")
        return self

    @property
    def requested_ids(self) -> List[str]:
        ids = list(self.staff_ids or []) or [self.staff_id]
        return list(dict.fromkeys(i for i in ids if i))


class TaskStatusUpdate(BaseModel):
    status: TaskStatus


class TaskRead(BaseModel):
    id: str
    booking_id: Optional[str] = None
    staff_id: str
    title: Optional[str] = None
    description: str
    status: TaskStatus
    attachments: Optional[List[str]] = None
    created_at: datetime
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class TaskWithDetails(TaskRead):
    booking: Optional[BookingRead] = None
    staff: Optional[UserSimple] = None


# ----------------------------
# NOTIFICATIONS
# ----------------------------

class NotificationRead(BaseModel):
    id: str
    user_id: str
    type: NotificationType
    title: str
    content: str
    read: bool
    attachments: Optional[List[str]] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BroadcastRequest(BaseModel):
    title: str = Field(..., min_length=1, description="Title and content are required")
    content: str = Field(..., min_length=1, description="Title and content are required")
    attachments: List[str] = []
    target_role: str = Field("customer", validation_alias=AliasChoices("target_role", "targetRole"))


class BroadcastResult(BaseModel):
    success: bool
    message: str
    count: int


class NotificationSettingUpdate(BaseModel):
    enabled: bool = False
    config: Optional[dict] = None


class NotificationSettingRead(BaseModel):
    type: ChannelType
    enabled: bool
    config: Optional[dict] = None

    model_config = ConfigDict(from_attributes=True)


# ----------------------------
# ATTENDANCE
# ----------------------------

class ClockEvent(BaseModel):
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: Optional[str] = None


class AttendanceAdminCreate(BaseModel):
    staff_id: str
    date: date
    clock_in_time: Optional[datetime] = None
    clock_out_time: Optional[datetime] = None
    status: AttendanceStatus = AttendanceStatus.PRESENT


class AttendanceAdminUpdate(BaseModel):
    clock_in_time: Optional[datetime] = None
    clock_out_time: Optional[datetime] = None
    status: Optional[AttendanceStatus] = None

    @model_validator(mode="after")
    def _at_least_one_field(self):
        if not self.model_fields_set & {"clock_in_time", "clock_out_time", "status"}:
            raise ValueError("At least one field (clock_in_time, clock_out_time, or status) must be provided")
        return self


class AttendanceRead(BaseModel):
    id: str
    staff_id: str
    date: date
    clock_in_time: Optional[datetime] = None
    clock_in_latitude: Optional[float] = None
    clock_in_longitude: Optional[float] = None
    clock_in_address: Optional[str] = None
    clock_out_time: Optional[datetime] = None
    clock_out_latitude: Optional[float] = None
    clock_out_longitude: Optional[float] = None
    clock_out_address: Optional[str] = None
    status: AttendanceStatus
    staff: Optional[UserSimple] = None

    model_config = ConfigDict(from_attributes=True)


# ----------------------------
# LEAVE
# ----------------------------

class LeaveQuota(BaseModel):
    leave_days_quota: int
    leave_days_used: int
    leave_days_remaining: int


class LeaveRequestCreate(BaseModel):
    leave_type: LeaveType
    start_date: date
    end_date: date
    reason: Optional[str] = None


class LeaveStatusUpdate(BaseModel):
    status: LeaveStatus
    admin_notes: Optional[str] = None


class LeaveRequestRead(BaseModel):
    id: str
    staff_id: str
    leave_type: LeaveType
    start_date: date
    end_date: date
    reason: Optional[str] = None
    status: LeaveStatus
    reviewed_by_id: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    admin_notes: Optional[str] = None
    created_at: datetime
    staff: Optional[UserSimple] = None

    model_config = ConfigDict(from_attributes=True)


# ----------------------------
# AUDIT LOG
# ----------------------------

class AuditLogRead(BaseModel):
    id: str
    action: str
    actor_id: Optional[str] = None
    actor_email: Optional[str] = None
    actor_role: Optional[str] = None
    target_id: Optional[str] = None
    target_type: Optional[str] = None
    details: Optional[Any] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class Pagination(BaseModel):
    total: int
    limit: int
    offset: int


class AuditLogPage(BaseModel):
    logs: List[AuditLogRead]
    pagination: Pagination


# ----------------------------
# UPLOAD
# ----------------------------

class UploadResult(BaseModel):
    url: str
    key: str
    content_type: Optional[str] = None
    size: int
