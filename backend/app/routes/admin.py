from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from app import models, schemas
from app.auth import require_admin, require_staff_or_admin
from app.database import get_db
from app.services import workflow
from app.services.audit import record_audit
from app.services.channel_config import ChannelConfigProvider
from app.services.notifications import (
    Notifier, get_channel_config, get_email_service, get_notifier, get_whatsapp_service,
)

router = APIRouter()
system_router = APIRouter()


def _get_user_or_404(db: Session, user_id: str) -> models.User:
    user = db.get(models.User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


# ----------------------------------
# Users
# ----------------------------------
@router.get("/users", response_model=List[schemas.UserRead])
def list_users(db: Session = Depends(get_db), _: models.User = Depends(require_admin)):
    return db.query(models.User).order_by(models.User.created_at.desc()).all()


@router.get("/users/staff", response_model=List[schemas.UserRead])
def list_staff(db: Session = Depends(get_db), _: models.User = Depends(require_admin)):
    return (
        db.query(models.User)
        .filter(models.User.role == models.UserRole.STAFF)
        .order_by(models.User.name.asc())
        .all()
    )


@router.post("/users/bulk-delete")
def bulk_delete_users(
    payload: schemas.BulkDeleteRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_admin),
):
    user_ids = list(dict.fromkeys(payload.user_ids))
    if current_user.id in user_ids:
        raise HTTPException(status_code=400, detail="Cannot delete your own account")

    found = {u.id for u in db.query(models.User.id).filter(models.User.id.in_(user_ids))}
    missing = [uid for uid in user_ids if uid not in found]
    if missing:
        raise HTTPException(status_code=404, detail=f"User not found: {', '.join(missing)}")

    # all or nothing
    try:
        workflow.purge_users(db, user_ids)
        record_audit(
            db, "user_delete", actor=current_user, request=request,
            target_type="user", details={"user_ids": user_ids, "count": len(user_ids)},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    return {"message": f"{len(user_ids)} user(s) deleted successfully", "count": len(user_ids)}


@router.post("/users/{user_id}/approve", response_model=schemas.UserRead)
def approve_user(
    user_id: str,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_admin),
    notifier: Notifier = Depends(get_notifier),
):
    user = _get_user_or_404(db, user_id)
    user.approved = True
    try:
        notifier.notify(user.id, models.NotificationType.APPROVAL, "Account Approved",
                        "Your account has been approved. You can now access all features.")
        record_audit(db, "user_approve", actor=current_user, request=request,
                     target_id=user.id, target_type="user")
        db.commit()
    except Exception:
        db.rollback()
        raise
    notifier.user_approval(user)
    db.refresh(user)
    return user


@router.patch("/users/{user_id}", response_model=schemas.UserRead)
def update_user(
    user_id: str,
    payload: schemas.AdminUserUpdate,
    db: Session = Depends(get_db),
    _: models.User = Depends(require_admin),
):
    user = _get_user_or_404(db, user_id)
    updates = payload.model_dump(exclude_unset=True)

    email = updates.get("email")
    if email:
        email = email.lower()
        clash = db.query(models.User).filter(models.User.email == email, models.User.id != user.id).first()
        if clash:
            raise HTTPException(status_code=400, detail="Email already registered")
        updates["email"] = email

    for field, value in updates.items():
        if value is None and field != "phone":
            continue
        setattr(user, field, value)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(user)
    return user


@router.delete("/users/{user_id}")
def delete_user(
    user_id: str,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_admin),
):
    if user_id == current_user.id:
        raise HTTPException(status_code=400, detail="Cannot delete your own account")
    user = _get_user_or_404(db, user_id)
    email = user.email

    try:
        workflow.purge_users(db, [user_id])
        record_audit(
            db, "user_delete", actor=current_user, request=request,
            target_id=user_id, target_type="user", details={"email": email},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    return {"message": "User deleted successfully"}


# ----------------------------------
# Services (including inactive)
# ----------------------------------
@router.get("/services", response_model=List[schemas.ServiceRead])
def list_all_services(db: Session = Depends(get_db), _: models.User = Depends(require_admin)):
    return db.query(models.Service).order_by(models.Service.created_at.desc()).all()


# ----------------------------------
# Broadcast
# ----------------------------------
@router.post("/notifications/broadcast", response_model=schemas.BroadcastResult)
def broadcast(
    payload: schemas.BroadcastRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_admin),
    notifier: Notifier = Depends(get_notifier),
):
    q = db.query(models.User)
    if payload.target_role == "all":
        q = q.filter(models.User.role != models.UserRole.ADMIN)
    elif payload.target_role == "staff":
        q = q.filter(models.User.role == models.UserRole.STAFF)
    else:
        q = q.filter(models.User.role == models.UserRole.CUSTOMER)
    recipients = [u.id for u in q.all()]

    try:
        created = notifier.notify_many(
            recipients, models.NotificationType.BROADCAST, payload.title, payload.content, payload.attachments,
        )
        record_audit(
            db, "notification_broadcast", actor=current_user, request=request,
            target_type="notification",
            details={"target_role": payload.target_role, "recipient_count": len(created), "title": payload.title},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    return schemas.BroadcastResult(
        success=True,
        message=f"Notification sent to {len(created)} users",
        count=len(created),
    )


# ----------------------------------
# Notification channel settings
# ----------------------------------
def _setting_or_default(db: Session, channel: models.ChannelType) -> schemas.NotificationSettingRead:
    row = db.query(models.NotificationSetting).filter(models.NotificationSetting.type == channel).first()
    if row is None:
        return schemas.NotificationSettingRead(type=channel, enabled=False, config=None)
    return schemas.NotificationSettingRead.model_validate(row)


@router.get("/notification-settings", response_model=List[schemas.NotificationSettingRead])
def list_notification_settings(db: Session = Depends(get_db), _: models.User = Depends(require_admin)):
    return [_setting_or_default(db, channel) for channel in models.ChannelType]


@router.get("/notification-settings/{channel}", response_model=schemas.NotificationSettingRead)
def get_notification_setting(
    channel: models.ChannelType,
    db: Session = Depends(get_db),
    _: models.User = Depends(require_admin),
):
    return _setting_or_default(db, channel)


@router.put("/notification-settings/{channel}", response_model=schemas.NotificationSettingRead)
def update_notification_setting(
    channel: models.ChannelType,
    payload: schemas.NotificationSettingUpdate,
    db: Session = Depends(get_db),
    _: models.User = Depends(require_admin),
    channel_config: ChannelConfigProvider = Depends(get_channel_config),
):
    row = db.query(models.NotificationSetting).filter(models.NotificationSetting.type == channel).first()
    if row is None:
        row = models.NotificationSetting(type=channel)
        db.add(row)
    row.enabled = payload.enabled
    row.config = payload.config or None
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    channel_config.invalidate(channel)
    db.refresh(row)
    return row


# ----------------------------------
# Audit logs
# ----------------------------------
def _day_start(d: date) -> datetime:
    return datetime.combine(d, time.min, tzinfo=timezone.utc)


@router.get("/audit-logs", response_model=schemas.AuditLogPage)
def list_audit_logs(
    action: Optional[str] = Query(None),
    actor_role: Optional[str] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    _: models.User = Depends(require_admin),
):
    q = db.query(models.AuditLog)
    if action and action != "all":
        q = q.filter(models.AuditLog.action == action)
    if actor_role and actor_role != "all":
        q = q.filter(models.AuditLog.actor_role == actor_role)
    if start_date:
        q = q.filter(models.AuditLog.created_at >= _day_start(start_date))
    if end_date:
        q = q.filter(models.AuditLog.created_at < _day_start(end_date + timedelta(days=1)))

    total = q.count()
    logs = q.order_by(models.AuditLog.created_at.desc()).offset(offset).limit(limit).all()
    return {"logs": logs, "pagination": {"total": total, "limit": limit, "offset": offset}}


# ----------------------------------
# System status (staff + admin)
# ----------------------------------
@system_router.get("/status")
def system_status(
    _: models.User = Depends(require_staff_or_admin),
    email=Depends(get_email_service),
    whatsapp=Depends(get_whatsapp_service),
):
    email_enabled = email.is_enabled()
    whatsapp_enabled = whatsapp.is_enabled()
    return {
        "email": {"enabled": email_enabled, "configured": email_enabled},
        "whatsapp": {"enabled": whatsapp_enabled, "configured": whatsapp_enabled},
    }
