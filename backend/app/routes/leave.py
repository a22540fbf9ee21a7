from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session, joinedload

from app import models, schemas
from app.auth import require_admin, require_staff
from app.database import get_db
from app.models import LeaveStatus, LeaveType, utcnow
from app.services.notifications import Notifier, get_notifier

router = APIRouter()
admin_router = APIRouter()


def leave_days(start, end) -> int:
    """Inclusive calendar days between two dates."""
    return (end - start).days + 1


def _quota(user: models.User) -> schemas.LeaveQuota:
    return schemas.LeaveQuota(
        leave_days_quota=user.leave_days_quota,
        leave_days_used=user.leave_days_used,
        leave_days_remaining=user.leave_days_quota - user.leave_days_used,
    )


# ----------------------------
# Staff
# ----------------------------
@router.get("/leave-quota", response_model=schemas.LeaveQuota)
def get_leave_quota(current_user: models.User = Depends(require_staff)):
    return _quota(current_user)


@router.post("/leave-requests", response_model=schemas.LeaveRequestRead, status_code=201)
def create_leave_request(
    payload: schemas.LeaveRequestCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_staff),
    notifier: Notifier = Depends(get_notifier),
):
    if payload.start_date > payload.end_date:
        raise HTTPException(status_code=400, detail="End date must be after start date")

    requested = leave_days(payload.start_date, payload.end_date)
    if payload.leave_type != LeaveType.UNPAID:
        remaining = current_user.leave_days_quota - current_user.leave_days_used
        if remaining <= 0:
            raise HTTPException(
                status_code=400,
                detail="Your leave days quota has been exhausted. You can only request unpaid leave.",
            )
        if requested > remaining:
            raise HTTPException(
                status_code=400,
                detail=f"You only have {remaining} leave days remaining. "
                       f"Please reduce your request or select unpaid leave.",
            )

    item = models.LeaveRequest(
        staff_id=current_user.id,
        leave_type=payload.leave_type,
        start_date=payload.start_date,
        end_date=payload.end_date,
        reason=payload.reason or None,
    )
    try:
        db.add(item)
        db.flush()
        notifier.notify_role(
            models.UserRole.ADMIN,
            models.NotificationType.TASK,
            "New Leave Request",
            f"{current_user.name} has requested {payload.leave_type.value} leave "
            f"from {payload.start_date.isoformat()} to {payload.end_date.isoformat()}",
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(item)
    return item


@router.get("/leave-requests/my", response_model=List[schemas.LeaveRequestRead])
def my_leave_requests(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_staff),
):
    return (
        db.query(models.LeaveRequest)
        .filter(models.LeaveRequest.staff_id == current_user.id)
        .order_by(models.LeaveRequest.created_at.desc())
        .all()
    )


# ----------------------------
# Admin
# ----------------------------
@admin_router.get("", response_model=List[schemas.LeaveRequestRead])
def list_leave_requests(
    db: Session = Depends(get_db),
    _: models.User = Depends(require_admin),
):
    return (
        db.query(models.LeaveRequest)
        .options(joinedload(models.LeaveRequest.staff))
        .order_by(models.LeaveRequest.created_at.desc())
        .all()
    )


@admin_router.patch("/{request_id}/status", response_model=schemas.LeaveRequestRead)
def update_leave_status(
    request_id: str,
    payload: schemas.LeaveStatusUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_admin),
    notifier: Notifier = Depends(get_notifier),
):
    if payload.status not in (LeaveStatus.APPROVED, LeaveStatus.REJECTED):
        raise HTTPException(status_code=400, detail="Status must be 'approved' or 'rejected'")

    item = db.get(models.LeaveRequest, request_id)
    if not item:
        raise HTTPException(status_code=404, detail="Leave request not found")
    if item.status != LeaveStatus.PENDING:
        raise HTTPException(status_code=400, detail="Can only update pending leave requests")

    if payload.status == LeaveStatus.APPROVED and item.staff is not None:
        item.staff.leave_days_used = item.staff.leave_days_used + item.days

    item.status = payload.status
    item.reviewed_by_id = current_user.id
    item.reviewed_at = utcnow()
    item.admin_notes = payload.admin_notes

    note = f". Note: {payload.admin_notes}" if payload.admin_notes else ""
    try:
        notifier.notify(
            item.staff_id,
            models.NotificationType.TASK,
            f"Leave Request {'Approved' if payload.status == LeaveStatus.APPROVED else 'Rejected'}",
            f"Your {item.leave_type.value} leave request from {item.start_date.isoformat()} "
            f"to {item.end_date.isoformat()} has been {payload.status.value}{note}",
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(item)
    return item
