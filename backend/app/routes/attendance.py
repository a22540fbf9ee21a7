from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session, joinedload

from app import models, schemas
from app.auth import require_admin, require_staff
from app.database import get_db
from app.models import utcnow
from app.services.audit import record_audit

router = APIRouter()
admin_router = APIRouter()


def _today() -> date:
    return utcnow().date()


def _today_record(db: Session, staff_id: str) -> Optional[models.Attendance]:
    return (
        db.query(models.Attendance)
        .filter(models.Attendance.staff_id == staff_id, models.Attendance.date == _today())
        .first()
    )


# ----------------------------
# Staff
# ----------------------------
@router.post("/clock-in", response_model=schemas.AttendanceRead, status_code=201)
def clock_in(
    payload: schemas.ClockEvent,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_staff),
):
    existing = _today_record(db, current_user.id)
    if existing and existing.clock_in_time:
        raise HTTPException(status_code=400, detail="Already clocked in today")

    record = existing or models.Attendance(staff_id=current_user.id, date=_today())
    record.clock_in_time = utcnow()
    record.clock_in_latitude = payload.latitude
    record.clock_in_longitude = payload.longitude
    record.clock_in_address = payload.address
    record.status = models.AttendanceStatus.PRESENT
    try:
        db.add(record)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(record)
    return record


@router.post("/clock-out", response_model=schemas.AttendanceRead)
def clock_out(
    payload: schemas.ClockEvent,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_staff),
):
    record = _today_record(db, current_user.id)
    if not record or not record.clock_in_time:
        raise HTTPException(status_code=400, detail="No clock-in record found for today")
    if record.clock_out_time:
        raise HTTPException(status_code=400, detail="Already clocked out today")

    record.clock_out_time = utcnow()
    record.clock_out_latitude = payload.latitude
    record.clock_out_longitude = payload.longitude
    record.clock_out_address = payload.address
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(record)
    return record


@router.get("/my", response_model=List[schemas.AttendanceRead])
def my_attendance(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_staff),
):
    return (
        db.query(models.Attendance)
        .filter(models.Attendance.staff_id == current_user.id)
        .order_by(models.Attendance.date.desc())
        .all()
    )


@router.get("/today", response_model=Optional[schemas.AttendanceRead])
def today_attendance(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_staff),
):
    return _today_record(db, current_user.id)


# ----------------------------
# Admin
# ----------------------------
@admin_router.get("", response_model=List[schemas.AttendanceRead])
def list_attendance(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    _: models.User = Depends(require_admin),
):
    q = db.query(models.Attendance).options(joinedload(models.Attendance.staff))
    if start_date:
        q = q.filter(models.Attendance.date >= start_date)
    if end_date:
        q = q.filter(models.Attendance.date <= end_date)
    return q.order_by(models.Attendance.date.desc()).all()


@admin_router.post("", response_model=schemas.AttendanceRead, status_code=201)
def create_attendance(
    payload: schemas.AttendanceAdminCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_admin),
):
    staff = db.get(models.User, payload.staff_id)
    if not staff or staff.role != models.UserRole.STAFF:
        raise HTTPException(status_code=404, detail="Staff member not found")

    record = models.Attendance(**payload.model_dump())
    try:
        db.add(record)
        db.flush()
        record_audit(
            db, "attendance_clock_in", actor=current_user, request=request,
            target_id=record.id, target_type="attendance",
            details={"staff_id": payload.staff_id, "date": payload.date.isoformat(), "created_by_admin": True},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(record)
    return record


@admin_router.put("/{attendance_id}", response_model=schemas.AttendanceRead)
def update_attendance(
    attendance_id: str,
    payload: schemas.AttendanceAdminUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_admin),
):
    record = db.get(models.Attendance, attendance_id)
    if not record:
        raise HTTPException(status_code=404, detail="Attendance record not found")

    updates = payload.model_dump(exclude_unset=True)
    if updates.get("status") is None:
        updates.pop("status", None)
    for field, value in updates.items():
        setattr(record, field, value)

    try:
        record_audit(
            db, "attendance_clock_out", actor=current_user, request=request,
            target_id=record.id, target_type="attendance",
            details={"updates": payload.model_dump(mode="json", exclude_unset=True), "edited_by_admin": True},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(record)
    return record
