from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response
from sqlalchemy.orm import Session, joinedload

from app import models, schemas
from app.auth import require_admin, require_approved
from app.database import get_db
from app.services import workflow
from app.services.audit import record_audit
from app.services.export import bookings_to_csv, export_filename
from app.services.notifications import Notifier, get_notifier

router = APIRouter()


def _get_booking_or_404(db: Session, booking_id: str) -> models.Booking:
    booking = db.get(models.Booking, booking_id)
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    return booking


# ----------------------------
# Read
# ----------------------------
@router.get("", response_model=List[schemas.BookingRead])
def list_bookings(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_approved),
):
    return (
        workflow.bookings_visible_to(db, current_user)
        .options(
            joinedload(models.Booking.customer),
            joinedload(models.Booking.service),
            joinedload(models.Booking.assigned_staff),
            joinedload(models.Booking.chat),
        )
        .all()
    )


@router.get("/export")
def export_bookings(
    db: Session = Depends(get_db),
    _: models.User = Depends(require_admin),
):
    bookings = (
        db.query(models.Booking)
        .options(
            joinedload(models.Booking.customer),
            joinedload(models.Booking.service),
            joinedload(models.Booking.assigned_staff),
        )
        .order_by(models.Booking.created_at.desc())
        .all()
    )
    return Response(
        content=bookings_to_csv(bookings),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{export_filename()}"'},
    )


@router.get("/{booking_id}", response_model=schemas.BookingRead)
def get_booking(
    booking_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_approved),
):
    booking = _get_booking_or_404(db, booking_id)
    workflow.assert_booking_access(booking, current_user)
    return booking


@router.get("/{booking_id}/assigned-staff", response_model=List[schemas.AssignedStaffRead])
def get_assigned_staff(
    booking_id: str,
    db: Session = Depends(get_db),
    _: models.User = Depends(require_admin),
):
    booking = _get_booking_or_404(db, booking_id)
    result = []
    for task in booking.tasks:
        if task.staff is None:
            continue
        item = schemas.UserSimple.model_validate(task.staff).model_dump()
        result.append(schemas.AssignedStaffRead(**item, task_id=task.id, task_status=task.status))
    return result


# ----------------------------
# Write
# ----------------------------
@router.post("", response_model=schemas.BookingCreated)
def create_booking(
    payload: schemas.BookingCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_approved),
    notifier: Notifier = Depends(get_notifier),
):
    try:
        booking, chat = workflow.create_booking(db, current_user, payload, notifier)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(booking)
    db.refresh(chat)
    return {"booking": booking, "chat": chat}


@router.patch("/{booking_id}/status", response_model=schemas.BookingRead)
def update_booking_status(
    booking_id: str,
    payload: schemas.BookingStatusUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_admin),
    notifier: Notifier = Depends(get_notifier),
):
    booking = _get_booking_or_404(db, booking_id)
    previous = booking.status
    events = []
    try:
        workflow.update_booking_status(db, booking, payload.status, events, notifier)
        record_audit(
            db, "booking_status_update", actor=current_user, request=request,
            target_id=booking.id, target_type="booking",
            details={"from": previous.value, "to": payload.status.value},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    notifier.publish(events)
    db.refresh(booking)
    return booking


@router.post("/{booking_id}/assign", response_model=schemas.BookingRead)
def assign_staff(
    booking_id: str,
    payload: schemas.AssignStaffRequest,
    db: Session = Depends(get_db),
    _: models.User = Depends(require_admin),
    notifier: Notifier = Depends(get_notifier),
):
    staff_ids = payload.requested_ids
    if not staff_ids:
        raise HTTPException(status_code=400, detail="Please select at least one staff member")

    booking = _get_booking_or_404(db, booking_id)
    events = []
    try:
        workflow.assign_staff(db, booking, staff_ids, events, notifier)
        db.commit()
    except Exception:
        db.rollback()
        raise
    notifier.publish(events)
    db.refresh(booking)
    return booking


@router.delete("/{booking_id}/staff/{staff_id}")
def remove_staff(
    booking_id: str,
    staff_id: str,
    db: Session = Depends(get_db),
    _: models.User = Depends(require_admin),
    notifier: Notifier = Depends(get_notifier),
):
    booking = _get_booking_or_404(db, booking_id)
    try:
        workflow.remove_staff(db, booking, staff_id, notifier)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return {"message": "Staff removed from booking"}
