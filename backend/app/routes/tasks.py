from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session, joinedload

from app import models, schemas
from app.auth import require_admin, require_staff_or_admin
from app.database import get_db
from app.services import workflow
from app.services.notifications import Notifier, get_notifier

router = APIRouter()


def _get_task_or_404(db: Session, task_id: str) -> models.Task:
    task = db.get(models.Task, task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


@router.get("", response_model=List[schemas.TaskWithDetails])
def list_tasks(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_staff_or_admin),
):
    q = db.query(models.Task).options(
        joinedload(models.Task.staff),
        joinedload(models.Task.booking).joinedload(models.Booking.service),
        joinedload(models.Task.booking).joinedload(models.Booking.customer),
    )
    if current_user.role != models.UserRole.ADMIN:
        q = q.filter(models.Task.staff_id == current_user.id)
    return q.order_by(models.Task.created_at.desc()).all()


@router.post("", response_model=schemas.TaskRead)
def create_task(
    payload: schemas.TaskCreate,
    db: Session = Depends(get_db),
    _: models.User = Depends(require_admin),
    notifier: Notifier = Depends(get_notifier),
):
    booking = None
    if payload.booking_id:
        booking = db.get(models.Booking, payload.booking_id)
        if not booking:
            raise HTTPException(status_code=404, detail="Booking not found")

    staff = workflow.load_staff(db, payload.requested_ids)
    label = payload.title or payload.description[:50]
    tasks = []
    try:
        for sid in payload.requested_ids:
            task, created = workflow.create_task_for_staff(
                db, booking, sid, payload.description, title=payload.title, attachments=payload.attachments,
            )
            tasks.append(task)
            if not created:
                continue
            notifier.notify(sid, models.NotificationType.TASK, "New Task Assigned",
                            f"You have been assigned a new task: {label}")
            if booking is not None:
                notifier.task_assignment(staff[sid], payload.description, booking)
        db.commit()
    except Exception:
        db.rollback()
        raise

    first = tasks[0]
    db.refresh(first)
    return first


@router.patch("/{task_id}", response_model=schemas.TaskRead)
def update_task_status(
    task_id: str,
    payload: schemas.TaskStatusUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_staff_or_admin),
    notifier: Notifier = Depends(get_notifier),
):
    task = _get_task_or_404(db, task_id)
    if current_user.role == models.UserRole.STAFF and task.staff_id != current_user.id:
        raise HTTPException(status_code=403, detail="Access denied")

    events = []
    try:
        workflow.transition_task(db, task, payload.status, events)
        db.commit()
    except Exception:
        db.rollback()
        raise
    notifier.publish(events)
    db.refresh(task)
    return task
