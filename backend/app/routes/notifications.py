from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app import models, schemas
from app.auth import get_current_user
from app.database import get_db

router = APIRouter()


def _own_notifications(db: Session, user: models.User):
    return (
        db.query(models.Notification)
        .filter(models.Notification.user_id == user.id)
        .order_by(models.Notification.created_at.desc())
    )


@router.get("", response_model=List[schemas.NotificationRead])
def list_notifications(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    return _own_notifications(db, current_user).all()


@router.get("/broadcasts", response_model=List[schemas.NotificationRead])
def list_broadcasts(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    return (
        _own_notifications(db, current_user)
        .filter(models.Notification.type == models.NotificationType.BROADCAST)
        .all()
    )


@router.get("/unread-broadcasts", response_model=List[schemas.NotificationRead])
def list_unread_broadcasts(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    return (
        _own_notifications(db, current_user)
        .filter(
            models.Notification.type == models.NotificationType.BROADCAST,
            models.Notification.read.is_(False),
        )
        .all()
    )


@router.patch("/{notification_id}/read", response_model=schemas.NotificationRead)
def mark_read(
    notification_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    item = db.get(models.Notification, notification_id)
    # someone else's notification is reported as missing
    if not item or item.user_id != current_user.id:
        raise HTTPException(status_code=404, detail="Notification not found")

    item.read = True
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(item)
    return item


@router.post("/mark-all-read")
def mark_all_read(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    try:
        updated = (
            db.query(models.Notification)
            .filter(models.Notification.user_id == current_user.id, models.Notification.read.is_(False))
            .update({models.Notification.read: True}, synchronize_session=False)
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    return {"success": True, "updated": updated}
