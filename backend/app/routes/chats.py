from typing import List

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session

from app import models, schemas
from app.auth import require_approved, require_staff_or_admin
from app.database import get_db
from app.services import workflow
from app.services.notifications import Notifier, get_notifier
from app.services.transcript import render_transcript, transcript_filename

router = APIRouter()


def _get_chat_or_404(db: Session, chat_id: str) -> models.Chat:
    chat = db.get(models.Chat, chat_id)
    if not chat:
        raise HTTPException(status_code=404, detail="Chat not found")
    return chat


def _get_accessible_chat(db: Session, chat_id: str, user: models.User) -> models.Chat:
    chat = _get_chat_or_404(db, chat_id)
    if chat.booking is None:
        raise HTTPException(status_code=404, detail="Booking not found")
    workflow.assert_booking_access(chat.booking, user)
    return chat


@router.get("/booking/{booking_id}", response_model=schemas.ChatRead)
def get_chat_by_booking(
    booking_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_approved),
):
    chat = db.query(models.Chat).filter(models.Chat.booking_id == booking_id).first()
    if not chat:
        raise HTTPException(status_code=404, detail="Chat not found")
    workflow.assert_booking_access(chat.booking, current_user)
    return chat


@router.get("/{chat_id}", response_model=schemas.ChatRead)
def get_chat(
    chat_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_approved),
):
    return _get_accessible_chat(db, chat_id, current_user)


# ----------------------------
# Messages
# ----------------------------
@router.get("/{chat_id}/messages", response_model=List[schemas.MessageRead])
def list_messages(
    chat_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_approved),
):
    chat = _get_accessible_chat(db, chat_id, current_user)
    return workflow.visible_messages(db, chat, current_user)


@router.post("/{chat_id}/messages", response_model=schemas.MessageRead)
def post_message(
    chat_id: str,
    payload: schemas.MessageCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_approved),
    notifier: Notifier = Depends(get_notifier),
):
    chat = _get_accessible_chat(db, chat_id, current_user)
    events = []
    try:
        message = workflow.post_message(db, chat, current_user, payload, events, notifier)
        db.commit()
    except Exception:
        db.rollback()
        raise
    notifier.publish(events)
    db.refresh(message)
    return message


@router.post("/{chat_id}/close", response_model=schemas.ChatRead)
def close_chat(
    chat_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_staff_or_admin),
    notifier: Notifier = Depends(get_notifier),
):
    chat = _get_accessible_chat(db, chat_id, current_user)
    events = []
    try:
        workflow.close_chat(db, chat, events)
        db.commit()
    except Exception:
        db.rollback()
        raise
    notifier.publish(events)
    db.refresh(chat)
    return chat


@router.get("/{chat_id}/transcript")
def download_transcript(
    chat_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_approved),
):
    chat = _get_accessible_chat(db, chat_id, current_user)
    messages = workflow.visible_messages(db, chat, current_user)
    return PlainTextResponse(
        render_transcript(chat, chat.booking, messages),
        headers={"Content-Disposition": f'attachment; filename="{transcript_filename(chat.id)}"'},
    )
