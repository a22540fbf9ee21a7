from datetime import datetime, timezone
from typing import Iterable, Optional

from app import models

RULE = "=" * 60


def format_timestamp(dt: datetime) -> str:
    """'Jan 5, 2025, 03:07 PM'"""
    return f"{dt:%b} {dt.day}, {dt.year}, {dt:%I:%M %p}"


def _message_header(msg: models.Message) -> str:
    sender = msg.sender.name if msg.sender is not None else "Unknown"
    tags = ""
    if msg.is_private:
        tags += " [PRIVATE]"
    if msg.is_quotation:
        tags += f" [QUOTATION: ${msg.quotation_amount}]"
    if msg.attachment_url:
        tags += f" [ATTACHMENT: {msg.attachment_type or 'file'}]"
    return f"[{format_timestamp(msg.created_at)}] {sender}{tags}"


def render_transcript(chat: models.Chat, booking: models.Booking, messages: Iterable[models.Message],
                      generated_at: Optional[datetime] = None) -> str:
    """Plain-text transcript of the given (already visibility-filtered, chronological) messages."""
    generated_at = generated_at or datetime.now(timezone.utc)
    out = [
        "CHAT TRANSCRIPT\n",
        f"{RULE}\n\n",
        f"Booking ID: {booking.id}\n",
        f"Customer: {booking.customer.name} ({booking.customer.email})\n",
        f"Service: {booking.service.name}\n",
        f"Status: {'Open' if chat.is_open else 'Closed'}\n",
        f"Generated: {format_timestamp(generated_at)}\n\n",
        f"{RULE}\n",
        "MESSAGES\n",
        f"{RULE}\n\n",
    ]

    messages = list(messages)
    if not messages:
        out.append("No messages in this chat.\n")
    for msg in messages:
        out.append(f"{_message_header(msg)}\n")
        out.append(f"{msg.content}\n\n")

    out.append(f"{RULE}\n")
    out.append("END OF TRANSCRIPT\n")
    return "".join(out)


def transcript_filename(chat_id: str, on: Optional[datetime] = None) -> str:
    on = on or datetime.now(timezone.utc)
    return f"chat-transcript-{chat_id[:8]}-{on:%Y-%m-%d}.txt"
