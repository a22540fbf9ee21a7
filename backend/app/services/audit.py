import logging
from typing import Any, Optional

from fastapi import Request
from sqlalchemy.orm import Session

from app import models

logger = logging.getLogger("audit")


def client_ip(request: Optional[Request]) -> Optional[str]:
    if request is None:
        return None
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def record_audit(
    db: Session,
    action: str,
    actor: Optional[models.User] = None,
    request: Optional[Request] = None,
    target_id: Optional[str] = None,
    target_type: Optional[str] = None,
    details: Optional[Any] = None,
) -> Optional[models.AuditLog]:
    """Best effort: a failing audit write is logged and skipped, the caller's transaction survives."""
    role = None
    if actor is not None:
        role = actor.role.value if hasattr(actor.role, "value") else str(actor.role)
    try:
        with db.begin_nested():
            entry = models.AuditLog(
                action=action,
                actor_id=actor.id if actor else None,
                actor_email=actor.email if actor else None,
                actor_role=role,
                target_id=target_id,
                target_type=target_type,
                details=details,
                ip_address=client_ip(request),
                user_agent=request.headers.get("user-agent") if request is not None else None,
            )
            db.add(entry)
        return entry
    except Exception as e:
        logger.warning("[Audit] Failed to record %r: %s", action, e)
        return None
