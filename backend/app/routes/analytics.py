from collections import Counter

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session, joinedload

from app import models
from app.auth import require_admin
from app.database import get_db
from app.models import BookingStatus, TaskStatus

router = APIRouter()


def month_label(dt) -> str:
    """'Jan 25'"""
    return f"{dt:%b %y}"


@router.get("/overview")
def overview(db: Session = Depends(get_db), _: models.User = Depends(require_admin)):
    bookings = Counter(s for (s,) in db.query(models.Booking.status))
    users = db.query(models.User.role, models.User.approved).all()
    tasks = Counter(s for (s,) in db.query(models.Task.status))
    services = db.query(models.Service.is_active).all()

    total_bookings = sum(bookings.values())
    closed = bookings[BookingStatus.COMPLETED] + bookings[BookingStatus.CANCELLED]
    return {
        "bookings": {
            "total": total_bookings,
            "completed": bookings[BookingStatus.COMPLETED],
            "active": total_bookings - closed,
            "cancelled": bookings[BookingStatus.CANCELLED],
        },
        "users": {
            "total": len(users),
            "customers": sum(1 for role, _approved in users if role == models.UserRole.CUSTOMER),
            "staff": sum(1 for role, _approved in users if role == models.UserRole.STAFF),
            "admins": sum(1 for role, _approved in users if role == models.UserRole.ADMIN),
            "pending_approvals": sum(1 for _role, approved in users if not approved),
        },
        "tasks": {
            "total": sum(tasks.values()),
            "completed": tasks[TaskStatus.COMPLETED],
            "pending": tasks[TaskStatus.PENDING],
            "in_progress": tasks[TaskStatus.IN_PROGRESS],
        },
        "services": {
            "total": len(services),
            "active": sum(1 for (active,) in services if active),
        },
    }


@router.get("/bookings")
def booking_analytics(db: Session = Depends(get_db), _: models.User = Depends(require_admin)):
    bookings = db.query(models.Booking).options(joinedload(models.Booking.service)).all()

    by_status = Counter()
    by_category = Counter()
    by_month = Counter()
    month_keys = {}
    for b in bookings:
        by_status[b.status.value] += 1
        category = b.service.category.value if b.service and b.service.category else "Uncategorized"
        by_category[category] += 1
        label = month_label(b.created_at)
        by_month[label] += 1
        month_keys[label] = (b.created_at.year, b.created_at.month)

    return {
        "status_data": [{"name": k, "value": v} for k, v in by_status.items()],
        "category_data": [{"name": k, "value": v} for k, v in by_category.items()],
        "trend_data": [
            {"month": label, "count": by_month[label]}
            for label in sorted(by_month, key=lambda m: month_keys[m])
        ],
    }


@router.get("/staff")
def staff_performance(db: Session = Depends(get_db), _: models.User = Depends(require_admin)):
    staff = (
        db.query(models.User)
        .filter(models.User.role == models.UserRole.STAFF)
        .order_by(models.User.name.asc())
        .all()
    )
    counts = Counter((sid, status) for sid, status in db.query(models.Task.staff_id, models.Task.status))

    result = []
    for member in staff:
        completed = counts[(member.id, TaskStatus.COMPLETED)]
        pending = counts[(member.id, TaskStatus.PENDING)]
        in_progress = counts[(member.id, TaskStatus.IN_PROGRESS)]
        total = completed + pending + in_progress
        result.append({
            "id": member.id,
            "name": member.name,
            "email": member.email,
            "total_tasks": total,
            "completed": completed,
            "pending": pending,
            "in_progress": in_progress,
            # half-up rounding
            "completion_rate": int(completed * 100 / total + 0.5) if total else 0,
        })
    return result
