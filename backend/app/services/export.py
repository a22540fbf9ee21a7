import csv
from datetime import datetime, timezone
from io import StringIO
from typing import Iterable, Optional

from app import models

BOOKING_CSV_HEADERS = [
    "Booking ID",
    "Customer Name",
    "Customer Email",
    "Service Name",
    "Service Category",
    "Status",
    "Scheduled Date",
    "Notes",
    "Assigned Staff",
    "Created Date",
]


def _day(dt: Optional[datetime]) -> str:
    return dt.strftime("%Y-%m-%d") if dt else ""


def booking_row(booking: models.Booking) -> list:
    return [
        booking.id,
        booking.customer.name,
        booking.customer.email,
        booking.service.name,
        booking.service.category.value if booking.service.category else "",
        booking.status.value,
        _day(booking.scheduled_date),
        booking.notes or "",
        booking.assigned_staff.name if booking.assigned_staff else "",
        _day(booking.created_at),
    ]


def bookings_to_csv(bookings: Iterable[models.Booking]) -> str:
    output = StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow(BOOKING_CSV_HEADERS)
    for booking in bookings:
        writer.writerow(booking_row(booking))
    # no trailing newline after the last row
    return output.getvalue()[:-1]


def export_filename(on: Optional[datetime] = None) -> str:
    on = on or datetime.now(timezone.utc)
    return f"bookings-export-{on:%Y-%m-%d}.csv"
