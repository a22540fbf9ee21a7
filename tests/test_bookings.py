from app import models
from app.models import BookingStatus, UserRole

from conftest import count, fetch


def test_create_booking_creates_one_open_chat(client, customer, admin, booking, email_outbox, whatsapp_outbox):
    b, chat = booking["booking"], booking["chat"]
    assert b["status"] == "pending"
    assert b["customer_id"] == customer.id
    assert chat["booking_id"] == b["id"]
    assert chat["is_open"] is True
    assert count(models.Chat, models.Chat.booking_id == b["id"]) == 1

    assert count(models.Notification, models.Notification.user_id == admin.id,
                 models.Notification.title == "New Booking") == 1
    (confirmation,) = email_outbox.calls("send_booking_confirmation")
    assert confirmation[0] == customer.email
    assert confirmation[-1] == b["id"]
    assert whatsapp_outbox.calls("send_booking_confirmation")[0][0] == "+15550001111"


def test_create_booking_for_unknown_or_inactive_service(client, customer, service_id, db):
    resp = client.post("/bookings", json={"service_id": "missing"}, headers=customer.headers)
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Service not found"

    db.get(models.Service, service_id).is_active = False
    db.commit()
    db.close()
    resp = client.post("/bookings", json={"service_id": service_id}, headers=customer.headers)
    assert resp.status_code == 404


def test_listing_is_scoped_by_role(client, make_user, customer, staff, admin, booking):
    other = make_user(UserRole.CUSTOMER)
    booking_id = booking["booking"]["id"]

    assert [b["id"] for b in client.get("/bookings", headers=customer.headers).json()] == [booking_id]
    assert client.get("/bookings", headers=other.headers).json() == []
    assert client.get("/bookings", headers=staff.headers).json() == []
    assert len(client.get("/bookings", headers=admin.headers).json()) == 1

    client.post(f"/bookings/{booking_id}/assign", json={"staffIds": [staff.id]}, headers=admin.headers)
    assert [b["id"] for b in client.get("/bookings", headers=staff.headers).json()] == [booking_id]


def test_get_booking_checks_access(client, make_user, customer, staff, admin, booking):
    booking_id = booking["booking"]["id"]
    other = make_user(UserRole.CUSTOMER)

    assert client.get(f"/bookings/{booking_id}", headers=customer.headers).status_code == 200
    assert client.get(f"/bookings/{booking_id}", headers=admin.headers).status_code == 200
    resp = client.get(f"/bookings/{booking_id}", headers=other.headers)
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Access denied"
    assert client.get(f"/bookings/{booking_id}", headers=staff.headers).status_code == 403
    assert client.get("/bookings/nope", headers=admin.headers).status_code == 404


def test_assign_creates_tasks_and_sets_primary(client, admin, customer, staff, staff2, booking, email_outbox):
    booking_id = booking["booking"]["id"]
    resp = client.post(f"/bookings/{booking_id}/assign", json={"staff_ids": [staff.id, staff2.id]},
                       headers=admin.headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["assigned_staff_id"] == staff.id
    assert body["status"] == "confirmed"

    assert count(models.Task, models.Task.booking_id == booking_id) == 2
    for member in (staff, staff2):
        assert count(models.Notification, models.Notification.user_id == member.id,
                     models.Notification.title == "New Task Assigned") == 1
    assert count(models.Notification, models.Notification.user_id == customer.id,
                 models.Notification.title == "Staff Assigned") == 1
    assert sorted(c[0] for c in email_outbox.calls("send_staff_assignment")) == sorted([staff.email, staff2.email])

    staff_list = client.get(f"/bookings/{booking_id}/assigned-staff", headers=admin.headers).json()
    assert {s["id"] for s in staff_list} == {staff.id, staff2.id}
    assert all(s["task_status"] == "pending" for s in staff_list)


def test_assign_is_idempotent(client, admin, staff, booking):
    booking_id = booking["booking"]["id"]
    client.post(f"/bookings/{booking_id}/assign", json={"staff_id": staff.id}, headers=admin.headers)
    resp = client.post(f"/bookings/{booking_id}/assign", json={"staffIds": [staff.id, staff.id]},
                       headers=admin.headers)
    assert resp.status_code == 200
    assert count(models.Task, models.Task.booking_id == booking_id) == 1
    assert count(models.Notification, models.Notification.user_id == staff.id,
                 models.Notification.title == "New Task Assigned") == 1


def test_assign_does_not_replace_existing_primary(client, admin, staff, staff2, booking):
    booking_id = booking["booking"]["id"]
    client.post(f"/bookings/{booking_id}/assign", json={"staffIds": [staff.id]}, headers=admin.headers)
    body = client.post(f"/bookings/{booking_id}/assign", json={"staffIds": [staff2.id]},
                       headers=admin.headers).json()
    assert body["assigned_staff_id"] == staff.id


def test_assign_rejects_empty_unknown_and_non_staff(client, admin, customer, booking):
    booking_id = booking["booking"]["id"]

    resp = client.post("/bookings/missing/assign", json={"staffIds": []}, headers=admin.headers)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Please select at least one staff member"

    resp = client.post(f"/bookings/{booking_id}/assign", json={"staffIds": ["ghost"]}, headers=admin.headers)
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Staff member not found: ghost"

    resp = client.post(f"/bookings/{booking_id}/assign", json={"staffIds": [customer.id]}, headers=admin.headers)
    assert resp.status_code == 400
    assert resp.json()["detail"].startswith("Not a staff member")
    assert count(models.Task) == 0


def test_assign_requires_admin(client, customer, staff, booking):
    booking_id = booking["booking"]["id"]
    resp = client.post(f"/bookings/{booking_id}/assign", json={"staffIds": [staff.id]}, headers=customer.headers)
    assert resp.status_code == 403


def test_remove_primary_promotes_next_assignee(client, admin, staff, staff2, booking):
    booking_id = booking["booking"]["id"]
    client.post(f"/bookings/{booking_id}/assign", json={"staffIds": [staff.id, staff2.id]}, headers=admin.headers)

    resp = client.delete(f"/bookings/{booking_id}/staff/{staff.id}", headers=admin.headers)
    assert resp.status_code == 200
    assert fetch(models.Booking, booking_id).assigned_staff_id == staff2.id
    assert count(models.Task, models.Task.booking_id == booking_id, models.Task.staff_id == staff.id) == 0
    assert count(models.Notification, models.Notification.user_id == staff.id,
                 models.Notification.title == "Task Removed") == 1

    client.delete(f"/bookings/{booking_id}/staff/{staff2.id}", headers=admin.headers)
    assert fetch(models.Booking, booking_id).assigned_staff_id is None


def test_remove_non_primary_keeps_primary(client, admin, staff, staff2, booking):
    booking_id = booking["booking"]["id"]
    client.post(f"/bookings/{booking_id}/assign", json={"staffIds": [staff.id, staff2.id]}, headers=admin.headers)
    client.delete(f"/bookings/{booking_id}/staff/{staff2.id}", headers=admin.headers)
    assert fetch(models.Booking, booking_id).assigned_staff_id == staff.id


def test_remove_unassigned_staff_is_404(client, admin, staff, booking):
    booking_id = booking["booking"]["id"]
    resp = client.delete(f"/bookings/{booking_id}/staff/{staff.id}", headers=admin.headers)
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Staff is not assigned to this booking"


def test_status_update_notifies_customer_and_audits(client, admin, customer, booking, email_outbox):
    booking_id = booking["booking"]["id"]
    resp = client.patch(f"/bookings/{booking_id}/status", json={"status": "cancelled"}, headers=admin.headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"
    assert count(models.Notification, models.Notification.user_id == customer.id,
                 models.Notification.title == "Booking Updated") == 1
    assert email_outbox.calls("send_booking_status_update")[0][3] == "cancelled"
    assert count(models.AuditLog, models.AuditLog.action == "booking_status_update",
                 models.AuditLog.target_id == booking_id) == 1

    # permissive: any status may follow any status
    resp = client.patch(f"/bookings/{booking_id}/status", json={"status": "pending"}, headers=admin.headers)
    assert resp.json()["status"] == "pending"


def test_completing_booking_closes_chat(client, admin, booking):
    booking_id, chat_id = booking["booking"]["id"], booking["chat"]["id"]
    client.patch(f"/bookings/{booking_id}/status", json={"status": "completed"}, headers=admin.headers)
    chat = fetch(models.Chat, chat_id)
    assert chat.is_open is False
    assert chat.closed_at is not None


def test_invalid_status_value_is_400(client, admin, booking):
    resp = client.patch(f"/bookings/{booking['booking']['id']}/status", json={"status": "archived"},
                        headers=admin.headers)
    assert resp.status_code == 400


def test_export_csv(client, admin, customer, booking):
    resp = client.get("/bookings/export", headers=admin.headers)
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    assert "bookings-export-" in resp.headers["content-disposition"]
    lines = resp.text.split("\n")
    assert lines[0].startswith("Booking ID,Customer Name,Customer Email")
    assert len(lines) == 2
    assert booking["booking"]["id"] in lines[1]
    assert customer.email in lines[1]

    assert client.get("/bookings/export", headers=customer.headers).status_code == 403
