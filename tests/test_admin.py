from app import models
from app.models import UserRole

from conftest import count, fetch


def test_admin_routes_require_admin(client, customer, staff):
    for account in (customer, staff):
        assert client.get("/admin/users", headers=account.headers).status_code == 403


def test_list_users_and_staff(client, admin, customer, staff):
    users = client.get("/admin/users", headers=admin.headers).json()
    assert {u["id"] for u in users} == {admin.id, customer.id, staff.id}
    assert [u["id"] for u in client.get("/admin/users/staff", headers=admin.headers).json()] == [staff.id]


def test_approve_user(client, admin, make_user, email_outbox):
    pending = make_user(UserRole.STAFF, approved=False)
    resp = client.post(f"/admin/users/{pending.id}/approve", headers=admin.headers)
    assert resp.status_code == 200
    assert resp.json()["approved"] is True
    assert count(models.Notification, models.Notification.user_id == pending.id,
                 models.Notification.title == "Account Approved") == 1
    assert email_outbox.calls("send_user_approval") == [(pending.email, pending.name)]
    assert count(models.AuditLog, models.AuditLog.action == "user_approve",
                 models.AuditLog.target_id == pending.id) == 1
    assert client.post("/admin/users/missing/approve", headers=admin.headers).status_code == 404


def test_update_user(client, admin, customer, staff):
    resp = client.patch(f"/admin/users/{staff.id}", headers=admin.headers,
                        json={"leave_days_quota": 25, "name": "Sam S."})
    assert resp.status_code == 200
    assert resp.json()["leave_days_quota"] == 25
    assert resp.json()["name"] == "Sam S."

    resp = client.patch(f"/admin/users/{staff.id}", headers=admin.headers, json={"email": customer.email})
    assert resp.status_code == 400


def test_delete_user_removes_their_bookings(client, admin, customer, staff, booking):
    booking_id = booking["booking"]["id"]
    client.post(f"/bookings/{booking_id}/assign", json={"staffIds": [staff.id]}, headers=admin.headers)

    resp = client.delete(f"/admin/users/{customer.id}", headers=admin.headers)
    assert resp.status_code == 200
    assert fetch(models.User, customer.id) is None
    assert fetch(models.Booking, booking_id) is None
    assert count(models.Task) == 0
    assert count(models.AuditLog, models.AuditLog.action == "user_delete") == 1


def test_delete_staff_clears_primary_assignment(client, admin, staff, booking):
    booking_id = booking["booking"]["id"]
    client.post(f"/bookings/{booking_id}/assign", json={"staffIds": [staff.id]}, headers=admin.headers)
    client.delete(f"/admin/users/{staff.id}", headers=admin.headers)
    assert fetch(models.Booking, booking_id).assigned_staff_id is None


def test_delete_primary_staff_promotes_remaining_assignee(client, admin, staff, staff2, booking):
    booking_id = booking["booking"]["id"]
    resp = client.post(f"/bookings/{booking_id}/assign", json={"staffIds": [staff.id, staff2.id]},
                       headers=admin.headers)
    assert resp.status_code == 200
    assert fetch(models.Booking, booking_id).assigned_staff_id == staff.id

    assert client.delete(f"/admin/users/{staff.id}", headers=admin.headers).status_code == 200

    assert fetch(models.Booking, booking_id).assigned_staff_id == staff2.id
    assert count(models.Task, models.Task.booking_id == booking_id) == 1
    staff_ids = [s["id"] for s in client.get(f"/bookings/{booking_id}/assigned-staff", headers=admin.headers).json()]
    assert staff_ids == [staff2.id]


def test_cannot_delete_self(client, admin):
    resp = client.delete(f"/admin/users/{admin.id}", headers=admin.headers)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Cannot delete your own account"

    resp = client.post("/admin/users/bulk-delete", json={"userIds": [admin.id]}, headers=admin.headers)
    assert resp.status_code == 400


def test_bulk_delete_is_all_or_nothing(client, admin, customer, staff):
    resp = client.post("/admin/users/bulk-delete", json={"userIds": [customer.id, "ghost"]}, headers=admin.headers)
    assert resp.status_code == 404
    assert fetch(models.User, customer.id) is not None

    resp = client.post("/admin/users/bulk-delete", json={"user_ids": [customer.id, staff.id]}, headers=admin.headers)
    assert resp.status_code == 200
    assert resp.json()["count"] == 2
    assert count(models.User) == 1


def test_service_catalog_admin(client, admin, customer):
    resp = client.post("/services", headers=admin.headers, json={
        "name": "Malware Cleanup", "description": "Remove malware and harden the machine", "category": "security",
    })
    assert resp.status_code == 200
    service_id = resp.json()["id"]
    assert client.post("/services", headers=customer.headers,
                       json={"name": "x", "description": "y"}).status_code == 403

    client.patch(f"/services/{service_id}", headers=admin.headers, json={"is_active": False})
    assert client.get(f"/services/{service_id}").status_code == 404
    assert client.get("/services").json() == []
    assert [s["id"] for s in client.get("/admin/services", headers=admin.headers).json()] == [service_id]


def test_service_filters(client, service_id):
    assert len(client.get("/services", params={"category": "network"}).json()) == 1
    assert client.get("/services", params={"category": "cloud"}).json() == []
    assert len(client.get("/services", params={"search": "office"}).json()) == 1
    assert "network" in client.get("/services/categories").json()


def test_notification_settings_update_invalidates_cache(client, admin):
    from app.services.notifications import get_channel_config
    from app.main import app

    invalidated = []

    class Provider:
        def invalidate(self, channel=None):
            invalidated.append(channel)

    app.dependency_overrides[get_channel_config] = lambda: Provider()

    assert client.get("/admin/notification-settings/email", headers=admin.headers).json() == {
        "type": "email", "enabled": False, "config": None,
    }
    resp = client.put("/admin/notification-settings/email", headers=admin.headers, json={
        "enabled": True, "config": {"host": "smtp.acme.io", "port": 587, "user": "u", "pass": "p", "from": "desk@acme.io"},
    })
    assert resp.status_code == 200
    assert resp.json()["enabled"] is True
    assert invalidated == [models.ChannelType.EMAIL]

    settings = client.get("/admin/notification-settings", headers=admin.headers).json()
    assert [(s["type"], s["enabled"]) for s in settings] == [("email", True), ("whatsapp", False)]


def test_audit_log_filters(client, admin, customer):
    from conftest import PASSWORD

    client.post("/auth/login", json={"email": customer.email, "password": PASSWORD})
    client.post("/auth/login", json={"email": admin.email, "password": PASSWORD})

    page = client.get("/admin/audit-logs", headers=admin.headers).json()
    assert page["pagination"] == {"total": 2, "limit": 50, "offset": 0}

    page = client.get("/admin/audit-logs", params={"actor_role": "customer"}, headers=admin.headers).json()
    assert [log["actor_id"] for log in page["logs"]] == [customer.id]

    page = client.get("/admin/audit-logs", params={"limit": 1, "offset": 1}, headers=admin.headers).json()
    assert len(page["logs"]) == 1
    assert page["pagination"]["total"] == 2


def test_system_status(client, staff, customer, email_outbox, whatsapp_outbox):
    whatsapp_outbox.enabled = False
    resp = client.get("/system/status", headers=staff.headers)
    assert resp.json() == {
        "email": {"enabled": True, "configured": True},
        "whatsapp": {"enabled": False, "configured": False},
    }
    assert client.get("/system/status", headers=customer.headers).status_code == 403
