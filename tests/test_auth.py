from app import models
from app.models import UserRole

from conftest import PASSWORD, count, fetch


def test_register_customer_is_pending_and_admins_are_told(client, admin):
    resp = client.post("/auth/register", json={
        "email": "New.User@Acme.io", "password": "hunter22", "name": "New User",
    })
    assert resp.status_code == 200
    body = resp.json()
    assert body["pending_approval"] is True
    assert body["token"] is None
    assert body["user"]["email"] == "new.user@acme.io"
    assert body["user"]["approved"] is False

    assert count(models.Notification, models.Notification.user_id == admin.id,
                 models.Notification.title == "New User Registration") == 1


def test_register_admin_is_auto_approved_with_token(client):
    resp = client.post("/auth/register", json={
        "email": "boss@acme.io", "password": "hunter22", "name": "Boss", "role": "admin",
    })
    assert resp.status_code == 200
    body = resp.json()
    assert body["pending_approval"] is False
    assert body["token"]
    assert "access_token=" in resp.headers["set-cookie"]


def test_register_duplicate_email(client, customer):
    resp = client.post("/auth/register", json={
        "email": customer.email.upper(), "password": "hunter22", "name": "Dup",
    })
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Email already registered"


def test_register_validation_errors_are_400_with_first_message(client):
    resp = client.post("/auth/register", json={
        "email": "x@acme.io", "password": "hunter22", "confirm_password": "other22", "name": "X",
    })
    assert resp.status_code == 400
    assert resp.json() == {"detail": "Passwords don't match"}

    resp = client.post("/auth/register", json={"email": "not-an-email", "password": "hunter22", "name": "X"})
    assert resp.status_code == 400
    assert isinstance(resp.json()["detail"], str)


def test_login_success_records_audit(client, customer):
    resp = client.post("/auth/login", json={"email": customer.email, "password": PASSWORD})
    assert resp.status_code == 200
    body = resp.json()
    assert body["user"]["id"] == customer.id
    assert body["token"]

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {body['token']}"})
    assert me.status_code == 200
    assert me.json()["email"] == customer.email
    assert count(models.AuditLog, models.AuditLog.action == "login", models.AuditLog.actor_id == customer.id) == 1


def test_login_wrong_password(client, customer):
    resp = client.post("/auth/login", json={"email": customer.email, "password": "wrong-pass"})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid credentials"


def test_login_pending_user_is_forbidden(client, make_user):
    pending = make_user(UserRole.CUSTOMER, approved=False)
    resp = client.post("/auth/login", json={"email": pending.email, "password": PASSWORD})
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Account pending approval"


def test_missing_or_bad_token_is_401(client):
    assert client.get("/auth/me").status_code == 401
    resp = client.get("/auth/me", headers={"Authorization": "Bearer garbage"})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid token"


def test_unapproved_user_cannot_reach_bookings(client, make_user):
    pending = make_user(UserRole.CUSTOMER, approved=False)
    resp = client.get("/bookings", headers=pending.headers)
    assert resp.status_code == 403


def test_change_password(client, customer):
    resp = client.post("/auth/change-password", headers=customer.headers,
                       json={"current_password": "nope", "new_password": "brandnew1"})
    assert resp.status_code == 401

    resp = client.post("/auth/change-password", headers=customer.headers,
                       json={"current_password": PASSWORD, "new_password": "brandnew1"})
    assert resp.status_code == 200
    assert client.post("/auth/login", json={"email": customer.email, "password": "brandnew1"}).status_code == 200


def test_update_profile_and_logout(client, customer):
    resp = client.put("/auth/profile", headers=customer.headers, json={"name": "Carl C.", "phone": "+15559990000"})
    assert resp.status_code == 200
    assert resp.json()["user"]["name"] == "Carl C."
    assert fetch(models.User, customer.id).phone == "+15559990000"

    resp = client.post("/auth/logout", headers=customer.headers)
    assert resp.json() == {"success": True, "message": "Logged out"}
