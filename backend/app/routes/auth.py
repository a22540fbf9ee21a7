from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app import models, schemas
from app.auth import get_current_user, hash_password, token_for_user, verify_password
from app.config import settings
from app.database import get_db
from app.services.audit import record_audit
from app.services.notifications import Notifier, get_notifier

router = APIRouter()


def _with_cookie(payload: dict, token: str) -> JSONResponse:
    resp = JSONResponse(payload)
    resp.set_cookie(
        "access_token",
        token,
        httponly=True,
        secure=True,
        samesite="none",
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )
    return resp


def _user_json(user: models.User) -> dict:
    return schemas.UserRead.model_validate(user).model_dump(mode="json")


# ----------------------------------
# Register
# ----------------------------------
@router.post("/register", response_model=schemas.AuthResponse)
def register(
    payload: schemas.RegisterRequest,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    email = payload.email.lower()
    if db.query(models.User).filter(models.User.email == email).first():
        raise HTTPException(status_code=400, detail="Email already registered")

    is_admin = payload.role == models.UserRole.ADMIN
    user = models.User(
        email=email,
        hashed_password=hash_password(payload.password),
        name=payload.name,
        phone=payload.phone,
        role=payload.role,
        approved=is_admin,
    )
    try:
        db.add(user)
        db.flush()
        if not is_admin:
            notifier.notify_role(
                models.UserRole.ADMIN,
                models.NotificationType.APPROVAL,
                "New User Registration",
                f"{user.name} ({user.email}) has registered and awaits approval.",
            )
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(user)

    if not is_admin:
        return schemas.AuthResponse(
            user=schemas.UserRead.model_validate(user),
            message="Registration successful. Please wait for admin approval.",
            pending_approval=True,
        )
    token = token_for_user(user)
    return _with_cookie({"user": _user_json(user), "token": token, "pending_approval": False}, token)


# ----------------------------------
# Login / logout
# ----------------------------------
@router.post("/login", response_model=schemas.AuthResponse)
def login(payload: schemas.LoginRequest, request: Request, db: Session = Depends(get_db)):
    user = db.query(models.User).filter(models.User.email == payload.email.lower()).first()
    if not user or not verify_password(payload.password, user.hashed_password):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    if not user.approved and user.role != models.UserRole.ADMIN:
        raise HTTPException(status_code=403, detail="Account pending approval")

    token = token_for_user(user)
    record_audit(db, "login", actor=user, request=request)
    db.commit()

    return _with_cookie({"user": _user_json(user), "token": token, "pending_approval": False}, token)


@router.post("/logout")
def logout(
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    record_audit(db, "logout", actor=current_user, request=request)
    db.commit()

    resp = JSONResponse({"success": True, "message": "Logged out"})
    resp.delete_cookie(
        "access_token",
        httponly=True,
        secure=True,
        samesite="none",
    )
    return resp


# ----------------------------------
# Own account
# ----------------------------------
@router.get("/me", response_model=schemas.UserRead)
def get_profile(current_user: models.User = Depends(get_current_user)):
    return current_user


@router.post("/change-password")
def change_password(
    payload: schemas.ChangePasswordRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    if not verify_password(payload.current_password, current_user.hashed_password):
        raise HTTPException(status_code=401, detail="Current password is incorrect")

    current_user.hashed_password = hash_password(payload.new_password)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    return {"message": "Password changed successfully"}


@router.put("/profile")
def update_profile(
    payload: schemas.ProfileUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    for field, value in payload.model_dump(exclude_unset=True).items():
        if field == "name" and not value:
            continue
        setattr(current_user, field, value)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(current_user)
    return {"user": _user_json(current_user), "message": "Profile updated successfully"}
