from datetime import datetime, timedelta, timezone
from jose import JWTError, jwt, ExpiredSignatureError
from passlib.context import CryptContext
from typing import Optional
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from app.database import get_db
from app import models
from .config import settings

ALGORITHM = "HS256"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.secret_key_plain, algorithm=ALGORITHM)


def token_for_user(user: models.User) -> str:
    role_val = user.role.value if hasattr(user.role, "value") else str(user.role)
    return create_access_token({"sub": user.id, "role": role_val, "email": user.email})


# auto_error=False so we can fall back to the cookie
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def decode_token(token: str) -> dict:
    return jwt.decode(token, settings.secret_key_plain, algorithms=[ALGORITHM])


def _auth_error(detail: str = "Unauthorized") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def user_from_token(db: Session, token: Optional[str]) -> models.User:
    """Resolve a bearer token to its user. Shared by HTTP routes and the websocket handshake."""
    if not token:
        raise _auth_error("Unauthorized")

    try:
        payload = decode_token(token)
        user_id = payload.get("sub")
        if not user_id:
            raise _auth_error("Invalid token payload")
    except ExpiredSignatureError:
        raise _auth_error("Token expired")
    except JWTError:
        raise _auth_error("Invalid token")

    user = db.get(models.User, str(user_id))
    if not user:
        raise _auth_error("User not found")
    return user


def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
    bearer_token: Optional[str] = Depends(oauth2_scheme),
) -> models.User:
    # 1) Bearer header, 2) HttpOnly cookie
    token = bearer_token or request.cookies.get("access_token")
    return user_from_token(db, token)


def require_approved(current_user: models.User = Depends(get_current_user)) -> models.User:
    if not current_user.approved and current_user.role != models.UserRole.ADMIN:
        raise HTTPException(status_code=403, detail="Account pending approval")
    return current_user


def require_roles(*roles: models.UserRole):
    allowed = set(roles)

    def _dependency(current_user: models.User = Depends(require_approved)) -> models.User:
        if current_user.role not in allowed:
            raise HTTPException(status_code=403, detail="Forbidden")
        return current_user

    return _dependency


require_admin = require_roles(models.UserRole.ADMIN)
require_staff_or_admin = require_roles(models.UserRole.ADMIN, models.UserRole.STAFF)
require_staff = require_roles(models.UserRole.STAFF)
