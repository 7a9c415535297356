from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from . import models
from .config import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    ALGORITHM,
    REFRESH_TOKEN_EXPIRE_DAYS,
    SECRET_KEY,
)
from .database import get_db

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")

BACK_OFFICE_ROLES = (models.UserRole.ADMIN, models.UserRole.STAFF, models.UserRole.DENTIST)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def _encode(subject: str, token_type: str, expires_delta: timedelta, extra: Optional[dict] = None) -> str:
    to_encode = dict(extra or {})
    to_encode.update({
        "sub": subject,
        "exp": datetime.utcnow() + expires_delta,
        "type": token_type,
    })
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create an access token; `data` must carry the user's email as `sub`"""
    payload = data.copy()
    subject = payload.pop("sub")
    return _encode(
        subject,
        "access",
        expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
        payload,
    )


def create_refresh_token(data: dict) -> str:
    payload = data.copy()
    subject = payload.pop("sub")
    return _encode(subject, "refresh", timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS), payload)


def create_email_verification_token(email: str) -> str:
    return _encode(email, "email_verification", timedelta(hours=24))


def create_password_reset_token(email: str) -> str:
    return _encode(email, "password_reset", timedelta(hours=1))


def verify_token(token: str, token_type: str) -> Optional[str]:
    """Return the token's email if it is valid and of the expected type"""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None

    email: str = payload.get("sub")
    if email is None or payload.get("type") != token_type:
        return None
    return email


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> models.User:
    """Resolve the bearer token to an active user"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    email = verify_token(token, "access")
    if email is None:
        raise credentials_exception

    user = db.query(models.User).filter(models.User.email == email).first()
    if user is None:
        raise credentials_exception

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is deactivated"
        )

    return user


def require_roles(*roles: models.UserRole):
    """Dependency factory that admits only the given roles"""
    allowed = {r.value for r in roles}

    async def role_checker(current_user: models.User = Depends(get_current_user)) -> models.User:
        if current_user.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions"
            )
        return current_user

    return role_checker


require_admin = require_roles(models.UserRole.ADMIN)
require_back_office = require_roles(*BACK_OFFICE_ROLES)
require_clinician = require_roles(models.UserRole.ADMIN, models.UserRole.DENTIST)
