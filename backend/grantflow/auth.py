import os
from datetime import datetime, timedelta, timezone

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from . import models
from .database import get_db

SECRET_KEY = os.getenv("SECRET_KEY", "change-me")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

bearer = HTTPBearer(auto_error=False)


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def get_current_user(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer),
    db: Session = Depends(get_db),
) -> models.User:
    unauthorized = HTTPException(
        status_code=401,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if creds is None:
        raise unauthorized
    try:
        payload = jwt.decode(creds.credentials, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise unauthorized
    email = payload.get("sub")
    if not email or payload.get("scope"):
        raise unauthorized
    user = db.query(models.User).filter(models.User.email == email).first()
    if user is None or not user.is_active:
        raise unauthorized
    return user


INVITATION_SCOPE = "reviewer_invitation"
INVITATION_EXPIRE_DAYS = int(os.getenv("REVIEWER_INVITATION_EXPIRE_DAYS", "7"))


def create_invitation_token(email: str) -> str:
    return create_access_token(
        {"sub": email, "scope": INVITATION_SCOPE},
        expires_delta=timedelta(days=INVITATION_EXPIRE_DAYS),
    )


def read_invitation_token(token: str) -> str | None:
    """Return the invited email, or None for a forged, expired or non-invitation token."""

    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    if payload.get("scope") != INVITATION_SCOPE:
        return None
    return payload.get("sub")
