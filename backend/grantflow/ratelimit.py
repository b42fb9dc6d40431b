import os

from fastapi import Request
from jose import JWTError, jwt
from slowapi import Limiter
from slowapi.util import get_remote_address

from .config import get_settings


def caller_identity(request: Request) -> str:
    """Rate-limit key: the bearer token's subject, else the client address."""

    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        try:
            subject = jwt.get_unverified_claims(header[7:].strip()).get("sub")
        except JWTError:
            subject = None
        if subject:
            return f"user:{subject}"
    return get_remote_address(request)


limiter = Limiter(key_func=caller_identity)
testing = os.getenv("TESTING") == "1"

SUBMISSION_LIMIT = get_settings().submission_rate_limit


def rate_limit(limit: str):
    if testing:
        def wrapper(func):
            return func
        return wrapper
    return limiter.limit(limit)
