from datetime import datetime, timedelta, timezone

from jose import jwt

from routejobs.core.config import settings


def create_access_token(subject: str, role: str, expires_minutes: int | None = None) -> str:
    """Tokens are issued by the account service; this mirrors its claims for tooling and tests."""
    now = datetime.now(timezone.utc)
    ttl = expires_minutes if expires_minutes is not None else settings.JWT_EXPIRE_MINUTES
    claims = {"sub": subject, "role": role, "iat": now, "exp": now + timedelta(minutes=ttl)}
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


def decode_token(token: str) -> dict:
    return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
