from datetime import datetime, timedelta, timezone
import jwt
from typing import Optional
from .core_settings import get_settings

settings = get_settings()

def create_access_token(subject: str, role: str = "customer", expires_minutes: int = 60, **claims) -> str:
    now = datetime.now(timezone.utc)
    payload = {"sub": subject, "role": role, "iat": now, "exp": now + timedelta(minutes=expires_minutes), **claims}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALG)

def decode_access_token(token: Optional[str]) -> Optional[dict]:
    if not token:
        return None
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    except jwt.PyJWTError:
        return None

def is_admin(claims: Optional[dict]) -> bool:
    return bool(claims) and claims.get("role") in settings.ADMIN_ROLES

def is_rider(claims: Optional[dict]) -> bool:
    return bool(claims) and claims.get("role") in settings.RIDER_ROLES

def rider_id_of(claims: Optional[dict]) -> Optional[int]:
    """Rider row id carried in a rider token's ``rider_id`` claim."""
    if not is_rider(claims):
        return None
    try:
        return int(claims["rider_id"])
    except (KeyError, TypeError, ValueError):
        return None
