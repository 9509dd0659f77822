from typing import Optional
from fastapi import Depends, Request
from sqlalchemy.orm import Session
from app.auth_local import decode_access_token, is_admin, is_rider, rider_id_of
from app.application.service import OrderService
from app.domain.errors import AuthenticationError, AuthorizationError
from app.infrastructure.db import get_db
from app.realtime.notifier import RealtimeNotifier

BEARER_PREFIX = "Bearer "


def bearer_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith(BEARER_PREFIX):
        return auth_header[len(BEARER_PREFIX):].strip()
    return request.headers.get("x-auth-token")


def current_claims(request: Request) -> dict:
    token = bearer_token(request)
    if not token:
        raise AuthenticationError("Missing token")
    claims = decode_access_token(token)
    if not claims:
        raise AuthenticationError("Invalid token")
    return claims


def require_admin(claims: dict = Depends(current_claims)) -> dict:
    if not is_admin(claims):
        raise AuthorizationError("Access denied. Admins only.")
    return claims


def require_rider(claims: dict = Depends(current_claims)) -> int:
    """The calling rider's id."""
    if not is_rider(claims):
        raise AuthorizationError("Access denied. Rider privileges required.")
    rider_id = rider_id_of(claims)
    if rider_id is None:
        raise AuthenticationError("Invalid token")
    return rider_id


def require_staff(claims: dict = Depends(current_claims)) -> dict:
    """Admins and riders; what a rider may do is narrowed further down."""
    if not (is_admin(claims) or is_rider(claims)):
        raise AuthorizationError("Access denied. Admin or rider privileges required.")
    return claims


def get_notifier(request: Request) -> RealtimeNotifier:
    return request.app.state.notifier


def get_order_service(
    db: Session = Depends(get_db),
    notifier: RealtimeNotifier = Depends(get_notifier),
) -> OrderService:
    return OrderService(db, notifier)
