"""
Actor resolution and role guards.

Authentication happens upstream: the gateway verifies the session and
forwards the user's id in X-User-Id. This module only turns that id into an
active User, builds the Actor passed to every mutation, and enforces roles.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from procurement.database import get_db
from procurement.models.user import User
from procurement.services.audit.ledger import Actor


def get_current_user(
    x_user_id: Optional[int] = Header(None),
    db: Session = Depends(get_db),
) -> User:
    credentials_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
    )
    if x_user_id is None:
        raise credentials_exc
    user = db.get(User, x_user_id)
    if user is None or not user.active:
        raise credentials_exc
    return user


def client_ip(request: Request) -> Optional[str]:
    """First X-Forwarded-For hop when behind a proxy, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return request.client.host if request.client else None


def actor_for(user: User, request: Request) -> Actor:
    return Actor(
        id=user.id,
        name=user.full_name or user.email,
        role=user.role,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )


def require_role(*roles: str):
    """Dependency factory — raises 403 unless the user has one of the roles; yields the Actor."""

    def _check(
        request: Request,
        current_user: User = Depends(get_current_user),
    ) -> Actor:
        if current_user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {list(roles)}",
            )
        return actor_for(current_user, request)

    return _check
