# backend/tenanttrack/auth.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt
from fastapi import Depends, Header, Request
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .config import settings
from .db import get_db
from .errors import AuthenticationError
from .models import ActorKind, AppUser, UserRole


@dataclass(frozen=True)
class Principal:
    """The authenticated caller, as seen by the scoping and lease services."""

    user_id: int
    email: str
    username: str
    kinds: frozenset[ActorKind]
    display_name: str | None = None

    def has(self, kind: ActorKind) -> bool:
        return kind in self.kinds


def _principal_from_user(user: AppUser) -> Principal:
    return Principal(
        user_id=int(user.id),
        email=str(user.email),
        username=str(user.username),
        kinds=user.kinds,
        display_name=user.display_name,
    )


def _parse_role_hint(raw: str | None) -> set[ActorKind]:
    out: set[ActorKind] = set()
    for part in (raw or "").split(","):
        part = part.strip().lower()
        for kind in ActorKind:
            if kind.value.lower() == part:
                out.add(kind)
    return out


# -------------------------
# JWT helpers (PyJWT)
# -------------------------
def create_access_token(*, user_id: int, minutes: int | None = None) -> str:
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": str(int(user_id)),
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=minutes or settings.jwt_exp_minutes)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def _decode_token(token: str) -> dict[str, Any]:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token")


def _user_from_token(db: Session, token: str) -> AppUser:
    claims = _decode_token(token)
    sub = str(claims.get("sub") or "")
    if not sub.isdigit():
        raise AuthenticationError("Token missing sub")

    user = db.get(AppUser, int(sub))
    if user is None:
        raise AuthenticationError("Unknown user")
    return user


# -------------------------
# Dev header auth
# -------------------------
def _dev_user(db: Session, *, email: str, role_hint: str | None) -> AppUser:
    user = db.scalar(select(AppUser).where(func.lower(AppUser.email) == email))
    if user is None:
        if not settings.dev_auto_provision:
            raise AuthenticationError("Unknown user")
        user = AppUser(email=email, username=email, display_name=email.split("@")[0])
        db.add(user)
        db.flush()

    if not user.roles:
        kinds = _parse_role_hint(role_hint) or {ActorKind.TENANT}
        for kind in sorted(kinds, key=lambda k: k.value):
            db.add(UserRole(user_id=user.id, role=kind))
        db.commit()
        db.refresh(user)

    return user


# -------------------------
# get_principal
# -------------------------
def _resolve(request: Request, db: Session, authorization: Optional[str]) -> Principal | None:
    """
    Auth modes supported (in priority order):
      1) Authorization: Bearer <token>
      2) dev header spoofing (ONLY if settings.auth_mode == "dev")
    Returns None when the request carries no credentials at all.
    """
    if authorization and str(authorization).lower().startswith("bearer "):
        token = str(authorization).split(" ", 1)[1].strip()
        return _principal_from_user(_user_from_token(db, token))

    if settings.auth_mode == "dev":
        email = (request.headers.get(settings.dev_header_user_email) or "").strip().lower()
        if email:
            role_hint = request.headers.get(settings.dev_header_user_role)
            return _principal_from_user(_dev_user(db, email=email, role_hint=role_hint))

    return None


def get_optional_principal(
    request: Request,
    db: Session = Depends(get_db),
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> Principal | None:
    return _resolve(request, db, authorization)


def get_principal(
    request: Request,
    db: Session = Depends(get_db),
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> Principal:
    p = _resolve(request, db, authorization)
    if p is None:
        raise AuthenticationError("Not authenticated")
    return p
