from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timedelta, timezone

from fastapi import FastAPI, Request
from fastapi.responses import RedirectResponse
from sqlalchemy import select
from sqlalchemy.orm import Session

from market_pay.auth import Operator
from market_pay.config import settings
from market_pay.db import SessionLocal
from market_pay.models import Principal, WebSession


AUTH_EXEMPT_PATHS = {'/login', '/robots.txt', '/api/calculator/preview', '/api/changes'}
# Share-token pages are public capabilities.
AUTH_EXEMPT_PREFIXES = ('/v/',)


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _session_expiry() -> datetime:
    return _now() + timedelta(minutes=settings.session_ttl_minutes)


def is_auth_exempt(path: str) -> bool:
    return path in AUTH_EXEMPT_PATHS or path.startswith(AUTH_EXEMPT_PREFIXES)


def create_web_session(db: Session, principal_id: uuid.UUID, ip: str | None, user_agent: str | None) -> str:
    token = secrets.token_urlsafe(48)
    db.add(
        WebSession(
            session_token=token,
            principal_id=principal_id,
            ip=ip,
            user_agent=user_agent,
            expires_at=_session_expiry(),
        )
    )
    db.flush()
    return token


def revoke_web_session(db: Session, token: str) -> None:
    web_session = db.execute(select(WebSession).where(WebSession.session_token == token)).scalar_one_or_none()
    if not web_session or web_session.revoked_at is not None:
        return
    web_session.revoked_at = _now()


def load_operator_from_token(db: Session, token: str | None) -> Operator | None:
    if not token:
        return None

    row = db.execute(
        select(WebSession, Principal)
        .join(Principal, Principal.id == WebSession.principal_id)
        .where(WebSession.session_token == token)
    ).one_or_none()
    if not row:
        return None

    web_session, principal = row
    now = _now()
    if web_session.revoked_at is not None or _aware(web_session.expires_at) <= now:
        return None

    web_session.last_seen_at = now
    web_session.expires_at = _session_expiry()
    return Operator(
        id=principal.id,
        username=principal.username,
        active=principal.active,
        session_token=token,
    )


def install_auth_session_middleware(app: FastAPI) -> None:
    @app.middleware('http')
    async def auth_session_middleware(request: Request, call_next):
        token = request.cookies.get(settings.session_cookie_name)
        request.state.operator = None
        if token:
            with SessionLocal() as db:
                request.state.operator = load_operator_from_token(db, token)
                db.commit()

        if request.state.operator is None and not is_auth_exempt(request.url.path):
            return RedirectResponse('/login', status_code=303)

        return await call_next(request)
