from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy import select
from sqlalchemy.orm import Session

from market_pay.config import settings
from market_pay.db import get_db
from market_pay.dependencies import get_client_ip, get_templates
from market_pay.models import Principal
from market_pay.security.csrf import verify_csrf
from market_pay.security.passwords import check_password
from market_pay.security.sessions import create_web_session, revoke_web_session
from market_pay.services.audit_service import AuditAction, log_audit, log_auth_event
from market_pay.services.operator_state import operator_states

router = APIRouter(tags=['auth'])

LOGIN_ERROR = 'Invalid username or password'


def _login_failed(request: Request, templates: Jinja2Templates):
    return templates.TemplateResponse(
        request,
        'login.html',
        {'error': LOGIN_ERROR},
        status_code=401,
    )


@router.get('/login')
def login_page(request: Request, templates: Jinja2Templates = Depends(get_templates)):
    return templates.TemplateResponse(request, 'login.html', {'error': None})


@router.post('/login')
async def login_submit(
    request: Request,
    db: Session = Depends(get_db),
    templates: Jinja2Templates = Depends(get_templates),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    username = str(form.get('username', '')).strip()
    password = str(form.get('password', ''))
    ip = get_client_ip(request)
    user_agent = request.headers.get('user-agent')

    principal = db.execute(select(Principal).where(Principal.username == username)).scalar_one_or_none()
    failure_reason = None
    if not principal:
        failure_reason = 'UNKNOWN_USERNAME'
    elif not principal.active:
        failure_reason = 'INACTIVE_PRINCIPAL'
    else:
        valid, replacement_hash = check_password(password, principal.password_hash)
        if not valid:
            failure_reason = 'BAD_PASSWORD'
        elif replacement_hash:
            principal.password_hash = replacement_hash

    if failure_reason:
        log_auth_event(
            db,
            attempted_username=username,
            success=False,
            failure_reason=failure_reason,
            principal_id=principal.id if principal else None,
            ip=ip,
            user_agent=user_agent,
        )
        db.commit()
        return _login_failed(request, templates)

    token = create_web_session(db, principal.id, ip=ip, user_agent=user_agent)
    log_auth_event(
        db,
        attempted_username=username,
        success=True,
        principal_id=principal.id,
        ip=ip,
        user_agent=user_agent,
    )
    log_audit(
        db,
        actor_principal_id=principal.id,
        action=AuditAction.AUTH_LOGIN,
        vendor_id=None,
        ip=ip,
        metadata={'username': username},
    )
    db.commit()

    response = RedirectResponse('/pos', status_code=303)
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
        max_age=settings.session_ttl_minutes * 60,
    )
    return response


@router.post('/logout')
def logout(request: Request, db: Session = Depends(get_db), _: None = Depends(verify_csrf)):
    operator = getattr(request.state, 'operator', None)
    token = request.cookies.get(settings.session_cookie_name)
    if token:
        revoke_web_session(db, token)
        operator_states.discard(token)

    log_audit(
        db,
        actor_principal_id=operator.id if operator else None,
        action=AuditAction.AUTH_LOGOUT,
        vendor_id=None,
        ip=get_client_ip(request),
        metadata={},
    )
    db.commit()

    response = RedirectResponse('/login', status_code=303)
    response.delete_cookie(settings.session_cookie_name)
    return response
