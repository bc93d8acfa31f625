from __future__ import annotations

import uuid

from fastapi import Depends, HTTPException, Request
from fastapi.templating import Jinja2Templates

from market_pay.auth import Operator, get_current_operator
from market_pay.config import settings
from market_pay.services.operator_state import OperatorState, operator_states


def get_templates(request: Request) -> Jinja2Templates:
    return request.app.state.templates


def get_client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    if request.client:
        return request.client.host
    return None


def get_operator_state(operator: Operator = Depends(get_current_operator)) -> OperatorState:
    return operator_states.get(operator.session_token)


def public_base_url(request: Request) -> str:
    return settings.public_base_url or str(request.base_url)


def parse_uuid(raw, *, label: str = 'id') -> uuid.UUID | None:
    value = str(raw or '').strip()
    if not value:
        return None
    try:
        return uuid.UUID(value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f'Invalid {label}') from exc
