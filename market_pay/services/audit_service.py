from __future__ import annotations

import uuid
from decimal import Decimal
from enum import Enum

from sqlalchemy.orm import Session

from market_pay.models import AuditLog, AuthEvent


class AuditAction(str, Enum):
    AUTH_LOGIN = 'AUTH_LOGIN'
    AUTH_LOGOUT = 'AUTH_LOGOUT'
    VENDOR_CREATED = 'VENDOR_CREATED'
    VENDOR_UPDATED = 'VENDOR_UPDATED'
    VENDOR_DELETED = 'VENDOR_DELETED'
    PAYMENT_RECORDED = 'PAYMENT_RECORDED'
    TRANSACTION_UPDATED = 'TRANSACTION_UPDATED'
    TRANSACTION_DELETED = 'TRANSACTION_DELETED'
    PAYMENT_REQUEST_SUBMITTED = 'PAYMENT_REQUEST_SUBMITTED'
    PAYMENT_REQUEST_PROCESSED = 'PAYMENT_REQUEST_PROCESSED'
    PAYMENT_REQUEST_CANCELLED = 'PAYMENT_REQUEST_CANCELLED'
    BATCH_COMMITTED = 'BATCH_COMMITTED'


def _json_safe(value):
    """Audit metadata lands in a JSON column, so money and ids are stored as strings."""
    if isinstance(value, dict):
        return {key: _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (Decimal, uuid.UUID)):
        return str(value)
    return value


def log_auth_event(
    db: Session,
    *,
    attempted_username: str,
    success: bool,
    ip: str | None,
    user_agent: str | None,
    principal_id: uuid.UUID | None = None,
    failure_reason: str | None = None,
) -> None:
    db.add(
        AuthEvent(
            attempted_username=attempted_username,
            success=success,
            failure_reason=failure_reason,
            principal_id=principal_id,
            ip=ip,
            user_agent=user_agent,
        )
    )


def log_audit(
    db: Session,
    *,
    actor_principal_id: uuid.UUID | None,
    action: AuditAction,
    vendor_id: uuid.UUID | None,
    ip: str | None,
    metadata: dict | None = None,
) -> AuditLog:
    entry = AuditLog(
        actor_principal_id=actor_principal_id,
        action=AuditAction(action).value,
        vendor_id=vendor_id,
        ip=ip,
        meta=_json_safe(metadata or {}),
    )
    db.add(entry)
    return entry
