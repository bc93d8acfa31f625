from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from market_pay.auth import Operator, get_current_operator
from market_pay.db import get_db
from market_pay.dependencies import get_client_ip, get_operator_state, parse_uuid
from market_pay.security.csrf import verify_csrf
from market_pay.services.audit_service import AuditAction, log_audit
from market_pay.services.batch_service import commit_batch, results_summary
from market_pay.services.calculator import parse_amount
from market_pay.services.operator_state import OperatorState
from market_pay.services.payment_request_service import get_request
from market_pay.services.vendor_service import get_vendor

router = APIRouter(prefix='/batch', tags=['batch'])


def _back_to_requests() -> RedirectResponse:
    return RedirectResponse('/pos?tab=requests', status_code=303)


@router.post('/toggle/{request_id}')
def toggle_request(
    request_id: uuid.UUID,
    state: OperatorState = Depends(get_operator_state),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        payment_request = get_request(db, request_id)
        vendor = get_vendor(db, payment_request.vendor_id)
        state.batch.toggle_request(payment_request, vendor_name=vendor.name)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _back_to_requests()


@router.post('/manual')
async def add_manual(
    request: Request,
    state: OperatorState = Depends(get_operator_state),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    vendor_id = parse_uuid(form.get('vendor_id'), label='vendor')
    try:
        vendor = get_vendor(db, vendor_id) if vendor_id else None
        state.batch.add_manual(
            vendor_id=vendor.id if vendor else None,
            vendor_name=vendor.name if vendor else None,
            amount=parse_amount(form.get('amount'), error='Please enter an amount'),
            payer_name=str(form.get('payer_name', '')),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _back_to_requests()


@router.post('/items/{item_id}/remove')
def remove_item(
    item_id: str,
    state: OperatorState = Depends(get_operator_state),
    _: None = Depends(verify_csrf),
):
    state.batch.remove(item_id)
    return _back_to_requests()


@router.post('/commit')
async def commit(
    request: Request,
    operator: Operator = Depends(get_current_operator),
    state: OperatorState = Depends(get_operator_state),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    description = state.batch.description() if not state.batch.is_empty() else ''
    try:
        results = commit_batch(db, state.batch, str(form.get('payment_method', '')))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    log_audit(
        db,
        actor_principal_id=operator.id,
        action=AuditAction.BATCH_COMMITTED,
        vendor_id=None,
        ip=get_client_ip(request),
        metadata={
            'description': description,
            'payment_method': str(form.get('payment_method', '')),
            **results_summary(results),
            'failed_items': [result.item.id for result in results if not result.ok],
        },
    )
    db.commit()
    return _back_to_requests()
