from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from market_pay.auth import Operator, get_current_operator
from market_pay.config import settings
from market_pay.db import get_db
from market_pay.dependencies import get_client_ip, get_operator_state, parse_uuid, public_base_url
from market_pay.models import PaymentMethod, PaymentRequestStatus
from market_pay.security.csrf import verify_csrf
from market_pay.services.audit_service import AuditAction, log_audit
from market_pay.services.calculator import parse_amount
from market_pay.services.change_feed import change_feed
from market_pay.services.dashboard_service import ledger_total, summarize
from market_pay.services.operator_state import TABS, OperatorState
from market_pay.services.payment_request_service import cancel_request, list_requests, process_request
from market_pay.services.transaction_service import (
    delete_transaction,
    list_transactions,
    record_payment,
    update_transaction,
)
from market_pay.services.vendor_service import (
    create_vendor,
    delete_vendor,
    list_vendors,
    share_link,
    update_vendor,
)

router = APIRouter(tags=['operator'])

QUICK_AMOUNTS = (5, 10, 15, 20, 25, 50)


def _redirect(tab: str) -> RedirectResponse:
    return RedirectResponse(f'/pos?tab={tab}', status_code=303)


def _vendor_fields(form) -> dict:
    return {
        'name': str(form.get('name', '')),
        'description': str(form.get('description', '')),
        'contact_name': str(form.get('contact_name', '')),
        'contact_phone': str(form.get('contact_phone', '')),
    }


@router.get('/pos')
def pos_home(
    request: Request,
    tab: str | None = None,
    vendor_id: str | None = None,
    operator: Operator = Depends(get_current_operator),
    state: OperatorState = Depends(get_operator_state),
    db: Session = Depends(get_db),
):
    state.select_tab(tab)
    if vendor_id is not None:
        state.select_vendor(parse_uuid(vendor_id, label='vendor'))

    vendors = list_vendors(db)
    vendors_by_id = {vendor.id: vendor for vendor in vendors}
    if state.selected_vendor_id not in vendors_by_id:
        state.select_vendor(None)
    selected_vendor = vendors_by_id.get(state.selected_vendor_id)

    transactions = list_transactions(db, limit=settings.transaction_list_limit)
    selected_transactions = [t for t in transactions if selected_vendor and t.vendor_id == selected_vendor.id]
    pending_requests = list_requests(db, status=PaymentRequestStatus.PENDING)
    base_url = public_base_url(request)

    return request.app.state.templates.TemplateResponse(
        request,
        'pos.html',
        {
            'operator': operator,
            'state': state,
            'tabs': TABS,
            'vendors': vendors,
            'vendors_by_id': vendors_by_id,
            'selected_vendor': selected_vendor,
            'selected_total': ledger_total(selected_transactions),
            'selected_count': len(selected_transactions),
            'transactions': (
                selected_transactions if selected_vendor and state.active_tab == 'transactions' else transactions
            ),
            'header_total': ledger_total(transactions),
            'summary': summarize(transactions, vendors),
            'pending_requests': pending_requests,
            'batch': state.batch,
            'share_links': {vendor.id: share_link(vendor, base_url) for vendor in vendors},
            'payment_methods': list(PaymentMethod),
            'quick_amounts': QUICK_AMOUNTS,
            'change_cursor': change_feed.cursor,
        },
    )


@router.post('/pos/vendor')
async def select_vendor(
    request: Request,
    state: OperatorState = Depends(get_operator_state),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    state.select_vendor(parse_uuid(form.get('vendor_id'), label='vendor'))
    return _redirect(state.active_tab)


@router.post('/vendors')
async def vendor_create(
    request: Request,
    operator: Operator = Depends(get_current_operator),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        vendor = create_vendor(db, **_vendor_fields(form))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    log_audit(
        db,
        actor_principal_id=operator.id,
        action=AuditAction.VENDOR_CREATED,
        vendor_id=vendor.id,
        ip=get_client_ip(request),
        metadata={'name': vendor.name},
    )
    db.commit()
    return _redirect('vendors')


@router.post('/vendors/{vendor_id}/edit')
async def vendor_update(
    vendor_id: uuid.UUID,
    request: Request,
    operator: Operator = Depends(get_current_operator),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        vendor = update_vendor(db, vendor_id=vendor_id, **_vendor_fields(form))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    log_audit(
        db,
        actor_principal_id=operator.id,
        action=AuditAction.VENDOR_UPDATED,
        vendor_id=vendor.id,
        ip=get_client_ip(request),
        metadata={'name': vendor.name},
    )
    db.commit()
    return _redirect('vendors')


@router.post('/vendors/{vendor_id}/delete')
def vendor_delete(
    vendor_id: uuid.UUID,
    request: Request,
    operator: Operator = Depends(get_current_operator),
    state: OperatorState = Depends(get_operator_state),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        deleted = delete_vendor(db, vendor_id=vendor_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    if state.selected_vendor_id == vendor_id:
        state.select_vendor(None)
    log_audit(
        db,
        actor_principal_id=operator.id,
        action=AuditAction.VENDOR_DELETED,
        vendor_id=vendor_id,
        ip=get_client_ip(request),
        metadata={'name': deleted['name']},
    )
    db.commit()
    return _redirect('vendors')


@router.post('/transactions')
async def transaction_create(
    request: Request,
    operator: Operator = Depends(get_current_operator),
    state: OperatorState = Depends(get_operator_state),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    vendor_id = parse_uuid(form.get('vendor_id'), label='vendor') or state.selected_vendor_id
    if vendor_id is None:
        raise HTTPException(status_code=400, detail='Select a vendor to record a payment')
    try:
        transaction = record_payment(
            db,
            vendor_id=vendor_id,
            amount=parse_amount(form.get('amount')),
            payment_method=str(form.get('payment_method', PaymentMethod.CARD.value)),
            description=str(form.get('description', '')),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    state.select_vendor(vendor_id)
    log_audit(
        db,
        actor_principal_id=operator.id,
        action=AuditAction.PAYMENT_RECORDED,
        vendor_id=vendor_id,
        ip=get_client_ip(request),
        metadata={
            'transaction_id': str(transaction.id),
            'amount': str(transaction.amount),
            'payment_method': transaction.payment_method.value,
        },
    )
    db.commit()
    return _redirect('payment')


@router.post('/transactions/{transaction_id}/edit')
async def transaction_update(
    transaction_id: uuid.UUID,
    request: Request,
    operator: Operator = Depends(get_current_operator),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        transaction = update_transaction(
            db,
            transaction_id=transaction_id,
            amount=parse_amount(form.get('amount')),
            payment_method=str(form.get('payment_method', '')),
            description=str(form.get('description', '')),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    log_audit(
        db,
        actor_principal_id=operator.id,
        action=AuditAction.TRANSACTION_UPDATED,
        vendor_id=transaction.vendor_id,
        ip=get_client_ip(request),
        metadata={'transaction_id': str(transaction.id), 'amount': str(transaction.amount)},
    )
    db.commit()
    return _redirect('transactions')


@router.post('/transactions/{transaction_id}/delete')
def transaction_delete(
    transaction_id: uuid.UUID,
    request: Request,
    operator: Operator = Depends(get_current_operator),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        deleted = delete_transaction(db, transaction_id=transaction_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    log_audit(
        db,
        actor_principal_id=operator.id,
        action=AuditAction.TRANSACTION_DELETED,
        vendor_id=deleted['vendor_id'],
        ip=get_client_ip(request),
        metadata={'transaction_id': str(deleted['id']), 'amount': str(deleted['amount'])},
    )
    db.commit()
    return _redirect('transactions')


@router.post('/requests/{request_id}/process')
async def request_process(
    request_id: uuid.UUID,
    request: Request,
    operator: Operator = Depends(get_current_operator),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    try:
        payment_request, transaction = process_request(
            db,
            request_id=request_id,
            payment_method=str(form.get('payment_method', '')),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    log_audit(
        db,
        actor_principal_id=operator.id,
        action=AuditAction.PAYMENT_REQUEST_PROCESSED,
        vendor_id=payment_request.vendor_id,
        ip=get_client_ip(request),
        metadata={'request_id': str(payment_request.id), 'transaction_id': str(transaction.id)},
    )
    db.commit()
    return _redirect('requests')


@router.post('/requests/{request_id}/cancel')
def request_cancel(
    request_id: uuid.UUID,
    request: Request,
    operator: Operator = Depends(get_current_operator),
    state: OperatorState = Depends(get_operator_state),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    try:
        payment_request = cancel_request(db, request_id=request_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    state.batch.discard_request(request_id)
    log_audit(
        db,
        actor_principal_id=operator.id,
        action=AuditAction.PAYMENT_REQUEST_CANCELLED,
        vendor_id=payment_request.vendor_id,
        ip=get_client_ip(request),
        metadata={'request_id': str(payment_request.id), 'cancelled_by': 'operator'},
    )
    db.commit()
    return _redirect('requests')
