from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from market_pay.db import get_db
from market_pay.dependencies import get_client_ip
from market_pay.models import PaymentRequestStatus, Vendor
from market_pay.security.csrf import verify_csrf
from market_pay.services.audit_service import AuditAction, log_audit
from market_pay.services.calculator import parse_amount
from market_pay.services.change_feed import change_feed
from market_pay.services.dashboard_service import summarize
from market_pay.services.payment_request_service import cancel_request, list_requests, submit_request
from market_pay.services.transaction_service import list_transactions
from market_pay.services.vendor_service import get_vendor_by_share_token

router = APIRouter(prefix='/v', tags=['public'])


def _vendor_or_404(db: Session, share_token: str) -> Vendor:
    try:
        return get_vendor_by_share_token(db, share_token)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get('/{share_token}')
def vendor_dashboard(share_token: str, request: Request, submitted: int = 0, db: Session = Depends(get_db)):
    vendor = _vendor_or_404(db, share_token)
    transactions = list_transactions(db, vendor_id=vendor.id)
    pending = list_requests(db, status=PaymentRequestStatus.PENDING, vendor_id=vendor.id)
    return request.app.state.templates.TemplateResponse(
        request,
        'vendor_public.html',
        {
            'vendor': vendor,
            'transactions': transactions,
            'summary': summarize(transactions),
            'pending_requests': pending,
            'submitted': bool(submitted),
            'change_cursor': change_feed.cursor,
        },
    )


@router.post('/{share_token}/requests')
async def submit_payment_request(
    share_token: str,
    request: Request,
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    vendor = _vendor_or_404(db, share_token)
    form = await request.form()
    try:
        payment_request = submit_request(
            db,
            vendor_id=vendor.id,
            amount=parse_amount(form.get('amount'), error='Please enter an amount'),
            payer_name=str(form.get('payer_name', '')),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    log_audit(
        db,
        actor_principal_id=None,
        action=AuditAction.PAYMENT_REQUEST_SUBMITTED,
        vendor_id=vendor.id,
        ip=get_client_ip(request),
        metadata={'request_id': str(payment_request.id), 'amount': str(payment_request.amount)},
    )
    db.commit()
    return RedirectResponse(f'/v/{share_token}?submitted=1', status_code=303)


@router.post('/{share_token}/requests/{request_id}/cancel')
def cancel_payment_request(
    share_token: str,
    request_id: uuid.UUID,
    request: Request,
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    vendor = _vendor_or_404(db, share_token)
    try:
        cancel_request(db, request_id=request_id, vendor_id=vendor.id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    log_audit(
        db,
        actor_principal_id=None,
        action=AuditAction.PAYMENT_REQUEST_CANCELLED,
        vendor_id=vendor.id,
        ip=get_client_ip(request),
        metadata={'request_id': str(request_id), 'cancelled_by': 'payer'},
    )
    db.commit()
    return RedirectResponse(f'/v/{share_token}', status_code=303)
