from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from market_pay.models import PaymentMethod, PaymentRequest, PaymentRequestStatus, Transaction, Vendor
from market_pay.services.calculator import MAX_AMOUNT
from market_pay.services.transaction_service import record_payment


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def payment_description(payer_name: str) -> str:
    return f'Payment from {payer_name}'


def submit_request(
    db: Session,
    *,
    vendor_id: uuid.UUID,
    amount: Decimal,
    payer_name: str,
) -> PaymentRequest:
    if amount is None or amount <= 0:
        raise ValueError('Please enter an amount')
    if amount >= MAX_AMOUNT:
        raise ValueError('Please enter a valid amount')
    clean_payer = (payer_name or '').strip()
    if not clean_payer:
        raise ValueError('Please enter the payer name')
    if not db.get(Vendor, vendor_id):
        raise ValueError('Vendor not found')

    request = PaymentRequest(
        vendor_id=vendor_id,
        amount=amount,
        payer_name=clean_payer,
        status=PaymentRequestStatus.PENDING,
    )
    db.add(request)
    db.flush()
    return request


def list_requests(
    db: Session,
    *,
    status: PaymentRequestStatus | None = None,
    vendor_id: uuid.UUID | None = None,
) -> list[PaymentRequest]:
    query = select(PaymentRequest).order_by(PaymentRequest.created_at.desc(), PaymentRequest.id.desc())
    if status:
        query = query.where(PaymentRequest.status == status)
    if vendor_id:
        query = query.where(PaymentRequest.vendor_id == vendor_id)
    return db.execute(query).scalars().all()


def get_request(db: Session, request_id: uuid.UUID) -> PaymentRequest:
    request = db.get(PaymentRequest, request_id)
    if not request:
        raise ValueError('Payment request not found')
    return request


def _ensure_pending(request: PaymentRequest) -> None:
    if request.status != PaymentRequestStatus.PENDING:
        raise ValueError(f'Payment request is already {request.status.value}')


def cancel_request(
    db: Session,
    *,
    request_id: uuid.UUID,
    vendor_id: uuid.UUID | None = None,
) -> PaymentRequest:
    """Cancel a pending request. ``vendor_id`` scopes payer cancellations to their own vendor link."""
    request = get_request(db, request_id)
    if vendor_id is not None and request.vendor_id != vendor_id:
        raise ValueError('Payment request not found')
    _ensure_pending(request)
    request.status = PaymentRequestStatus.CANCELLED
    request.updated_at = _now()
    db.flush()
    return request


def complete_request(db: Session, *, request_id: uuid.UUID, transaction_id: uuid.UUID) -> PaymentRequest:
    """Mark a pending request fulfilled; status and back-reference go out in one UPDATE."""
    request = get_request(db, request_id)
    _ensure_pending(request)
    request.status = PaymentRequestStatus.COMPLETED
    request.processed_transaction_id = transaction_id
    request.updated_at = _now()
    db.flush()
    return request


def process_request(
    db: Session,
    *,
    request_id: uuid.UUID,
    payment_method: PaymentMethod | str,
) -> tuple[PaymentRequest, Transaction]:
    """Record the payment for a single request and complete it in the caller's transaction."""
    request = get_request(db, request_id)
    _ensure_pending(request)
    transaction = record_payment(
        db,
        vendor_id=request.vendor_id,
        amount=request.amount,
        payment_method=payment_method,
        description=payment_description(request.payer_name),
    )
    complete_request(db, request_id=request.id, transaction_id=transaction.id)
    return request, transaction
