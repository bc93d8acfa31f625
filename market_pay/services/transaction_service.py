from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from market_pay.models import PaymentMethod, Transaction, Vendor
from market_pay.services.calculator import MAX_AMOUNT


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def parse_payment_method(raw: str | PaymentMethod | None) -> PaymentMethod:
    if isinstance(raw, PaymentMethod):
        return raw
    try:
        return PaymentMethod(str(raw or '').strip().lower())
    except ValueError as exc:
        raise ValueError('Choose card, cash or other') from exc


def _validate_amount(amount: Decimal) -> Decimal:
    if amount is None or amount <= 0 or amount >= MAX_AMOUNT:
        raise ValueError('Please enter a valid amount')
    return amount


def _clean_description(description: str | None) -> str | None:
    if description is None:
        return None
    return description.strip() or None


def list_transactions(
    db: Session,
    *,
    vendor_id: uuid.UUID | None = None,
    limit: int | None = None,
) -> list[Transaction]:
    query = select(Transaction).order_by(Transaction.created_at.desc(), Transaction.id.desc())
    if vendor_id:
        query = query.where(Transaction.vendor_id == vendor_id)
    if limit:
        query = query.limit(limit)
    return db.execute(query).scalars().all()


def get_transaction(db: Session, transaction_id: uuid.UUID) -> Transaction:
    transaction = db.get(Transaction, transaction_id)
    if not transaction:
        raise ValueError('Transaction not found')
    return transaction


def record_payment(
    db: Session,
    *,
    vendor_id: uuid.UUID,
    amount: Decimal,
    payment_method: PaymentMethod | str,
    description: str | None = None,
) -> Transaction:
    if not db.get(Vendor, vendor_id):
        raise ValueError('Vendor not found')
    transaction = Transaction(
        vendor_id=vendor_id,
        amount=_validate_amount(amount),
        description=_clean_description(description),
        payment_method=parse_payment_method(payment_method),
    )
    db.add(transaction)
    db.flush()
    return transaction


def update_transaction(
    db: Session,
    *,
    transaction_id: uuid.UUID,
    amount: Decimal,
    payment_method: PaymentMethod | str,
    description: str | None = None,
) -> Transaction:
    transaction = get_transaction(db, transaction_id)
    transaction.amount = _validate_amount(amount)
    transaction.description = _clean_description(description)
    transaction.payment_method = parse_payment_method(payment_method)
    transaction.updated_at = _now()
    db.flush()
    return transaction


def delete_transaction(db: Session, *, transaction_id: uuid.UUID) -> dict:
    """Delete a ledger entry; requests it fulfilled keep their rows with the reference nulled."""
    transaction = get_transaction(db, transaction_id)
    snapshot = {'id': transaction.id, 'vendor_id': transaction.vendor_id, 'amount': transaction.amount}
    db.delete(transaction)
    db.flush()
    db.expire_all()
    return snapshot
