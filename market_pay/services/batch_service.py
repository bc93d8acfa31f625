"""Batch reconciliation of payment requests and manual entries.

An operator curates a batch of pending payment requests and ad-hoc manual
payments, then commits the whole batch under one payment method. Each item
becomes its own ledger transaction; request-backed items also complete the
originating request. Items are written one after another in the order they
were added, each in its own database transaction, and a failure on one item
does not undo or stop the others.
"""
from __future__ import annotations

import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from market_pay.models import PaymentMethod, PaymentRequest, PaymentRequestStatus
from market_pay.services.calculator import MAX_AMOUNT
from market_pay.services.payment_request_service import complete_request, payment_description
from market_pay.services.transaction_service import parse_payment_method, record_payment

logger = logging.getLogger(__name__)

UNKNOWN_VENDOR = 'Unknown'


class BatchItemKind(str, Enum):
    REQUEST = 'request'
    MANUAL = 'manual'


@dataclass(frozen=True)
class BatchItem:
    id: str
    kind: BatchItemKind
    vendor_id: uuid.UUID
    vendor_name: str
    amount: Decimal
    payer_name: str
    request_id: uuid.UUID | None = None


@dataclass(frozen=True)
class BatchItemResult:
    item: BatchItem
    transaction_id: uuid.UUID | None
    request_completed: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.transaction_id is not None


@dataclass
class PaymentBatch:
    items: list[BatchItem] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.items)

    def is_empty(self) -> bool:
        return not self.items

    def contains_request(self, request_id: uuid.UUID) -> bool:
        return any(item.request_id == request_id for item in self.items)

    def toggle_request(self, request: PaymentRequest, vendor_name: str | None = None) -> bool:
        """Add the request if absent, remove it if present. Returns True when it ends up in the batch."""
        if self.contains_request(request.id):
            self.discard_request(request.id)
            return False
        if request.status != PaymentRequestStatus.PENDING:
            raise ValueError('Only pending requests can be added to a batch')
        self.items.append(
            BatchItem(
                id=f'req-{request.id}',
                kind=BatchItemKind.REQUEST,
                vendor_id=request.vendor_id,
                vendor_name=vendor_name or UNKNOWN_VENDOR,
                amount=Decimal(request.amount),
                payer_name=request.payer_name,
                request_id=request.id,
            )
        )
        return True

    def add_manual(
        self,
        *,
        vendor_id: uuid.UUID | None,
        vendor_name: str | None,
        amount: Decimal,
        payer_name: str,
    ) -> BatchItem:
        if not vendor_id:
            raise ValueError('Select a vendor')
        if amount is None or amount <= 0:
            raise ValueError('Please enter an amount')
        if amount >= MAX_AMOUNT:
            raise ValueError('Please enter a valid amount')
        clean_payer = (payer_name or '').strip()
        if not clean_payer:
            raise ValueError('Please enter the payer name')

        item = BatchItem(
            id=f'manual-{uuid.uuid4().hex[:12]}',
            kind=BatchItemKind.MANUAL,
            vendor_id=vendor_id,
            vendor_name=vendor_name or UNKNOWN_VENDOR,
            amount=amount,
            payer_name=clean_payer,
        )
        self.items.append(item)
        return item

    def discard_request(self, request_id: uuid.UUID) -> None:
        self.items = [item for item in self.items if item.request_id != request_id]

    def remove(self, item_id: str) -> None:
        self.items = [item for item in self.items if item.id != item_id]

    def clear(self) -> None:
        self.items = []

    @property
    def total(self) -> Decimal:
        return sum((item.amount for item in self.items), Decimal('0'))

    def vendor_summary(self) -> OrderedDict[str, Decimal]:
        summary: OrderedDict[str, Decimal] = OrderedDict()
        for item in self.items:
            summary[item.vendor_name] = summary.get(item.vendor_name, Decimal('0')) + item.amount
        return summary

    def description(self) -> str:
        parts = [f'{name} (${amount:.2f})' for name, amount in self.vendor_summary().items()]
        return 'Batch payment: ' + ', '.join(parts)


def commit_batch(
    db: Session,
    batch: PaymentBatch,
    payment_method: PaymentMethod | str,
) -> list[BatchItemResult]:
    if batch.is_empty():
        raise ValueError('Add at least one payment to the batch')
    method = parse_payment_method(payment_method)

    logger.info('committing batch of %d item(s) as %s: %s', len(batch), method.value, batch.description())
    results: list[BatchItemResult] = []
    for item in batch.items:
        try:
            transaction = record_payment(
                db,
                vendor_id=item.vendor_id,
                amount=item.amount,
                payment_method=method,
                description=payment_description(item.payer_name),
            )
            transaction_id = transaction.id
            db.commit()
        except (SQLAlchemyError, ValueError) as exc:
            db.rollback()
            logger.exception('failed to create transaction for batch item %s', item.id)
            results.append(BatchItemResult(item=item, transaction_id=None, error=str(exc)))
            continue

        request_completed = False
        if item.kind == BatchItemKind.REQUEST and item.request_id is not None:
            try:
                complete_request(db, request_id=item.request_id, transaction_id=transaction_id)
                db.commit()
                request_completed = True
            except (SQLAlchemyError, ValueError):
                db.rollback()
                logger.warning(
                    'transaction %s created but request %s was not marked completed',
                    transaction_id,
                    item.request_id,
                    exc_info=True,
                )
        results.append(BatchItemResult(item=item, transaction_id=transaction_id, request_completed=request_completed))

    batch.clear()
    failed = sum(1 for result in results if not result.ok)
    if failed:
        logger.warning('batch finished with %d of %d item(s) failed', failed, len(results))
    return results


def results_summary(results: list[BatchItemResult]) -> dict:
    committed = [result for result in results if result.ok]
    return {
        'items': len(results),
        'committed': len(committed),
        'failed': len(results) - len(committed),
        'requests_completed': sum(1 for result in results if result.request_completed),
        'total_committed': str(sum((result.item.amount for result in committed), Decimal('0'))),
    }
