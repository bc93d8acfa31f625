from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from decimal import Decimal

from market_pay.models import PaymentMethod, Transaction, Vendor


@dataclass(frozen=True)
class VendorTotal:
    vendor_id: uuid.UUID
    name: str
    total: Decimal
    count: int


@dataclass
class LedgerSummary:
    total: Decimal = Decimal('0')
    count: int = 0
    method_totals: dict[PaymentMethod, Decimal] = field(
        default_factory=lambda: {method: Decimal('0') for method in PaymentMethod}
    )
    method_counts: dict[PaymentMethod, int] = field(default_factory=lambda: {method: 0 for method in PaymentMethod})
    vendor_totals: list[VendorTotal] = field(default_factory=list)

    @property
    def card_total(self) -> Decimal:
        return self.method_totals[PaymentMethod.CARD]

    @property
    def cash_total(self) -> Decimal:
        return self.method_totals[PaymentMethod.CASH]

    @property
    def other_total(self) -> Decimal:
        return self.method_totals[PaymentMethod.OTHER]

    @property
    def card_count(self) -> int:
        return self.method_counts[PaymentMethod.CARD]

    @property
    def cash_count(self) -> int:
        return self.method_counts[PaymentMethod.CASH]

    @property
    def other_count(self) -> int:
        return self.method_counts[PaymentMethod.OTHER]


def ledger_total(transactions: list[Transaction]) -> Decimal:
    return sum((Decimal(t.amount) for t in transactions), Decimal('0'))


def summarize(transactions: list[Transaction], vendors: list[Vendor] | None = None) -> LedgerSummary:
    """Totals by payment method and, when ``vendors`` is given, by vendor (largest first)."""
    summary = LedgerSummary()
    per_vendor: dict[uuid.UUID, tuple[Decimal, int]] = {}
    for transaction in transactions:
        amount = Decimal(transaction.amount)
        method = PaymentMethod(transaction.payment_method)
        summary.total += amount
        summary.count += 1
        summary.method_totals[method] += amount
        summary.method_counts[method] += 1
        vendor_total, vendor_count = per_vendor.get(transaction.vendor_id, (Decimal('0'), 0))
        per_vendor[transaction.vendor_id] = (vendor_total + amount, vendor_count + 1)

    if vendors is not None:
        rows = [
            VendorTotal(
                vendor_id=vendor.id,
                name=vendor.name,
                total=per_vendor.get(vendor.id, (Decimal('0'), 0))[0],
                count=per_vendor.get(vendor.id, (Decimal('0'), 0))[1],
            )
            for vendor in vendors
        ]
        # Stable sort keeps the incoming (name) order among equal totals.
        summary.vendor_totals = sorted(rows, key=lambda row: row.total, reverse=True)
    return summary
