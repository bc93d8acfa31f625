from __future__ import annotations

import unittest
import uuid
from decimal import Decimal

from sqlalchemy import select

from market_pay.models import AuditLog, PaymentMethod
from market_pay.services.audit_service import AuditAction, log_audit
from tests.db_support import make_session_factory


class AuditServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()

    def tearDown(self) -> None:
        self.db.close()

    def test_action_is_stored_as_plain_text(self) -> None:
        log_audit(self.db, actor_principal_id=None, action=AuditAction.PAYMENT_RECORDED, vendor_id=None, ip='127.0.0.1')
        self.db.commit()

        [entry] = self.db.execute(select(AuditLog)).scalars().all()
        self.assertEqual(entry.action, 'PAYMENT_RECORDED')
        self.assertEqual(entry.meta, {})

    def test_unknown_action_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            log_audit(self.db, actor_principal_id=None, action='PAYMENT_REFUNDED', vendor_id=None, ip=None)

    def test_payment_metadata_is_json_safe(self) -> None:
        transaction_id = uuid.uuid4()
        log_audit(
            self.db,
            actor_principal_id=None,
            action=AuditAction.BATCH_COMMITTED,
            vendor_id=None,
            ip=None,
            metadata={
                'payment_method': PaymentMethod.CASH,
                'total_committed': Decimal('19.75'),
                'transaction_ids': [transaction_id],
            },
        )
        self.db.commit()

        [entry] = self.db.execute(select(AuditLog)).scalars().all()
        self.assertEqual(
            entry.meta,
            {'payment_method': 'cash', 'total_committed': '19.75', 'transaction_ids': [str(transaction_id)]},
        )


if __name__ == '__main__':
    unittest.main()
