from __future__ import annotations

import unittest
import uuid
from decimal import Decimal
from unittest.mock import patch

from sqlalchemy import select

from market_pay.models import PaymentMethod, PaymentRequestStatus, Transaction
from market_pay.services.batch_service import BatchItemKind, PaymentBatch, commit_batch, results_summary
from market_pay.services.payment_request_service import cancel_request, get_request, submit_request
from market_pay.services.vendor_service import create_vendor
from tests.db_support import make_session_factory


class PaymentBatchTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.vendor = create_vendor(self.db, name='Fresh Produce Co.')
        self.db.commit()

    def tearDown(self) -> None:
        self.db.close()

    def _request(self, amount: str, payer: str):
        request = submit_request(self.db, vendor_id=self.vendor.id, amount=Decimal(amount), payer_name=payer)
        self.db.commit()
        return request

    def test_total_is_sum_of_items(self) -> None:
        batch = PaymentBatch()
        batch.toggle_request(self._request('12.50', 'Alice'), vendor_name=self.vendor.name)
        batch.add_manual(vendor_id=self.vendor.id, vendor_name=self.vendor.name, amount=Decimal('7.25'), payer_name='Bob')

        self.assertEqual(len(batch), 2)
        self.assertEqual(batch.total, Decimal('19.75'))
        self.assertEqual(batch.description(), 'Batch payment: Fresh Produce Co. ($19.75)')

    def test_double_toggle_restores_batch(self) -> None:
        batch = PaymentBatch()
        batch.add_manual(vendor_id=self.vendor.id, vendor_name=self.vendor.name, amount=Decimal('3'), payer_name='Bob')
        before = list(batch.items)
        request = self._request('5', 'Alice')

        self.assertTrue(batch.toggle_request(request, vendor_name=self.vendor.name))
        self.assertTrue(batch.contains_request(request.id))
        self.assertFalse(batch.toggle_request(request, vendor_name=self.vendor.name))

        self.assertEqual(batch.items, before)

    def test_request_item_ids_are_derived_from_the_request(self) -> None:
        batch = PaymentBatch()
        request = self._request('5', 'Alice')
        batch.toggle_request(request, vendor_name=self.vendor.name)

        item = batch.items[0]
        self.assertEqual(item.id, f'req-{request.id}')
        self.assertEqual(item.kind, BatchItemKind.REQUEST)
        self.assertEqual(item.payer_name, 'Alice')

    def test_only_pending_requests_can_be_added(self) -> None:
        request = self._request('5', 'Alice')
        cancel_request(self.db, request_id=request.id)
        self.db.commit()

        with self.assertRaisesRegex(ValueError, 'Only pending requests'):
            PaymentBatch().toggle_request(request, vendor_name=self.vendor.name)

    def test_manual_item_validation(self) -> None:
        batch = PaymentBatch()
        with self.assertRaisesRegex(ValueError, 'Select a vendor'):
            batch.add_manual(vendor_id=None, vendor_name=None, amount=Decimal('1'), payer_name='Bob')
        with self.assertRaisesRegex(ValueError, 'Please enter an amount'):
            batch.add_manual(vendor_id=self.vendor.id, vendor_name='x', amount=Decimal('0'), payer_name='Bob')
        with self.assertRaisesRegex(ValueError, 'payer name'):
            batch.add_manual(vendor_id=self.vendor.id, vendor_name='x', amount=Decimal('1'), payer_name='   ')
        self.assertTrue(batch.is_empty())

    def test_manual_ids_are_unique_and_removable(self) -> None:
        batch = PaymentBatch()
        first = batch.add_manual(vendor_id=self.vendor.id, vendor_name='V', amount=Decimal('1'), payer_name='A')
        second = batch.add_manual(vendor_id=self.vendor.id, vendor_name='V', amount=Decimal('1'), payer_name='A')
        self.assertNotEqual(first.id, second.id)

        batch.remove(first.id)
        self.assertEqual([item.id for item in batch.items], [second.id])

    def test_description_groups_by_vendor_in_insertion_order(self) -> None:
        batch = PaymentBatch()
        other_id = uuid.uuid4()
        batch.add_manual(vendor_id=other_id, vendor_name='Hilltop Bakery', amount=Decimal('4'), payer_name='A')
        batch.add_manual(vendor_id=self.vendor.id, vendor_name='Fresh', amount=Decimal('2.5'), payer_name='B')
        batch.add_manual(vendor_id=other_id, vendor_name='Hilltop Bakery', amount=Decimal('1'), payer_name='C')

        self.assertEqual(batch.description(), 'Batch payment: Hilltop Bakery ($5.00), Fresh ($2.50)')


class CommitBatchTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.vendor = create_vendor(self.db, name='Fresh Produce Co.')
        self.db.commit()

    def tearDown(self) -> None:
        self.db.close()

    def _transactions(self) -> list[Transaction]:
        return self.db.execute(select(Transaction)).scalars().all()

    def test_commit_with_cash_creates_one_transaction_per_item(self) -> None:
        request = submit_request(self.db, vendor_id=self.vendor.id, amount=Decimal('12.50'), payer_name='Alice')
        self.db.commit()
        batch = PaymentBatch()
        batch.toggle_request(request, vendor_name=self.vendor.name)
        batch.add_manual(vendor_id=self.vendor.id, vendor_name=self.vendor.name, amount=Decimal('7.25'), payer_name='Bob')

        results = commit_batch(self.db, batch, 'cash')

        transactions = self._transactions()
        self.assertEqual(len(transactions), 2)
        self.assertTrue(all(t.payment_method == PaymentMethod.CASH for t in transactions))
        self.assertEqual(sum(t.amount for t in transactions), Decimal('19.75'))
        self.assertEqual(
            sorted(t.description for t in transactions),
            ['Payment from Alice', 'Payment from Bob'],
        )
        self.assertTrue(batch.is_empty())
        self.assertTrue(all(result.ok for result in results))

        self.db.expire_all()
        completed = get_request(self.db, request.id)
        self.assertEqual(completed.status, PaymentRequestStatus.COMPLETED)
        self.assertEqual(completed.processed_transaction_id, results[0].transaction_id)
        self.assertTrue(results[0].request_completed)
        self.assertFalse(results[1].request_completed)

    def test_manual_items_never_touch_requests(self) -> None:
        request = submit_request(self.db, vendor_id=self.vendor.id, amount=Decimal('3'), payer_name='Alice')
        self.db.commit()
        batch = PaymentBatch()
        batch.add_manual(vendor_id=self.vendor.id, vendor_name=self.vendor.name, amount=Decimal('3'), payer_name='Alice')

        commit_batch(self.db, batch, PaymentMethod.CARD)

        self.db.expire_all()
        untouched = get_request(self.db, request.id)
        self.assertEqual(untouched.status, PaymentRequestStatus.PENDING)
        self.assertIsNone(untouched.processed_transaction_id)

    def test_empty_batch_is_rejected(self) -> None:
        with self.assertRaisesRegex(ValueError, 'at least one payment'):
            commit_batch(self.db, PaymentBatch(), 'cash')

    def test_unknown_payment_method_is_rejected_before_writing(self) -> None:
        batch = PaymentBatch()
        batch.add_manual(vendor_id=self.vendor.id, vendor_name='V', amount=Decimal('3'), payer_name='A')

        with self.assertRaises(ValueError):
            commit_batch(self.db, batch, 'cheque')
        self.assertEqual(len(batch), 1)
        self.assertEqual(self._transactions(), [])

    def test_failed_item_does_not_stop_the_rest(self) -> None:
        batch = PaymentBatch()
        batch.add_manual(vendor_id=self.vendor.id, vendor_name='V', amount=Decimal('1'), payer_name='A')
        batch.add_manual(vendor_id=uuid.uuid4(), vendor_name='Gone', amount=Decimal('2'), payer_name='B')
        batch.add_manual(vendor_id=self.vendor.id, vendor_name='V', amount=Decimal('3'), payer_name='C')

        with self.assertLogs('market_pay.services.batch_service', level='WARNING'):
            results = commit_batch(self.db, batch, 'card')

        self.assertEqual([result.ok for result in results], [True, False, True])
        self.assertEqual(results[1].error, 'Vendor not found')
        self.assertEqual(sorted(t.amount for t in self._transactions()), [Decimal('1.00'), Decimal('3.00')])
        summary = results_summary(results)
        self.assertEqual(summary['committed'], 2)
        self.assertEqual(summary['failed'], 1)
        self.assertEqual(summary['total_committed'], '4')

    def test_request_cancelled_meanwhile_keeps_transaction(self) -> None:
        request = submit_request(self.db, vendor_id=self.vendor.id, amount=Decimal('6'), payer_name='Alice')
        self.db.commit()
        batch = PaymentBatch()
        batch.toggle_request(request, vendor_name=self.vendor.name)
        cancel_request(self.db, request_id=request.id)
        self.db.commit()

        with patch('market_pay.services.batch_service.logger') as logger_mock:
            results = commit_batch(self.db, batch, 'other')

        self.assertTrue(results[0].ok)
        self.assertFalse(results[0].request_completed)
        logger_mock.warning.assert_called()
        self.assertEqual(len(self._transactions()), 1)


if __name__ == '__main__':
    unittest.main()
