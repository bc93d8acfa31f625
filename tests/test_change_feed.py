from __future__ import annotations

import unittest
import uuid
from decimal import Decimal

from market_pay.services.change_feed import TRACKED_TABLES, ChangeFeed, install_change_tracking
from market_pay.services.payment_request_service import process_request, submit_request
from market_pay.services.transaction_service import delete_transaction, record_payment
from market_pay.services.vendor_service import create_vendor, delete_vendor
from tests.db_support import make_session_factory


class ChangeFeedTests(unittest.TestCase):
    def test_nothing_new_returns_same_cursor(self) -> None:
        feed = ChangeFeed()
        self.assertEqual(feed.changes_since(0), (0, []))

    def test_changes_are_filtered_by_table_and_vendor(self) -> None:
        feed = ChangeFeed()
        mine, theirs = uuid.uuid4(), uuid.uuid4()
        feed.publish({('transactions', theirs)})
        cursor = feed.publish({('payment_requests', mine)})

        self.assertEqual(cursor, 2)
        self.assertEqual(feed.changes_since(0, tables=['transactions'], vendor_id=mine), (2, []))
        self.assertEqual(feed.changes_since(0, vendor_id=mine), (2, ['payment_requests']))
        self.assertEqual(feed.changes_since(1), (2, ['payment_requests']))

    def test_vendorless_changes_reach_every_vendor(self) -> None:
        feed = ChangeFeed()
        feed.publish({('vendors', None)})
        self.assertEqual(feed.changes_since(0, vendor_id=uuid.uuid4()), (1, ['vendors']))

    def test_stale_cursor_reloads_everything_watched(self) -> None:
        feed = ChangeFeed(retention=2)
        for _ in range(5):
            feed.publish({('vendors', None)})

        self.assertEqual(feed.changes_since(1), (5, list(TRACKED_TABLES)))
        self.assertEqual(feed.changes_since(1, tables=['transactions']), (5, ['transactions']))
        self.assertEqual(feed.changes_since(3), (5, ['vendors']))


class ChangeTrackingTests(unittest.TestCase):
    def setUp(self) -> None:
        self.feed = ChangeFeed()
        factory = make_session_factory()
        install_change_tracking(self.feed, factory)
        self.db = factory()

    def tearDown(self) -> None:
        self.db.close()

    def test_commit_publishes_written_tables(self) -> None:
        vendor = create_vendor(self.db, name='Fresh')
        self.db.commit()
        cursor = self.feed.cursor

        record_payment(self.db, vendor_id=vendor.id, amount=Decimal('3'), payment_method='card')
        self.db.commit()

        _, changed = self.feed.changes_since(cursor)
        self.assertEqual(changed, ['transactions'])
        _, changed = self.feed.changes_since(cursor, vendor_id=uuid.uuid4())
        self.assertEqual(changed, [])

    def test_rollback_publishes_nothing(self) -> None:
        create_vendor(self.db, name='Never Saved')
        self.db.rollback()
        self.assertEqual(self.feed.cursor, 0)

    def test_processing_a_request_touches_both_tables(self) -> None:
        vendor = create_vendor(self.db, name='Fresh')
        request = submit_request(self.db, vendor_id=vendor.id, amount=Decimal('4'), payer_name='Alice')
        self.db.commit()
        cursor = self.feed.cursor

        process_request(self.db, request_id=request.id, payment_method='cash')
        self.db.commit()

        _, changed = self.feed.changes_since(cursor, vendor_id=vendor.id)
        self.assertEqual(sorted(changed), ['payment_requests', 'transactions'])

    def test_deletes_report_cascaded_tables(self) -> None:
        vendor = create_vendor(self.db, name='Fresh')
        transaction = record_payment(self.db, vendor_id=vendor.id, amount=Decimal('3'), payment_method='card')
        self.db.commit()

        cursor = self.feed.cursor
        delete_transaction(self.db, transaction_id=transaction.id)
        self.db.commit()
        _, changed = self.feed.changes_since(cursor)
        self.assertEqual(sorted(changed), ['payment_requests', 'transactions'])

        cursor = self.feed.cursor
        delete_vendor(self.db, vendor_id=vendor.id)
        self.db.commit()
        _, changed = self.feed.changes_since(cursor, vendor_id=vendor.id)
        self.assertEqual(sorted(changed), list(sorted(TRACKED_TABLES)))


if __name__ == '__main__':
    unittest.main()
