from __future__ import annotations

import unittest

from ledger_support import LedgerTestCase

from brewops.errors import ConflictError, NotFoundError, ValidationError
from brewops.models import KegStatus
from brewops.services import keg_service


class RegisterKegTests(LedgerTestCase):
    def test_new_keg_starts_empty_with_created_transaction(self) -> None:
        keg = keg_service.register_keg(self.db, code='KEG-100', packaging_type='1/6 BBL Keg')
        self.db.commit()

        self.assertEqual(keg.status, KegStatus.EMPTY)
        transactions = keg_service.list_transactions(self.db, keg.id)
        self.assertEqual([(row['action'], row['location']) for row in transactions], [('Created', 'N/A')])

    def test_duplicate_code_conflicts(self) -> None:
        with self.assertRaisesRegex(ConflictError, 'Keg code already exists'):
            keg_service.register_keg(self.db, code='KEG-001')

    def test_code_format_is_enforced(self) -> None:
        for code in ('keg-9', 'KEG 9', ''):
            with self.assertRaises(ValidationError):
                keg_service.register_keg(self.db, code=code)

    def test_unknown_customer_is_rejected(self) -> None:
        with self.assertRaisesRegex(ValidationError, 'Invalid customerId: 999'):
            keg_service.register_keg(self.db, code='KEG-101', customer_id=999)


class UpdateKegTests(LedgerTestCase):
    def _keg_id(self, code: str = 'KEG-001') -> int:
        return keg_service.get_keg_by_code(self.db, code).id

    def test_manual_status_change_is_logged_with_status_as_action(self) -> None:
        keg_id = self._keg_id()

        keg = keg_service.update_keg(self.db, keg_id, status='Broken')
        self.db.commit()

        self.assertEqual(keg.status, KegStatus.BROKEN)
        self.assertEqual([row['action'] for row in keg_service.list_transactions(self.db, keg_id)], ['Broken'])

    def test_any_status_may_follow_any_other(self) -> None:
        keg_id = self._keg_id()

        keg_service.update_keg(self.db, keg_id, status='Destroyed')
        keg = keg_service.update_keg(self.db, keg_id, status='Filled')

        self.assertEqual(keg.status, KegStatus.FILLED)

    def test_whereabouts_follow_location_then_customer(self) -> None:
        keg_id = self._keg_id()
        cold_room = self.location_id('Cold Room')

        keg_service.update_keg(self.db, keg_id, location_id=cold_room)
        keg_service.update_keg(self.db, keg_id, location_id=None, customer_id=self.customer().id)
        self.db.commit()

        locations = [row['location'] for row in keg_service.list_transactions(self.db, keg_id)]
        self.assertEqual(locations, [f'Location: {cold_room}', 'Customer: Corner Tap'])

    def test_invalid_status_and_missing_keg(self) -> None:
        with self.assertRaisesRegex(ValidationError, 'Invalid status: Lost'):
            keg_service.update_keg(self.db, self._keg_id(), status='Lost')
        with self.assertRaises(NotFoundError):
            keg_service.update_keg(self.db, 999, status='Empty')

    def test_list_filters_by_status(self) -> None:
        keg_service.update_keg(self.db, self._keg_id('KEG-003'), status='Broken')
        self.db.commit()

        empty = keg_service.list_kegs(self.db, status='Empty')
        broken = keg_service.list_kegs(self.db, status='Broken')

        self.assertEqual([row['code'] for row in empty], ['KEG-001', 'KEG-002', 'KEG-004'])
        self.assertEqual([row['code'] for row in broken], ['KEG-003'])


class KegMovementTests(LedgerTestCase):
    def test_only_filled_kegs_ship(self) -> None:
        with self.assertRaisesRegex(ValidationError, 'Keg KEG-001 is not filled'):
            keg_service.ship_keg(self.db, code='KEG-001', customer=self.customer(), invoice_id=1)

    def test_unknown_code_cannot_be_filled(self) -> None:
        with self.assertRaisesRegex(ValidationError, 'Keg not found: KEG-999'):
            keg_service.fill_keg(
                self.db, code='KEG-999', product_id=self.product_id(), batch_id='HJ-001', location_id=self.location_id()
            )

    def test_describe_whereabouts(self) -> None:
        self.assertEqual(keg_service.describe_whereabouts(location_id=3, customer_name='Corner Tap'), 'Location: 3')
        self.assertEqual(keg_service.describe_whereabouts(location_id=None, customer_name='Corner Tap'), 'Customer: Corner Tap')
        self.assertEqual(keg_service.describe_whereabouts(location_id=None, customer_name=None), 'N/A')


if __name__ == '__main__':
    unittest.main()
