from __future__ import annotations

import unittest
from decimal import Decimal

from ledger_support import PACKAGE_TABLE, LedgerTestCase
from sqlalchemy import select

from brewops.errors import ConflictError, InsufficientResourceError, ValidationError
from brewops.models import (
    BatchPackaging,
    BatchStage,
    BatchStatus,
    CatalogItem,
    InventoryRecord,
    KegStatus,
    PackageKegCode,
)
from brewops.services import batch_service, packaging_service
from brewops.services.keg_service import get_keg_by_code, list_transactions
from brewops.services.packaging_service import PackagingResult, VolumeAdjustmentPrompt


class PackageTests(LedgerTestCase):
    def _package(self, package_type: str = '12oz Can', quantity: int = 100, **kwargs):
        kwargs.setdefault('location_id', self.location_id('Cold Room'))
        return packaging_service.package(
            self.db, PACKAGE_TABLE, batch_id='HJ-001', package_type=package_type, quantity=quantity, **kwargs
        )

    def _finished_goods(self, identifier: str) -> list[InventoryRecord]:
        return self.db.execute(
            select(InventoryRecord).where(InventoryRecord.identifier == identifier)
        ).scalars().all()

    def test_cans_draw_down_batch_and_credit_finished_goods(self) -> None:
        self.open_batch(volume='5.0')

        result = self._package()
        self.db.commit()

        self.assertIsInstance(result, PackagingResult)
        self.assertEqual(result.new_volume, Decimal('4.733'))
        self.assertEqual(result.new_identifier, 'Hazy Jack 12oz Can')
        batch = batch_service.get_batch(self.db, 'HJ-001')
        self.assertEqual(batch.volume, Decimal('4.733'))
        self.assertEqual(batch.stage, BatchStage.PACKAGING)

        rows = self._finished_goods('Hazy Jack 12oz Can')
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].quantity, Decimal('100'))
        self.assertEqual(rows[0].location_id, self.location_id('Cold Room'))
        self.assertEqual(rows[0].price, Decimal('2.50'))
        self.assertEqual(rows[0].type, 'Finished Goods')

    def test_over_draw_returns_prompt_and_writes_nothing(self) -> None:
        self.open_batch(volume='1.0')

        result = self._package('1/2 BBL Keg', 3)
        self.db.commit()

        self.assertIsInstance(result, VolumeAdjustmentPrompt)
        self.assertEqual(result.shortfall, Decimal('0.5'))
        self.assertIn('1.500 barrels needed, 1.000 barrels available', result.message)
        self.assertEqual(result.to_body()['prompt'], 'volumeAdjustment')
        batch = batch_service.get_batch(self.db, 'HJ-001')
        self.assertEqual(batch.volume, Decimal('1'))
        self.assertIsNone(batch.stage)
        self.assertEqual(self.db.execute(select(BatchPackaging)).scalars().all(), [])
        self.assertEqual(self._finished_goods('Hazy Jack 1/2 BBL Keg'), [])

    def test_confirmed_increase_tops_up_then_packages(self) -> None:
        self.open_batch(volume='1.0')

        result = self._package('1/2 BBL Keg', 3, allow_volume_increase=True)
        self.db.commit()

        self.assertIsInstance(result, PackagingResult)
        self.assertEqual(result.new_volume, Decimal('0'))
        rows = self._finished_goods('Hazy Jack 1/2 BBL Keg')
        self.assertEqual(rows[0].quantity, Decimal('3'))
        self.assertTrue(rows[0].is_keg_deposit_item)
        actions = [row['action'] for row in batch_service.list_actions(self.db, 'HJ-001')]
        self.assertTrue(any(action.startswith('Volume increased by 0.500 barrels') for action in actions))

    def test_draw_within_tolerance_is_allowed(self) -> None:
        self.open_batch(volume='0.26')

        result = self._package('12oz Can', 100)

        self.assertIsInstance(result, PackagingResult)
        self.assertEqual(result.new_volume, Decimal('0'))

    def test_keg_codes_fill_kegs(self) -> None:
        self.open_batch(volume='5.0')
        cold_room = self.location_id('Cold Room')

        result = self._package('1/2 BBL Keg', 2, keg_codes=['KEG-001', 'KEG-002'])
        self.db.commit()

        for code in ('KEG-001', 'KEG-002'):
            keg = get_keg_by_code(self.db, code)
            self.assertEqual(keg.status, KegStatus.FILLED)
            self.assertEqual(keg.location_id, cold_room)
            self.assertEqual(keg.product_id, self.product_id())
            transactions = list_transactions(self.db, keg.id)
            self.assertEqual([row['action'] for row in transactions], ['Filled'])
            self.assertEqual(transactions[0]['batchId'], 'HJ-001')
            self.assertEqual(transactions[0]['location'], f'Location: {cold_room}')

        listed = packaging_service.list_packaging(self.db, 'HJ-001')
        self.assertEqual(listed[0]['id'], result.packaging_id)
        self.assertEqual(listed[0]['kegCodes'], ['KEG-001', 'KEG-002'])

    def test_non_empty_keg_aborts_packaging(self) -> None:
        self.open_batch(volume='5.0')
        keg = get_keg_by_code(self.db, 'KEG-002')
        keg.status = KegStatus.FILLED
        self.db.commit()

        with self.assertRaisesRegex(ValidationError, 'Keg KEG-002 is not empty'):
            self._package('1/2 BBL Keg', 2, keg_codes=['KEG-001', 'KEG-002'])
        self.db.rollback()

        first = get_keg_by_code(self.db, 'KEG-001')
        self.assertEqual(first.status, KegStatus.EMPTY)
        self.assertEqual(list_transactions(self.db, first.id), [])
        self.assertEqual(batch_service.get_batch(self.db, 'HJ-001').volume, Decimal('5'))
        self.assertEqual(self.db.execute(select(PackageKegCode)).scalars().all(), [])

    def test_keg_code_rules(self) -> None:
        self.open_batch(volume='5.0')

        with self.assertRaisesRegex(ValidationError, 'Expected 2 keg codes, got 1'):
            self._package('1/2 BBL Keg', 2, keg_codes=['KEG-001'])
        with self.assertRaisesRegex(ValidationError, 'Duplicate keg codes'):
            self._package('1/2 BBL Keg', 2, keg_codes=['KEG-001', 'KEG-001'])
        with self.assertRaisesRegex(ValidationError, 'Invalid keg code'):
            self._package('1/2 BBL Keg', 1, keg_codes=['keg one'])

    def test_keg_codes_are_ignored_for_cans(self) -> None:
        self.open_batch(volume='5.0')

        result = self._package('12oz Can', 1, keg_codes=['KEG-001'])
        self.db.commit()

        self.assertIsInstance(result, PackagingResult)
        self.assertEqual(get_keg_by_code(self.db, 'KEG-001').status, KegStatus.EMPTY)
        self.assertEqual(self.db.execute(select(PackageKegCode)).scalars().all(), [])
        self.assertEqual(packaging_service.list_packaging(self.db, 'HJ-001')[0]['kegCodes'], [])

    def test_keg_packaging_quantity_cannot_be_edited(self) -> None:
        self.open_batch(volume='5.0')
        result = self._package('1/2 BBL Keg', 2, keg_codes=['KEG-001', 'KEG-002'])
        self.db.commit()

        with self.assertRaisesRegex(ValidationError, 'Cannot change the quantity of keg packaging'):
            packaging_service.update_packaging(
                self.db, PACKAGE_TABLE, batch_id='HJ-001', packaging_id=result.packaging_id, new_quantity=1
            )
        self.db.rollback()

        self.assertEqual(self.db.get(BatchPackaging, result.packaging_id).quantity, 2)
        self.assertEqual(batch_service.get_batch(self.db, 'HJ-001').volume, Decimal('4'))
        self.assertEqual(self.on_hand('Hazy Jack 1/2 BBL Keg'), Decimal('2'))
        self.assertEqual(len(self.db.execute(select(PackageKegCode)).scalars().all()), 2)

    def test_request_checks(self) -> None:
        self.open_batch(volume='5.0')

        with self.assertRaisesRegex(ValidationError, 'Invalid packageType: Firkin'):
            self._package('Firkin', 1)
        with self.assertRaisesRegex(ValidationError, 'quantity must be a positive integer'):
            self._package('12oz Can', 0)
        with self.assertRaisesRegex(ValidationError, 'Invalid locationId'):
            self._package('12oz Can', 1, location_id=self.location_id('Rickhouse'))

    def test_disabled_finished_good_is_rejected(self) -> None:
        self.open_batch(volume='5.0')
        self.db.get(CatalogItem, 'Hazy Jack 12oz Can').enabled = False
        self.db.commit()

        with self.assertRaisesRegex(ValidationError, 'Finished good not found or disabled: Hazy Jack 12oz Can'):
            self._package()

    def test_batch_without_volume_or_completed_is_rejected(self) -> None:
        self.open_batch(volume=None)
        with self.assertRaisesRegex(ValidationError, 'Batch volume not set'):
            self._package()

        batch_service.update_batch(self.db, 'HJ-001', status=BatchStatus.COMPLETED.value)
        with self.assertRaises(ConflictError):
            self._package()


class PackagingEditTests(LedgerTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.open_batch(volume='5.0')
        result = packaging_service.package(
            self.db,
            PACKAGE_TABLE,
            batch_id='HJ-001',
            package_type='12oz Can',
            quantity=100,
            location_id=self.location_id('Cold Room'),
        )
        self.db.commit()
        self.packaging_id = result.packaging_id

    def test_lower_count_returns_volume_and_stock(self) -> None:
        new_volume = packaging_service.update_packaging(
            self.db, PACKAGE_TABLE, batch_id='HJ-001', packaging_id=self.packaging_id, new_quantity=50
        )
        self.db.commit()

        self.assertEqual(new_volume, Decimal('4.8665'))
        self.assertEqual(self.on_hand('Hazy Jack 12oz Can'), Decimal('50'))
        packaging = self.db.get(BatchPackaging, self.packaging_id)
        self.assertEqual(packaging.quantity, 50)

    def test_higher_count_needs_batch_volume(self) -> None:
        with self.assertRaises(InsufficientResourceError) as ctx:
            packaging_service.update_packaging(
                self.db, PACKAGE_TABLE, batch_id='HJ-001', packaging_id=self.packaging_id, new_quantity=2000
            )

        self.assertEqual(
            str(ctx.exception), 'Insufficient batch volume: 5.340 barrels required, 5.000 available'
        )

    def test_higher_count_fails_when_stock_was_sold(self) -> None:
        row = self.db.execute(
            select(InventoryRecord).where(InventoryRecord.identifier == 'Hazy Jack 12oz Can')
        ).scalar_one()
        row.quantity = Decimal('10')
        self.db.commit()

        with self.assertRaisesRegex(InsufficientResourceError, 'Cannot reduce inventory below zero'):
            packaging_service.update_packaging(
                self.db, PACKAGE_TABLE, batch_id='HJ-001', packaging_id=self.packaging_id, new_quantity=50
            )

    def test_delete_restores_volume_and_removes_empty_stock_row(self) -> None:
        new_volume = packaging_service.delete_packaging(self.db, batch_id='HJ-001', packaging_id=self.packaging_id)
        self.db.commit()

        self.assertEqual(new_volume, Decimal('5'))
        self.assertEqual(batch_service.get_batch(self.db, 'HJ-001').volume, Decimal('5'))
        self.assertEqual(
            self.db.execute(select(InventoryRecord).where(InventoryRecord.identifier == 'Hazy Jack 12oz Can')).all(),
            [],
        )
        self.assertEqual(packaging_service.list_packaging(self.db, 'HJ-001'), [])

    def test_completed_batch_packaging_cannot_be_edited_or_deleted(self) -> None:
        batch_service.update_batch(self.db, 'HJ-001', status=BatchStatus.COMPLETED.value)
        self.db.commit()

        with self.assertRaises(ConflictError):
            packaging_service.update_packaging(
                self.db, PACKAGE_TABLE, batch_id='HJ-001', packaging_id=self.packaging_id, new_quantity=50
            )
        self.db.rollback()
        with self.assertRaises(ConflictError):
            packaging_service.delete_packaging(self.db, batch_id='HJ-001', packaging_id=self.packaging_id)
        self.db.rollback()

        self.assertEqual(self.db.get(BatchPackaging, self.packaging_id).quantity, 100)
        self.assertEqual(batch_service.get_batch(self.db, 'HJ-001').volume, Decimal('4.733'))
        self.assertEqual(self.on_hand('Hazy Jack 12oz Can'), Decimal('100'))


if __name__ == '__main__':
    unittest.main()
