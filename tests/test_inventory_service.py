from __future__ import annotations

import unittest
from datetime import date
from decimal import Decimal
from unittest.mock import patch

from ledger_support import LedgerTestCase
from sqlalchemy import select

from brewops.errors import InsufficientResourceError, NotFoundError, ValidationError
from brewops.models import InventoryAccount, InventoryLoss, InventoryRecord, InventoryStatus
from brewops.seed_example import BREWERY_SITE, DISTILLERY_SITE
from brewops.services import inventory_service
from brewops.services.inventory_service import ReceiveItem


class ReceiveTests(LedgerTestCase):
    def _item(self, **overrides) -> ReceiveItem:
        values = {
            'identifier': '2-Row Barley',
            'item': '2-Row Barley',
            'type': 'Raw Material',
            'quantity': '100',
            'unit': 'lbs',
            'received_date': '2024-02-01',
            'status': 'Stored',
            'site_id': BREWERY_SITE,
            'location_id': self.location_id(),
        }
        values.update(overrides)
        return ReceiveItem(**values)

    def _rows(self, identifier: str) -> list[InventoryRecord]:
        return self.db.execute(select(InventoryRecord).where(InventoryRecord.identifier == identifier)).scalars().all()

    def test_second_receipt_merges_with_weighted_average_cost(self) -> None:
        inventory_service.receive(self.db, [self._item(cost='0.50')])
        self.db.commit()
        inventory_service.receive(self.db, [self._item(total_cost='70')])
        self.db.commit()

        rows = self._rows('2-Row Barley')
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].quantity, Decimal('200'))
        self.assertEqual(rows[0].total_cost, Decimal('120'))
        self.assertEqual(rows[0].cost, Decimal('0.6'))
        self.assertEqual(rows[0].status, InventoryStatus.STORED)

    def test_one_bad_item_rejects_the_whole_receipt(self) -> None:
        with self.assertRaisesRegex(ValidationError, 'proof is required for Spirits'):
            inventory_service.receive(
                self.db,
                [
                    self._item(),
                    self._item(identifier='Neutral Spirit', item='Neutral Spirit', type='Spirits', account='Storage'),
                ],
            )
        self.db.rollback()

        self.assertEqual(self._rows('2-Row Barley'), [])

    def test_missing_fields_are_named(self) -> None:
        with self.assertRaisesRegex(ValidationError, 'unit, receivedDate'):
            inventory_service.receive(self.db, [self._item(unit=None, received_date='')])

    def test_other_type_requires_description(self) -> None:
        with self.assertRaisesRegex(ValidationError, 'description is required for Other'):
            inventory_service.receive(self.db, [self._item(type='Other')])

    def test_quantity_and_proof_ranges(self) -> None:
        with self.assertRaisesRegex(ValidationError, 'quantity must be greater than zero'):
            inventory_service.receive(self.db, [self._item(quantity='0')])
        with self.assertRaisesRegex(ValidationError, 'proof must be between 0 and 200'):
            inventory_service.receive(
                self.db, [self._item(type='Spirits', account='Storage', proof='201', unit='gallons')]
            )
        with self.assertRaisesRegex(ValidationError, 'cost cannot be negative'):
            inventory_service.receive(self.db, [self._item(cost='-1')])

    def test_location_must_belong_to_site(self) -> None:
        with self.assertRaisesRegex(ValidationError, 'Invalid locationId'):
            inventory_service.receive(self.db, [self._item(location_id=self.location_id('Rickhouse'))])

    def test_spirits_receipt_derives_proof_gallons(self) -> None:
        inventory_service.receive(
            self.db,
            [
                self._item(
                    identifier='Neutral Spirit',
                    item='Neutral Spirit',
                    type='Spirits',
                    account='Processing',
                    proof='190',
                    quantity='10',
                    unit='Gallons',
                    site_id=DISTILLERY_SITE,
                    location_id=self.location_id('Rickhouse'),
                )
            ],
        )
        self.db.commit()

        row = self._rows('Neutral Spirit')[0]
        self.assertEqual(row.account, InventoryAccount.PROCESSING)
        self.assertEqual(row.proof_gallons, Decimal('19'))


class DebitTests(LedgerTestCase):
    def test_drains_oldest_rows_first(self) -> None:
        older = self.stock('2-Row Barley', '30', received=date(2024, 1, 1))
        newer = self.stock('2-Row Barley', '30', location='Cold Room', received=date(2024, 2, 1))

        inventory_service.debit(self.db, identifier='2-Row Barley', site_id=BREWERY_SITE, quantity=Decimal('40'), unit='lbs')
        self.db.commit()

        self.db.refresh(older)
        self.db.refresh(newer)
        self.assertEqual(older.quantity, Decimal('0'))
        self.assertEqual(newer.quantity, Decimal('20'))

    def test_shortfall_message_and_no_change(self) -> None:
        self.stock('2-Row Barley', '40')

        with self.assertRaises(InsufficientResourceError) as ctx:
            inventory_service.debit(
                self.db, identifier='2-Row Barley', site_id=BREWERY_SITE, quantity=Decimal('50'), unit='pounds'
            )
        self.db.rollback()

        self.assertEqual(str(ctx.exception), 'Insufficient inventory for 2-Row Barley: 40lbs available, 50lbs needed')
        self.assertEqual(self.on_hand('2-Row Barley'), Decimal('40'))

    def test_units_are_normalized_on_both_sides(self) -> None:
        self.stock('Cascade Hops', '10', unit='Pounds')

        available = inventory_service.available_quantity(
            self.db, identifier='Cascade Hops', site_id=BREWERY_SITE, unit='LBS'
        )

        self.assertEqual(available, Decimal('10'))

    def test_rows_not_in_storage_are_not_available(self) -> None:
        self.stock('Cascade Hops', '10', status=InventoryStatus.RECEIVED)

        self.assertIsNotNone(
            inventory_service.check_availability(
                self.db, identifier='Cascade Hops', site_id=BREWERY_SITE, quantity=Decimal('1'), unit='lbs'
            )
        )

    @patch('brewops.services.inventory_service._conditional_decrement')
    def test_lost_decrement_race_reports_shortfall(self, conditional_decrement_mock) -> None:
        conditional_decrement_mock.return_value = False
        self.stock('Cascade Hops', '10')

        with self.assertRaisesRegex(InsufficientResourceError, 'Insufficient inventory for Cascade Hops'):
            inventory_service.debit(
                self.db, identifier='Cascade Hops', site_id=BREWERY_SITE, quantity=Decimal('4'), unit='lbs'
            )
        conditional_decrement_mock.assert_called_once()


class LossTests(LedgerTestCase):
    def test_repeated_losses_compound(self) -> None:
        self.stock('Cascade Hops', '100')

        for _ in range(2):
            inventory_service.record_loss(
                self.db,
                identifier='Cascade Hops',
                quantity_lost=Decimal('10'),
                reason='Spillage',
                site_id=BREWERY_SITE,
                actor='brewer@example.com',
            )
            self.db.commit()

        self.assertEqual(self.on_hand('Cascade Hops'), Decimal('80'))
        losses = self.db.execute(select(InventoryLoss)).scalars().all()
        self.assertEqual(len(losses), 2)
        self.assertEqual(losses[0].actor, 'brewer@example.com')
        self.assertEqual(losses[0].location_id, self.location_id())

    def test_zero_or_negative_loss_is_rejected(self) -> None:
        self.stock('Cascade Hops', '100')
        for amount in ('0', '-5'):
            with self.assertRaisesRegex(ValidationError, 'quantityLost must be positive'):
                inventory_service.record_loss(
                    self.db,
                    identifier='Cascade Hops',
                    quantity_lost=Decimal(amount),
                    reason='Spillage',
                    site_id=BREWERY_SITE,
                    actor='brewer@example.com',
                )
        self.assertEqual(self.on_hand('Cascade Hops'), Decimal('100'))

    def test_loss_larger_than_stock_is_rejected(self) -> None:
        self.stock('Cascade Hops', '5')

        with self.assertRaises(InsufficientResourceError):
            inventory_service.record_loss(
                self.db,
                identifier='Cascade Hops',
                quantity_lost=Decimal('6'),
                reason='Spillage',
                site_id=BREWERY_SITE,
                actor='brewer@example.com',
            )
        self.db.rollback()

        self.assertEqual(self.on_hand('Cascade Hops'), Decimal('5'))
        self.assertEqual(self.db.execute(select(InventoryLoss)).scalars().all(), [])

    def test_account_picks_the_row_when_identifier_is_held_twice(self) -> None:
        storage = self.stock('Vodka', '10', unit='gallons', type_='Spirits', received=date(2024, 1, 1))
        processing = self.stock(
            'Vodka',
            '10',
            unit='gallons',
            type_='Spirits',
            received=date(2024, 2, 1),
            account=InventoryAccount.PROCESSING,
        )

        row = inventory_service.record_loss(
            self.db,
            identifier='Vodka',
            quantity_lost=Decimal('2'),
            reason='Evaporation',
            site_id=BREWERY_SITE,
            location_id=self.location_id(),
            account='Processing',
            actor='distiller@example.com',
        )
        self.db.commit()

        self.assertEqual(row.id, processing.id)
        self.db.refresh(storage)
        self.db.refresh(processing)
        self.assertEqual(storage.quantity, Decimal('10'))
        self.assertEqual(processing.quantity, Decimal('8'))

    def test_unqualified_loss_takes_the_oldest_matching_row(self) -> None:
        newer = self.stock(
            'Vodka',
            '10',
            unit='gallons',
            type_='Spirits',
            received=date(2024, 2, 1),
            account=InventoryAccount.PROCESSING,
        )
        older = self.stock('Vodka', '10', unit='gallons', type_='Spirits', received=date(2024, 1, 1))

        inventory_service.record_loss(
            self.db,
            identifier='Vodka',
            quantity_lost=Decimal('1'),
            reason='Evaporation',
            site_id=BREWERY_SITE,
            location_id=self.location_id(),
            actor='distiller@example.com',
        )
        self.db.commit()

        self.db.refresh(older)
        self.db.refresh(newer)
        self.assertEqual(older.quantity, Decimal('9'))
        self.assertEqual(newer.quantity, Decimal('10'))

    def test_unknown_account_is_rejected(self) -> None:
        self.stock('Cascade Hops', '10')

        with self.assertRaisesRegex(ValidationError, 'Invalid account: Cellar'):
            inventory_service.record_loss(
                self.db,
                identifier='Cascade Hops',
                quantity_lost=Decimal('1'),
                reason='Spillage',
                site_id=BREWERY_SITE,
                account='Cellar',
                actor='brewer@example.com',
            )

    def test_unknown_identifier_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            inventory_service.record_loss(
                self.db,
                identifier='Unobtainium',
                quantity_lost=Decimal('1'),
                reason='Spillage',
                site_id=BREWERY_SITE,
                actor='brewer@example.com',
            )


class FinishedGoodsTests(LedgerTestCase):
    def _credit(self, quantity: str, price: str = '2.50') -> InventoryRecord:
        return inventory_service.credit(
            self.db,
            identifier='Hazy Jack 12oz Can',
            type_=inventory_service.FINISHED_GOODS,
            account=InventoryAccount.STORAGE,
            site_id=BREWERY_SITE,
            location_id=self.location_id('Cold Room'),
            quantity=Decimal(quantity),
            price=Decimal(price),
            is_keg_deposit_item=False,
        )

    def test_credit_merges_and_overwrites_price(self) -> None:
        self._credit('24')
        self._credit('12', price='2.75')
        self.db.commit()

        rows = self.db.execute(
            select(InventoryRecord).where(InventoryRecord.identifier == 'Hazy Jack 12oz Can')
        ).scalars().all()
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].quantity, Decimal('36'))
        self.assertEqual(rows[0].price, Decimal('2.75'))
        self.assertEqual(rows[0].source, 'Packaged')

    def test_adjust_rejects_negative_result(self) -> None:
        self._credit('10')
        self.db.commit()

        with self.assertRaisesRegex(InsufficientResourceError, 'Cannot reduce inventory below zero'):
            inventory_service.adjust_finished_goods(
                self.db,
                identifier='Hazy Jack 12oz Can',
                site_id=BREWERY_SITE,
                location_id=self.location_id('Cold Room'),
                delta=Decimal('-11'),
            )

    def test_adjust_to_exactly_zero_can_delete_the_row(self) -> None:
        self._credit('10')
        self.db.commit()

        remaining = inventory_service.adjust_finished_goods(
            self.db,
            identifier='Hazy Jack 12oz Can',
            site_id=BREWERY_SITE,
            location_id=self.location_id('Cold Room'),
            delta=Decimal('-10'),
            delete_when_empty=True,
        )
        self.db.commit()

        self.assertEqual(remaining, Decimal('0'))
        self.assertEqual(
            self.db.execute(select(InventoryRecord).where(InventoryRecord.identifier == 'Hazy Jack 12oz Can')).all(),
            [],
        )


if __name__ == '__main__':
    unittest.main()
