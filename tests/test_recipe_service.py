from __future__ import annotations

import unittest
from decimal import Decimal

from ledger_support import LedgerTestCase

from brewops.errors import NotFoundError
from brewops.services.recipe_service import normalize_unit, resolve_ingredients


class NormalizeUnitTests(unittest.TestCase):
    def test_pounds_becomes_lbs(self) -> None:
        self.assertEqual(normalize_unit('Pounds'), 'lbs')
        self.assertEqual(normalize_unit(' pounds '), 'lbs')

    def test_other_units_are_lower_cased(self) -> None:
        self.assertEqual(normalize_unit('LBS'), 'lbs')
        self.assertEqual(normalize_unit('Gallons'), 'gallons')

    def test_missing_unit_is_empty(self) -> None:
        self.assertEqual(normalize_unit(None), '')


class ResolveIngredientsTests(LedgerTestCase):
    def test_returns_recipe_lines_in_position_order(self) -> None:
        ingredients = resolve_ingredients(self.db, self.recipe_id())

        self.assertEqual([ingredient.item_name for ingredient in ingredients], ['2-Row Barley', 'Cascade Hops'])
        self.assertEqual(ingredients[0].quantity, Decimal('50'))
        self.assertEqual(ingredients[0].unit, 'lbs')

    def test_unknown_recipe_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            resolve_ingredients(self.db, 9999)


if __name__ == '__main__':
    unittest.main()
