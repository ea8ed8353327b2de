from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from brewops.errors import NotFoundError
from brewops.models import Recipe, RecipeIngredient

UNIT_ALIASES = {'pounds': 'lbs'}


@dataclass(frozen=True)
class RequiredIngredient:
    item_name: str
    quantity: Decimal
    unit: str


def normalize_unit(unit: str | None) -> str:
    clean = (unit or '').strip().lower()
    return UNIT_ALIASES.get(clean, clean)


def get_recipe(db: Session, recipe_id: int) -> Recipe:
    recipe = db.execute(select(Recipe).where(Recipe.id == recipe_id)).scalar_one_or_none()
    if not recipe:
        raise NotFoundError(f'Recipe not found: {recipe_id}')
    return recipe


def resolve_ingredients(db: Session, recipe_id: int) -> list[RequiredIngredient]:
    get_recipe(db, recipe_id)
    rows = db.execute(
        select(RecipeIngredient)
        .where(RecipeIngredient.recipe_id == recipe_id)
        .order_by(RecipeIngredient.position.asc(), RecipeIngredient.id.asc())
    ).scalars().all()
    return [RequiredIngredient(item_name=row.item_name, quantity=row.quantity, unit=row.unit) for row in rows]
