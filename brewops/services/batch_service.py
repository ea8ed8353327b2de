from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from brewops.errors import ConflictError, InsufficientResourceError, NotFoundError, ValidationError
from brewops.models import (
    BATCH_STAGE_ORDER,
    Batch,
    BatchAction,
    BatchIngredientOverride,
    BatchLogEntry,
    BatchPackaging,
    BatchStage,
    BatchStatus,
    CatalogItem,
    Equipment,
    PackageKegCode,
    Product,
    Recipe,
    Site,
)
from brewops.services import inventory_service
from brewops.services.audit_service import log_batch_action, log_inventory_loss
from brewops.services.quantity_utils import format_barrels
from brewops.services.recipe_service import RequiredIngredient, normalize_unit, resolve_ingredients

logger = logging.getLogger(__name__)

# Stages that run in a vessel and therefore need equipment assigned.
EQUIPMENT_STAGES = {BatchStage.BREWING, BatchStage.FERMENTATION, BatchStage.FILTERING_CARBONATING}


@dataclass(frozen=True)
class IngredientInput:
    item_name: str | None
    quantity: Decimal | None
    unit: str | None
    is_recipe: bool = False
    excluded: bool = False
    proof: Decimal | None = None
    proof_gallons: Decimal | None = None


def get_batch(db: Session, batch_id: str) -> Batch:
    batch = db.execute(select(Batch).where(Batch.batch_id == batch_id)).scalar_one_or_none()
    if not batch:
        raise NotFoundError('Batch not found')
    return batch


def require_mutable(batch: Batch) -> None:
    if batch.status == BatchStatus.COMPLETED:
        logger.warning('Rejected change to completed batch %s', batch.batch_id)
        raise ConflictError('Cannot modify a completed batch')


def parse_stage(raw_stage: str | None) -> BatchStage:
    try:
        return BatchStage((raw_stage or '').strip())
    except ValueError as exc:
        allowed = ', '.join(stage.value for stage in BATCH_STAGE_ORDER)
        raise ValidationError(f'Invalid stage: {raw_stage}. Must be one of: {allowed}') from exc


def parse_status(raw_status: str | None) -> BatchStatus:
    try:
        return BatchStatus((raw_status or '').strip())
    except ValueError as exc:
        allowed = ', '.join(status.value for status in BatchStatus)
        raise ValidationError(f'Invalid status: {raw_status}. Must be one of: {allowed}') from exc


def _ensure_equipment_in_site(db: Session, *, equipment_id: int, site_id: str) -> Equipment:
    equipment = db.execute(
        select(Equipment).where(Equipment.id == equipment_id, Equipment.site_id == site_id)
    ).scalar_one_or_none()
    if not equipment:
        raise ValidationError(f'Invalid equipmentId: {equipment_id} for site {site_id}')
    return equipment


def _load_overrides(db: Session, batch_id: str) -> list[BatchIngredientOverride]:
    return db.execute(
        select(BatchIngredientOverride)
        .where(BatchIngredientOverride.batch_id == batch_id)
        .order_by(BatchIngredientOverride.position.asc())
    ).scalars().all()


def _next_position(db: Session, batch_id: str) -> int:
    current = db.execute(
        select(func.max(BatchIngredientOverride.position)).where(BatchIngredientOverride.batch_id == batch_id)
    ).scalar_one()
    return 0 if current is None else current + 1


def _is_tombstone_for(override: BatchIngredientOverride, ingredient: RequiredIngredient) -> bool:
    return (
        override.excluded
        and override.item_name == ingredient.item_name
        and normalize_unit(override.unit) == normalize_unit(ingredient.unit)
        and (override.quantity is None or override.quantity == ingredient.quantity)
    )


def combine_ingredients(
    recipe_ingredients: list[RequiredIngredient], overrides: list[BatchIngredientOverride]
) -> list[dict]:
    """Recipe ingredients minus tombstoned ones, then live additions."""
    combined = [
        {
            'itemName': ingredient.item_name,
            'quantity': ingredient.quantity,
            'unit': ingredient.unit,
            'isRecipe': True,
        }
        for ingredient in recipe_ingredients
        if not any(_is_tombstone_for(override, ingredient) for override in overrides)
    ]
    combined.extend(
        {
            'itemName': override.item_name,
            'quantity': override.quantity,
            'unit': override.unit,
            'isRecipe': False,
            'proof': override.proof,
            'proofGallons': override.proof_gallons,
        }
        for override in overrides
        if not override.excluded and override.quantity is not None and override.quantity > 0
    )
    return combined


def serialize_override(override: BatchIngredientOverride) -> dict:
    return {
        'itemName': override.item_name,
        'quantity': override.quantity,
        'unit': override.unit,
        'isRecipe': override.is_recipe,
        'excluded': override.excluded,
        'proof': override.proof,
        'proofGallons': override.proof_gallons,
    }


def serialize_batch(batch: Batch) -> dict:
    return {
        'batchId': batch.batch_id,
        'productId': batch.product_id,
        'recipeId': batch.recipe_id,
        'siteId': batch.site_id,
        'fermenterId': batch.fermenter_id,
        'equipmentId': batch.equipment_id,
        'status': batch.status.value,
        'stage': batch.stage.value if batch.stage else None,
        'date': batch.batch_date,
        'volume': batch.volume,
        'batchType': batch.batch_type,
    }


def get_batch_detail(db: Session, batch_id: str) -> dict:
    batch = get_batch(db, batch_id)
    product = db.get(Product, batch.product_id)
    recipe = db.get(Recipe, batch.recipe_id)
    site = db.get(Site, batch.site_id)
    overrides = _load_overrides(db, batch_id)
    detail = serialize_batch(batch)
    detail.update(
        {
            'productName': product.name if product else None,
            'recipeName': recipe.name if recipe else None,
            'siteName': site.name if site else None,
            'ingredients': combine_ingredients(resolve_ingredients(db, batch.recipe_id), overrides),
            'additionalIngredients': [serialize_override(override) for override in overrides],
        }
    )
    return detail


def list_batches(db: Session, *, status: str | None = None, page: int = 1, limit: int = 10) -> dict:
    if page < 1 or limit < 1:
        raise ValidationError('page and limit must be positive integers')
    query = select(Batch)
    count_query = select(func.count(Batch.id))
    if status:
        parsed = parse_status(status)
        query = query.where(Batch.status == parsed)
        count_query = count_query.where(Batch.status == parsed)
    total = db.execute(count_query).scalar_one()
    rows = db.execute(
        query.order_by(Batch.batch_date.desc(), Batch.id.desc()).offset((page - 1) * limit).limit(limit)
    ).scalars().all()
    return {
        'batches': [serialize_batch(row) for row in rows],
        'totalPages': math.ceil(total / limit) if total else 0,
    }


def _total_requirements(ingredients: list[RequiredIngredient]) -> list[RequiredIngredient]:
    # one entry per (item, unit), in first-seen order
    totals: dict[tuple[str, str], Decimal] = {}
    for ingredient in ingredients:
        key = (ingredient.item_name, normalize_unit(ingredient.unit))
        totals[key] = totals.get(key, Decimal('0')) + ingredient.quantity
    return [RequiredIngredient(item_name=item, quantity=quantity, unit=unit) for (item, unit), quantity in totals.items()]


def create_batch(
    db: Session,
    *,
    batch_id: str | None,
    product_id: int | None,
    recipe_id: int | None,
    site_id: str | None,
    fermenter_id: int | None = None,
    volume: Decimal | None = None,
    status: str | None = None,
    batch_date: date | None = None,
    batch_type: str | None = None,
) -> Batch:
    """Open a batch and consume its recipe from inventory.

    Every ingredient is checked before anything is debited, so a short recipe
    reports all of its shortfalls at once and leaves inventory untouched.
    """
    clean_batch_id = (batch_id or '').strip()
    if not clean_batch_id or product_id is None or recipe_id is None or not (site_id or '').strip():
        raise ValidationError('batchId, productId, recipeId, and siteId are required')
    site_id = site_id.strip()
    if volume is not None and volume <= 0:
        raise ValidationError('volume must be greater than zero')
    parsed_status = parse_status(status) if status else BatchStatus.IN_PROGRESS

    if db.execute(select(Batch.id).where(Batch.batch_id == clean_batch_id)).scalar_one_or_none():
        raise ConflictError(f'Batch already exists: {clean_batch_id}')
    if not db.get(Product, product_id):
        raise ValidationError(f'Invalid productId: {product_id}')
    if not db.get(Site, site_id):
        raise ValidationError(f'Invalid siteId: {site_id}')
    if not db.get(Recipe, recipe_id):
        raise ValidationError(f'Invalid recipeId: {recipe_id}')
    if fermenter_id is not None:
        _ensure_equipment_in_site(db, equipment_id=fermenter_id, site_id=site_id)

    ingredients = _total_requirements(resolve_ingredients(db, recipe_id))
    shortfalls = [
        message
        for message in (
            inventory_service.check_availability(
                db, identifier=ingredient.item_name, site_id=site_id, quantity=ingredient.quantity, unit=ingredient.unit
            )
            for ingredient in ingredients
        )
        if message
    ]
    if shortfalls:
        logger.warning('Batch %s rejected: %s', clean_batch_id, '; '.join(shortfalls))
        raise InsufficientResourceError('; '.join(shortfalls))

    for ingredient in ingredients:
        inventory_service.debit(
            db, identifier=ingredient.item_name, site_id=site_id, quantity=ingredient.quantity, unit=ingredient.unit
        )

    batch = Batch(
        batch_id=clean_batch_id,
        product_id=product_id,
        recipe_id=recipe_id,
        site_id=site_id,
        fermenter_id=fermenter_id,
        status=parsed_status,
        batch_date=batch_date or date.today(),
        volume=volume,
        batch_type=batch_type,
    )
    db.add(batch)
    db.flush()
    log_batch_action(db, batch_id=clean_batch_id, action='Batch created')
    db.flush()
    logger.info('Created batch %s at %s with %d recipe ingredient(s)', clean_batch_id, site_id, len(ingredients))
    return batch


def _ensure_catalog_item(db: Session, item_name: str) -> None:
    if not db.get(CatalogItem, item_name):
        raise ValidationError(f'Item not found: {item_name}')


def _override_from_input(batch_id: str, position: int, ingredient: IngredientInput) -> BatchIngredientOverride:
    return BatchIngredientOverride(
        batch_id=batch_id,
        position=position,
        item_name=ingredient.item_name.strip(),
        quantity=ingredient.quantity,
        unit=normalize_unit(ingredient.unit),
        is_recipe=bool(ingredient.is_recipe),
        excluded=bool(ingredient.excluded),
        proof=ingredient.proof,
        proof_gallons=ingredient.proof_gallons,
    )


def _consumes_inventory(ingredient: IngredientInput) -> bool:
    return not ingredient.excluded and ingredient.quantity is not None and ingredient.quantity > 0


def _collect_shortfalls(db: Session, *, site_id: str, ingredients: list[IngredientInput]) -> list[str]:
    shortfalls = []
    for ingredient in ingredients:
        if not _consumes_inventory(ingredient):
            continue
        message = inventory_service.check_availability(
            db,
            identifier=ingredient.item_name.strip(),
            site_id=site_id,
            quantity=ingredient.quantity,
            unit=ingredient.unit,
        )
        if message:
            shortfalls.append(message)
    return shortfalls


def add_ingredient(db: Session, batch_id: str, ingredient: IngredientInput) -> dict:
    if (
        not (ingredient.item_name or '').strip()
        or ingredient.quantity is None
        or ingredient.quantity <= 0
        or not (ingredient.unit or '').strip()
    ):
        raise ValidationError('Valid itemName, quantity, and unit required')
    batch = get_batch(db, batch_id)
    require_mutable(batch)
    item_name = ingredient.item_name.strip()
    _ensure_catalog_item(db, item_name)

    inventory_service.debit(
        db, identifier=item_name, site_id=batch.site_id, quantity=ingredient.quantity, unit=ingredient.unit
    )

    # A fresh addition revives an item, so drop its quantity-less tombstones.
    for override in _load_overrides(db, batch_id):
        if override.excluded and override.item_name == item_name and not (override.quantity and override.quantity > 0):
            db.delete(override)
    db.flush()

    db.add(_override_from_input(batch_id, _next_position(db, batch_id), ingredient))
    db.flush()
    logger.info('Added %s %s of %s to batch %s', ingredient.quantity, normalize_unit(ingredient.unit), item_name, batch_id)
    return get_batch_detail(db, batch_id)


def add_ingredients(db: Session, batch_id: str, ingredients: list[IngredientInput]) -> list[dict]:
    """Append override rows after checking the site can cover them. Inventory is not debited."""
    if not ingredients:
        raise ValidationError('ingredients must be a non-empty array')
    errors = []
    for index, ingredient in enumerate(ingredients):
        quantity_ok = ingredient.excluded or (ingredient.quantity is not None and ingredient.quantity > 0)
        if not (ingredient.item_name or '').strip() or not (ingredient.unit or '').strip() or not quantity_ok:
            errors.append(f'Invalid ingredient at index {index}: itemName, unit, and a positive quantity are required')
    if errors:
        raise ValidationError('; '.join(errors))

    batch = get_batch(db, batch_id)
    require_mutable(batch)
    for ingredient in ingredients:
        _ensure_catalog_item(db, ingredient.item_name.strip())

    shortfalls = _collect_shortfalls(db, site_id=batch.site_id, ingredients=ingredients)
    if shortfalls:
        raise InsufficientResourceError('; '.join(shortfalls))

    position = _next_position(db, batch_id)
    for ingredient in ingredients:
        db.add(_override_from_input(batch_id, position, ingredient))
        position += 1
    db.flush()
    logger.info('Added %d ingredient(s) to batch %s', len(ingredients), batch_id)
    return [serialize_override(override) for override in _load_overrides(db, batch_id)]


def patch_ingredients(db: Session, batch_id: str, ingredients: list[IngredientInput]) -> list[dict]:
    """Replace the batch's override list wholesale.

    Entries may be exclusion tombstones and may omit quantity. The patch edits
    the bookkeeping view only; it does not debit inventory.
    """
    errors = []
    for index, ingredient in enumerate(ingredients):
        if (
            not (ingredient.item_name or '').strip()
            or not (ingredient.unit or '').strip()
            or (ingredient.quantity is not None and ingredient.quantity < 0)
        ):
            errors.append(
                f'Invalid ingredient at index {index}: itemName and unit are required, '
                'quantity must be non-negative if provided'
            )
    if errors:
        raise ValidationError('; '.join(errors))

    batch = get_batch(db, batch_id)
    require_mutable(batch)
    shortfalls = _collect_shortfalls(db, site_id=batch.site_id, ingredients=ingredients)
    if shortfalls:
        raise InsufficientResourceError('; '.join(shortfalls))

    db.execute(delete(BatchIngredientOverride).where(BatchIngredientOverride.batch_id == batch_id))
    db.flush()
    for position, ingredient in enumerate(ingredients):
        db.add(_override_from_input(batch_id, position, ingredient))
    db.flush()
    logger.info('Replaced ingredient overrides of batch %s with %d entries', batch_id, len(ingredients))
    return [serialize_override(override) for override in _load_overrides(db, batch_id)]


def clear_ingredients(db: Session, batch_id: str) -> None:
    batch = get_batch(db, batch_id)
    require_mutable(batch)
    db.execute(delete(BatchIngredientOverride).where(BatchIngredientOverride.batch_id == batch_id))
    db.flush()
    logger.info('Cleared additional ingredients of batch %s', batch_id)


def advance_stage(db: Session, batch_id: str, *, stage: str | None, equipment_id: int | None = None) -> Batch:
    new_stage = parse_stage(stage)
    batch = get_batch(db, batch_id)
    require_mutable(batch)

    if batch.stage is not None and BATCH_STAGE_ORDER.index(new_stage) <= BATCH_STAGE_ORDER.index(batch.stage):
        logger.warning('Batch %s stage regression %s -> %s rejected', batch_id, batch.stage.value, new_stage.value)
        raise ConflictError(f'Cannot regress from {batch.stage.value} to {new_stage.value}')

    if new_stage in EQUIPMENT_STAGES and equipment_id is None:
        raise ValidationError(f'equipmentId is required for stage {new_stage.value}')
    if equipment_id is not None:
        _ensure_equipment_in_site(db, equipment_id=equipment_id, site_id=batch.site_id)

    previous = batch.stage
    batch.stage = new_stage
    batch.equipment_id = equipment_id
    log_batch_action(
        db,
        batch_id=batch_id,
        action=f'Stage changed from {previous.value if previous else "none"} to {new_stage.value}',
    )
    db.flush()
    logger.info('Batch %s advanced to %s', batch_id, new_stage.value)
    return batch


def assign_equipment(db: Session, batch_id: str, *, equipment_id: int | None) -> Batch:
    if equipment_id is None:
        raise ValidationError('equipmentId is required')
    batch = get_batch(db, batch_id)
    require_mutable(batch)
    _ensure_equipment_in_site(db, equipment_id=equipment_id, site_id=batch.site_id)
    batch.equipment_id = equipment_id
    db.flush()
    logger.info('Batch %s moved to equipment %s', batch_id, equipment_id)
    return batch


def adjust_volume(db: Session, batch_id: str, *, new_volume: Decimal | None, reason: str | None, actor: str) -> Decimal:
    batch = get_batch(db, batch_id)
    require_mutable(batch)
    if new_volume is None or new_volume < 0:
        raise ValidationError('volume must be a non-negative number')
    if not (reason or '').strip():
        raise ValidationError('reason is required')

    current = batch.volume if batch.volume is not None else Decimal('0')
    lost = current - new_volume
    batch.volume = new_volume
    if lost > 0:
        log_inventory_loss(
            db,
            identifier=batch_id,
            quantity_lost=lost,
            reason=reason.strip(),
            site_id=batch.site_id,
            actor=actor,
        )
    log_batch_action(
        db,
        batch_id=batch_id,
        action=f'Volume adjusted from {format_barrels(current)} to {format_barrels(new_volume)} barrels: {reason.strip()}',
    )
    db.flush()
    logger.info('Batch %s volume %s -> %s (%s)', batch_id, current, new_volume, reason)
    return new_volume


def update_batch(db: Session, batch_id: str, *, status: str | None = None, volume: Decimal | None = None) -> Batch:
    if status is None and volume is None:
        raise ValidationError('status or volume is required')
    new_status = parse_status(status) if status is not None else None
    batch = get_batch(db, batch_id)

    if batch.status == BatchStatus.COMPLETED and (new_status != BatchStatus.COMPLETED or volume is not None):
        logger.warning('Rejected change to completed batch %s', batch_id)
        raise ConflictError('Cannot modify a completed batch')
    if volume is not None and volume < 0:
        raise ValidationError('volume must be a non-negative number')

    if new_status is not None and new_status != batch.status:
        log_batch_action(db, batch_id=batch_id, action=f'Status changed to {new_status.value}')
        batch.status = new_status
    if volume is not None:
        batch.volume = volume
    db.flush()
    logger.info('Updated batch %s', batch_id)
    return batch


def delete_batch(db: Session, batch_id: str) -> None:
    batch = get_batch(db, batch_id)
    if batch.status == BatchStatus.COMPLETED:
        raise ConflictError('Cannot delete a completed batch')

    packaging_ids = select(BatchPackaging.id).where(BatchPackaging.batch_id == batch_id)
    db.execute(delete(PackageKegCode).where(PackageKegCode.packaging_id.in_(packaging_ids)))
    db.execute(delete(BatchPackaging).where(BatchPackaging.batch_id == batch_id))
    db.execute(delete(BatchIngredientOverride).where(BatchIngredientOverride.batch_id == batch_id))
    db.execute(delete(BatchLogEntry).where(BatchLogEntry.batch_id == batch_id))
    db.execute(delete(BatchAction).where(BatchAction.batch_id == batch_id))
    db.delete(batch)
    db.flush()
    logger.info('Deleted batch %s', batch_id)


def append_brew_log(db: Session, batch_id: str, *, entry: str | None) -> BatchLogEntry:
    if not (entry or '').strip():
        raise ValidationError('entry is required')
    batch = get_batch(db, batch_id)
    require_mutable(batch)
    log_entry = BatchLogEntry(batch_id=batch_id, entry=entry.strip(), created_at=datetime.now(tz=timezone.utc))
    db.add(log_entry)
    db.flush()
    return log_entry


def list_brew_log(db: Session, batch_id: str) -> list[dict]:
    get_batch(db, batch_id)
    rows = db.execute(
        select(BatchLogEntry).where(BatchLogEntry.batch_id == batch_id).order_by(BatchLogEntry.id.asc())
    ).scalars().all()
    return [{'id': row.id, 'entry': row.entry, 'timestamp': row.created_at} for row in rows]


def record_action(db: Session, batch_id: str, *, action: str | None) -> BatchAction:
    if not (action or '').strip():
        raise ValidationError('action is required')
    batch = get_batch(db, batch_id)
    require_mutable(batch)
    entry = log_batch_action(db, batch_id=batch_id, action=action.strip())
    db.flush()
    return entry


def list_actions(db: Session, batch_id: str) -> list[dict]:
    get_batch(db, batch_id)
    rows = db.execute(
        select(BatchAction).where(BatchAction.batch_id == batch_id).order_by(BatchAction.id.asc())
    ).scalars().all()
    return [{'id': row.id, 'action': row.action, 'timestamp': row.created_at} for row in rows]
