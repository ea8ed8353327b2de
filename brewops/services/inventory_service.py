from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from brewops.errors import InsufficientResourceError, NotFoundError, ValidationError
from brewops.models import InventoryAccount, InventoryRecord, InventoryStatus, Location, Site
from brewops.services.audit_service import log_inventory_loss
from brewops.services.quantity_utils import format_quantity, parse_decimal, parse_optional_decimal
from brewops.services.recipe_service import normalize_unit

logger = logging.getLogger(__name__)

SPIRITS = 'Spirits'
OTHER = 'Other'
FINISHED_GOODS = 'Finished Goods'
MARKETING = 'Marketing'
SALEABLE_TYPES = (FINISHED_GOODS, MARKETING)

GALLON_UNITS = {'gallon', 'gallons', 'gal'}
MAX_PROOF = Decimal('200')

RECEIVE_REQUIRED_FIELDS = (
    ('identifier', 'identifier'),
    ('item', 'item'),
    ('type', 'type'),
    ('quantity', 'quantity'),
    ('unit', 'unit'),
    ('received_date', 'receivedDate'),
    ('status', 'status'),
    ('site_id', 'siteId'),
    ('location_id', 'locationId'),
)


@dataclass(frozen=True)
class ReceiveItem:
    identifier: str | None = None
    item: str | None = None
    type: str | None = None
    quantity: object = None
    unit: str | None = None
    received_date: str | None = None
    status: str | None = None
    site_id: str | None = None
    location_id: int | None = None
    account: str | None = None
    proof: object = None
    proof_gallons: object = None
    cost: object = None
    total_cost: object = None
    description: str | None = None
    lot_number: str | None = None
    po_number: str | None = None
    source: str | None = None


@dataclass(frozen=True)
class _CleanReceipt:
    identifier: str
    item: str
    type: str
    account: InventoryAccount
    quantity: Decimal
    unit: str
    received_date: date
    status: InventoryStatus
    site_id: str
    location_id: int
    proof: Decimal | None
    proof_gallons: Decimal | None
    unit_cost: Decimal | None
    total_cost: Decimal
    description: str | None
    lot_number: str | None
    po_number: str | None
    source: str | None


def shortfall_message(item_name: str, available: Decimal, needed: Decimal, unit: str) -> str:
    return (
        f'Insufficient inventory for {item_name}: '
        f'{format_quantity(available)}{unit} available, {format_quantity(needed)}{unit} needed'
    )


def _is_blank(value: object) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def ensure_location_in_site(db: Session, *, location_id: int, site_id: str) -> Location:
    location = db.execute(
        select(Location).where(Location.id == location_id, Location.site_id == site_id)
    ).scalar_one_or_none()
    if not location:
        raise ValidationError(f'Invalid locationId: {location_id} for site {site_id}')
    return location


def _ensure_site(db: Session, site_id: str) -> None:
    exists = db.execute(select(Site.site_id).where(Site.site_id == site_id)).scalar_one_or_none()
    if not exists:
        raise ValidationError(f'Invalid siteId: {site_id}')


def _clean_receipt(db: Session, item: ReceiveItem) -> _CleanReceipt:
    missing = [label for attr, label in RECEIVE_REQUIRED_FIELDS if _is_blank(getattr(item, attr))]
    if missing:
        raise ValidationError(f'Missing required field(s): {", ".join(missing)}')

    try:
        status = InventoryStatus(item.status.strip())
    except ValueError as exc:
        allowed = ', '.join(s.value for s in InventoryStatus)
        raise ValidationError(f'Invalid status: {item.status}. Must be one of: {allowed}') from exc

    item_type = item.type.strip()
    account = InventoryAccount.STORAGE
    if not _is_blank(item.account):
        try:
            account = InventoryAccount(item.account.strip())
        except ValueError as exc:
            allowed = ', '.join(a.value for a in InventoryAccount)
            raise ValidationError(f'Invalid account: {item.account}. Must be one of: {allowed}') from exc
    if item_type == SPIRITS:
        if _is_blank(item.account):
            raise ValidationError('account is required for Spirits')
        if _is_blank(item.proof):
            raise ValidationError('proof is required for Spirits')
    if item_type == OTHER and _is_blank(item.description):
        raise ValidationError('description is required for Other')

    quantity = parse_decimal(item.quantity, field='quantity')
    if quantity <= 0:
        raise ValidationError('quantity must be greater than zero')
    proof = parse_optional_decimal(item.proof, field='proof')
    if proof is not None and not (Decimal('0') <= proof <= MAX_PROOF):
        raise ValidationError('proof must be between 0 and 200')
    unit_cost = parse_optional_decimal(item.cost, field='cost')
    if unit_cost is not None and unit_cost < 0:
        raise ValidationError('cost cannot be negative')
    total_cost = parse_optional_decimal(item.total_cost, field='totalCost')
    if total_cost is not None and total_cost < 0:
        raise ValidationError('totalCost cannot be negative')
    if total_cost is None:
        total_cost = unit_cost * quantity if unit_cost is not None else Decimal('0')

    proof_gallons = parse_optional_decimal(item.proof_gallons, field='proofGallons')
    if proof_gallons is None and proof is not None and normalize_unit(item.unit) in GALLON_UNITS:
        proof_gallons = (quantity * proof / Decimal('100')).quantize(Decimal('0.0001'))

    try:
        received_date = date.fromisoformat(str(item.received_date).strip()[:10])
    except ValueError as exc:
        raise ValidationError(f'Invalid receivedDate: {item.received_date}') from exc

    site_id = item.site_id.strip()
    _ensure_site(db, site_id)
    ensure_location_in_site(db, location_id=int(item.location_id), site_id=site_id)

    return _CleanReceipt(
        identifier=item.identifier.strip(),
        item=item.item.strip(),
        type=item_type,
        account=account,
        quantity=quantity,
        unit=item.unit.strip(),
        received_date=received_date,
        status=status,
        site_id=site_id,
        location_id=int(item.location_id),
        proof=proof,
        proof_gallons=proof_gallons,
        unit_cost=unit_cost,
        total_cost=total_cost,
        description=(item.description or '').strip() or None,
        lot_number=(item.lot_number or '').strip() or None,
        po_number=(item.po_number or '').strip() or None,
        source=(item.source or '').strip() or None,
    )


def _find_by_key(
    db: Session, *, identifier: str, type_: str, account: InventoryAccount, site_id: str, location_id: int | None
) -> InventoryRecord | None:
    return db.execute(
        select(InventoryRecord).where(
            InventoryRecord.identifier == identifier,
            InventoryRecord.type == type_,
            InventoryRecord.account == account,
            InventoryRecord.site_id == site_id,
            InventoryRecord.location_id == location_id,
        )
    ).scalar_one_or_none()


def receive(db: Session, items: list[ReceiveItem]) -> int:
    """Validate every item, then merge or insert each one.

    Nothing is written unless all items pass validation. A merged row keeps a
    weighted-average unit cost: (existing total + new total) / merged quantity.
    """
    if not items:
        raise ValidationError('No items provided')

    cleaned: list[_CleanReceipt] = []
    for index, item in enumerate(items):
        try:
            cleaned.append(_clean_receipt(db, item))
        except ValidationError as exc:
            label = item.identifier or f'index {index}'
            raise ValidationError(f'Invalid item {label}: {exc}') from exc

    for receipt in cleaned:
        existing = _find_by_key(
            db,
            identifier=receipt.identifier,
            type_=receipt.type,
            account=receipt.account,
            site_id=receipt.site_id,
            location_id=receipt.location_id,
        )
        if existing:
            merged_quantity = existing.quantity + receipt.quantity
            merged_total = (existing.total_cost or Decimal('0')) + receipt.total_cost
            existing.quantity = merged_quantity
            existing.total_cost = merged_total
            existing.cost = (merged_total / merged_quantity).quantize(Decimal('0.0001'))
            if receipt.proof_gallons is not None:
                existing.proof_gallons = (existing.proof_gallons or Decimal('0')) + receipt.proof_gallons
            if receipt.proof is not None:
                existing.proof = receipt.proof
            existing.status = receipt.status
            existing.po_number = receipt.po_number or existing.po_number
            existing.lot_number = receipt.lot_number or existing.lot_number
        else:
            unit_cost = receipt.unit_cost
            if unit_cost is None and receipt.total_cost:
                unit_cost = (receipt.total_cost / receipt.quantity).quantize(Decimal('0.0001'))
            db.add(
                InventoryRecord(
                    identifier=receipt.identifier,
                    item=receipt.item,
                    lot_number=receipt.lot_number,
                    account=receipt.account,
                    type=receipt.type,
                    quantity=receipt.quantity,
                    unit=receipt.unit,
                    proof=receipt.proof,
                    proof_gallons=receipt.proof_gallons,
                    cost=unit_cost,
                    total_cost=receipt.total_cost,
                    received_date=receipt.received_date,
                    source=receipt.source or 'Received',
                    po_number=receipt.po_number,
                    description=receipt.description,
                    status=receipt.status,
                    site_id=receipt.site_id,
                    location_id=receipt.location_id,
                )
            )
        # Flush per item so two receipts for the same key in one call merge.
        db.flush()

    logger.info('Received %d inventory item(s)', len(cleaned))
    return len(cleaned)


def _conditional_decrement(db: Session, *, record_id: int, amount: Decimal) -> bool:
    result = db.execute(
        update(InventoryRecord)
        .where(InventoryRecord.id == record_id, InventoryRecord.quantity >= amount)
        .values(quantity=InventoryRecord.quantity - amount)
        .execution_options(synchronize_session='fetch')
    )
    return result.rowcount == 1


def _drain(db: Session, rows: list[InventoryRecord], quantity: Decimal, *, failure_message: str) -> None:
    remaining = quantity
    for row in rows:
        if remaining <= 0:
            break
        take = min(row.quantity, remaining)
        if take <= 0:
            continue
        if not _conditional_decrement(db, record_id=row.id, amount=take):
            # Another transaction drew the row down after it was read.
            raise InsufficientResourceError(failure_message)
        remaining -= take
    if remaining > 0:
        raise InsufficientResourceError(failure_message)


def _stored_rows(db: Session, *, identifier: str, site_id: str, unit: str) -> list[InventoryRecord]:
    wanted = normalize_unit(unit)
    rows = db.execute(
        select(InventoryRecord)
        .where(
            InventoryRecord.identifier == identifier,
            InventoryRecord.site_id == site_id,
            InventoryRecord.status == InventoryStatus.STORED,
        )
        .order_by(InventoryRecord.received_date.asc(), InventoryRecord.id.asc())
    ).scalars().all()
    return [row for row in rows if normalize_unit(row.unit) == wanted]


def available_quantity(db: Session, *, identifier: str, site_id: str, unit: str) -> Decimal:
    rows = _stored_rows(db, identifier=identifier, site_id=site_id, unit=unit)
    return sum((row.quantity for row in rows), Decimal('0'))


def check_availability(db: Session, *, identifier: str, site_id: str, quantity: Decimal, unit: str) -> str | None:
    available = available_quantity(db, identifier=identifier, site_id=site_id, unit=unit)
    if available < quantity:
        return shortfall_message(identifier, available, quantity, normalize_unit(unit))
    return None


def debit(db: Session, *, identifier: str, site_id: str, quantity: Decimal, unit: str) -> None:
    rows = _stored_rows(db, identifier=identifier, site_id=site_id, unit=unit)
    available = sum((row.quantity for row in rows), Decimal('0'))
    message = shortfall_message(identifier, available, quantity, normalize_unit(unit))
    if available < quantity:
        raise InsufficientResourceError(message)
    _drain(db, rows, quantity, failure_message=message)
    logger.info('Debited %s %s of %s at %s', format_quantity(quantity), normalize_unit(unit), identifier, site_id)


def credit(
    db: Session,
    *,
    identifier: str,
    type_: str,
    account: InventoryAccount,
    site_id: str,
    location_id: int,
    quantity: Decimal,
    price: Decimal | None,
    is_keg_deposit_item: bool,
    unit: str = 'Units',
) -> InventoryRecord:
    existing = _find_by_key(
        db, identifier=identifier, type_=type_, account=account, site_id=site_id, location_id=location_id
    )
    if existing:
        db.execute(
            update(InventoryRecord)
            .where(InventoryRecord.id == existing.id)
            .values(
                quantity=InventoryRecord.quantity + quantity,
                price=price,
                is_keg_deposit_item=is_keg_deposit_item,
            )
            .execution_options(synchronize_session='fetch')
        )
        db.flush()
        return existing

    record = InventoryRecord(
        identifier=identifier,
        account=account,
        type=type_,
        quantity=quantity,
        unit=unit,
        price=price,
        is_keg_deposit_item=is_keg_deposit_item,
        received_date=date.today(),
        source='Packaged',
        status=InventoryStatus.STORED,
        site_id=site_id,
        location_id=location_id,
    )
    db.add(record)
    db.flush()
    return record


def adjust_finished_goods(
    db: Session,
    *,
    identifier: str,
    site_id: str,
    location_id: int,
    delta: Decimal,
    delete_when_empty: bool = False,
) -> Decimal:
    row = _find_by_key(
        db,
        identifier=identifier,
        type_=FINISHED_GOODS,
        account=InventoryAccount.STORAGE,
        site_id=site_id,
        location_id=location_id,
    )
    if not row:
        raise NotFoundError(f'Inventory item not found: {identifier}')

    new_quantity = row.quantity + delta
    if new_quantity < 0:
        raise InsufficientResourceError(f'Cannot reduce inventory below zero: {identifier}')

    if delta < 0:
        if not _conditional_decrement(db, record_id=row.id, amount=-delta):
            raise InsufficientResourceError(f'Cannot reduce inventory below zero: {identifier}')
    elif delta > 0:
        db.execute(
            update(InventoryRecord)
            .where(InventoryRecord.id == row.id)
            .values(quantity=InventoryRecord.quantity + delta)
            .execution_options(synchronize_session='fetch')
        )

    if new_quantity == 0 and delete_when_empty:
        db.execute(
            delete(InventoryRecord)
            .where(InventoryRecord.id == row.id, InventoryRecord.quantity == 0)
            .execution_options(synchronize_session='fetch')
        )
    db.flush()
    return new_quantity


def decrement_saleable(db: Session, *, identifier: str, quantity: Decimal) -> None:
    rows = db.execute(
        select(InventoryRecord)
        .where(InventoryRecord.identifier == identifier, InventoryRecord.type.in_(SALEABLE_TYPES))
        .order_by(InventoryRecord.received_date.asc(), InventoryRecord.id.asc())
    ).scalars().all()
    available = sum((row.quantity for row in rows), Decimal('0'))
    message = (
        f'Insufficient inventory for {identifier}: '
        f'{format_quantity(available)} available, {format_quantity(quantity)} needed'
    )
    if available < quantity:
        raise InsufficientResourceError(message)
    _drain(db, rows, quantity, failure_message=message)


def record_loss(
    db: Session,
    *,
    identifier: str,
    quantity_lost: Decimal | None,
    reason: str | None,
    site_id: str,
    actor: str,
    location_id: int | None = None,
    type_: str | None = None,
    account: str | None = None,
    loss_date: date | None = None,
) -> InventoryRecord:
    """Write off part of one inventory row.

    locationId, type and account narrow the match. When several rows still
    match, the oldest receipt takes the loss.
    """
    if _is_blank(identifier) or _is_blank(site_id):
        raise ValidationError('identifier and siteId are required')
    if quantity_lost is None or quantity_lost <= 0:
        raise ValidationError('quantityLost must be positive')
    if _is_blank(reason):
        raise ValidationError('reason is required')
    _ensure_site(db, site_id)

    query = select(InventoryRecord).where(InventoryRecord.identifier == identifier, InventoryRecord.site_id == site_id)
    if location_id is not None:
        query = query.where(InventoryRecord.location_id == location_id)
    if not _is_blank(type_):
        query = query.where(InventoryRecord.type == type_.strip())
    if not _is_blank(account):
        try:
            parsed_account = InventoryAccount(account.strip())
        except ValueError as exc:
            allowed = ', '.join(a.value for a in InventoryAccount)
            raise ValidationError(f'Invalid account: {account}. Must be one of: {allowed}') from exc
        query = query.where(InventoryRecord.account == parsed_account)
    query = query.order_by(InventoryRecord.received_date.asc(), InventoryRecord.id.asc())
    row = db.execute(query).scalars().first()
    if row is None:
        raise NotFoundError('Inventory item not found')

    if row.quantity < quantity_lost:
        raise InsufficientResourceError(
            f'Insufficient inventory quantity: {format_quantity(row.quantity)} available, '
            f'{format_quantity(quantity_lost)} requested'
        )
    if not _conditional_decrement(db, record_id=row.id, amount=quantity_lost):
        raise InsufficientResourceError('Insufficient inventory quantity')

    log_inventory_loss(
        db,
        identifier=identifier,
        quantity_lost=quantity_lost,
        reason=reason.strip(),
        site_id=site_id,
        location_id=row.location_id,
        loss_date=loss_date,
        actor=actor,
    )
    db.flush()
    logger.info('Recorded loss of %s for %s at %s (%s)', format_quantity(quantity_lost), identifier, site_id, reason)
    return row


def list_inventory(
    db: Session, *, site_id: str | None = None, type_: str | None = None, location_id: int | None = None
) -> list[dict]:
    query = select(InventoryRecord).order_by(InventoryRecord.identifier.asc(), InventoryRecord.id.asc())
    if site_id:
        query = query.where(InventoryRecord.site_id == site_id)
    if type_:
        query = query.where(InventoryRecord.type == type_)
    if location_id is not None:
        query = query.where(InventoryRecord.location_id == location_id)
    return [serialize_inventory(row) for row in db.execute(query).scalars().all()]


def serialize_inventory(row: InventoryRecord) -> dict:
    return {
        'id': row.id,
        'identifier': row.identifier,
        'item': row.item,
        'lotNumber': row.lot_number,
        'account': row.account.value,
        'type': row.type,
        'quantity': row.quantity,
        'unit': row.unit,
        'proof': row.proof,
        'proofGallons': row.proof_gallons,
        'cost': row.cost,
        'totalCost': row.total_cost,
        'price': row.price,
        'isKegDepositItem': row.is_keg_deposit_item,
        'receivedDate': row.received_date,
        'source': row.source,
        'poNumber': row.po_number,
        'description': row.description,
        'status': row.status.value,
        'siteId': row.site_id,
        'locationId': row.location_id,
    }
