from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from brewops.errors import ConflictError, InsufficientResourceError, NotFoundError, ValidationError
from brewops.models import (
    BATCH_STAGE_ORDER,
    Batch,
    BatchPackaging,
    BatchStage,
    BatchStatus,
    CatalogItem,
    InventoryAccount,
    PackageKegCode,
    Product,
    ProductPackageType,
)
from brewops.services import inventory_service
from brewops.services.audit_service import log_batch_action
from brewops.services.batch_service import get_batch
from brewops.services.keg_service import fill_keg, validate_keg_code
from brewops.services.package_types import PackageVolumeTable
from brewops.services.quantity_utils import VOLUME_TOLERANCE, format_barrels

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VolumeAdjustmentPrompt:
    message: str
    shortfall: Decimal

    def to_body(self) -> dict:
        return {'prompt': 'volumeAdjustment', 'message': self.message, 'shortfall': self.shortfall}


@dataclass(frozen=True)
class PackagingResult:
    packaging_id: int
    new_identifier: str
    quantity: int
    new_volume: Decimal

    def to_body(self) -> dict:
        return {
            'message': 'Packaging successful',
            'packagingId': self.packaging_id,
            'newIdentifier': self.new_identifier,
            'quantity': self.quantity,
            'newVolume': self.new_volume,
        }


def finished_goods_identifier(product_name: str, package_type: str) -> str:
    return f'{product_name} {package_type}'


def _require_packageable(batch: Batch) -> None:
    if batch.status == BatchStatus.COMPLETED:
        raise ConflictError('Cannot modify a completed batch')


def _volume_per_unit(table: PackageVolumeTable, package_type: str) -> Decimal:
    if package_type not in table:
        raise ValidationError(f'Invalid packageType: {package_type}. Must be one of: {", ".join(table.names())}')
    return table.volume_per_unit(package_type)


def _clean_keg_codes(table: PackageVolumeTable, package_type: str, quantity: int, keg_codes: list[str] | None) -> list[str]:
    if not keg_codes or not table.is_keg(package_type):
        return []
    codes = [validate_keg_code(code) for code in keg_codes]
    if len(codes) != quantity:
        raise ValidationError(f'Expected {quantity} keg codes, got {len(codes)}')
    if len(set(codes)) != len(codes):
        raise ValidationError('Duplicate keg codes in request')
    return codes


def _product_for(db: Session, batch: Batch) -> Product:
    product = db.get(Product, batch.product_id)
    if not product:
        raise ValidationError(f'Invalid productId: {batch.product_id}')
    return product


def package(
    db: Session,
    table: PackageVolumeTable,
    *,
    batch_id: str,
    package_type: str | None,
    quantity: int | None,
    location_id: int | None,
    keg_codes: list[str] | None = None,
    allow_volume_increase: bool = False,
) -> PackagingResult | VolumeAdjustmentPrompt:
    """Turn batch volume into packaged finished goods.

    An over-draw beyond the tolerance comes back as a VolumeAdjustmentPrompt and
    nothing is written, unless allow_volume_increase is set; then the batch is
    topped up by the shortfall in the same transaction before packaging.
    """
    if quantity is None or quantity <= 0:
        raise ValidationError('quantity must be a positive integer')
    if location_id is None:
        raise ValidationError('locationId is required')
    package_type = (package_type or '').strip()
    per_unit = _volume_per_unit(table, package_type)
    codes = _clean_keg_codes(table, package_type, quantity, keg_codes)

    batch = get_batch(db, batch_id)
    _require_packageable(batch)
    if batch.volume is None:
        raise ValidationError('Batch volume not set')

    volume_used = per_unit * quantity
    available = batch.volume
    if volume_used > available + VOLUME_TOLERANCE:
        shortfall = volume_used - available
        if not allow_volume_increase:
            message = (
                f'{format_barrels(volume_used)} barrels needed, {format_barrels(available)} barrels available. '
                f'Increase batch volume by {format_barrels(shortfall)} barrels?'
            )
            logger.info('Packaging %s for batch %s needs %s more barrels', package_type, batch_id, shortfall)
            return VolumeAdjustmentPrompt(message=message, shortfall=shortfall)
        batch.volume = volume_used
        log_batch_action(
            db,
            batch_id=batch_id,
            action=f'Volume increased by {format_barrels(shortfall)} barrels to package {quantity} {package_type}',
        )
        available = volume_used

    inventory_service.ensure_location_in_site(db, location_id=location_id, site_id=batch.site_id)
    product = _product_for(db, batch)
    identifier = finished_goods_identifier(product.name, package_type)
    catalog_item = db.execute(
        select(CatalogItem).where(
            CatalogItem.name == identifier,
            CatalogItem.type == inventory_service.FINISHED_GOODS,
            CatalogItem.enabled.is_(True),
        )
    ).scalar_one_or_none()
    if not catalog_item:
        raise ValidationError(f'Finished good not found or disabled: {identifier}')
    pricing = db.execute(
        select(ProductPackageType).where(
            ProductPackageType.product_id == product.id, ProductPackageType.package_type == package_type
        )
    ).scalar_one_or_none()
    if not pricing:
        raise ValidationError(f'Package type {package_type} is not configured for product {product.name}')

    packaging = BatchPackaging(
        batch_id=batch_id,
        package_type=package_type,
        quantity=quantity,
        volume=volume_used,
        location_id=location_id,
        site_id=batch.site_id,
        package_date=date.today(),
    )
    db.add(packaging)
    db.flush()
    for position, code in enumerate(codes):
        fill_keg(db, code=code, product_id=product.id, batch_id=batch_id, location_id=location_id)
        db.add(PackageKegCode(packaging_id=packaging.id, position=position, keg_code=code))

    # Within tolerance the draw may slightly exceed the pool.
    new_volume = max(available - volume_used, Decimal('0'))
    batch.volume = new_volume
    if batch.stage is None or BATCH_STAGE_ORDER.index(batch.stage) < BATCH_STAGE_ORDER.index(BatchStage.PACKAGING):
        batch.stage = BatchStage.PACKAGING

    inventory_service.credit(
        db,
        identifier=identifier,
        type_=inventory_service.FINISHED_GOODS,
        account=InventoryAccount.STORAGE,
        site_id=batch.site_id,
        location_id=location_id,
        quantity=Decimal(quantity),
        price=pricing.price,
        is_keg_deposit_item=pricing.is_keg_deposit_item,
    )
    db.flush()
    logger.info('Packaged %d x %s from batch %s, %s barrels left', quantity, package_type, batch_id, new_volume)
    return PackagingResult(
        packaging_id=packaging.id, new_identifier=identifier, quantity=quantity, new_volume=new_volume
    )


def _keg_codes_by_packaging(db: Session, packaging_ids: list[int]) -> dict[int, list[str]]:
    codes: dict[int, list[str]] = {packaging_id: [] for packaging_id in packaging_ids}
    if not packaging_ids:
        return codes
    rows = db.execute(
        select(PackageKegCode)
        .where(PackageKegCode.packaging_id.in_(packaging_ids))
        .order_by(PackageKegCode.packaging_id.asc(), PackageKegCode.position.asc())
    ).scalars().all()
    for row in rows:
        codes[row.packaging_id].append(row.keg_code)
    return codes


def list_packaging(db: Session, batch_id: str) -> list[dict]:
    get_batch(db, batch_id)
    rows = db.execute(
        select(BatchPackaging).where(BatchPackaging.batch_id == batch_id).order_by(BatchPackaging.id.asc())
    ).scalars().all()
    codes = _keg_codes_by_packaging(db, [row.id for row in rows])
    return [
        {
            'id': row.id,
            'batchId': row.batch_id,
            'packageType': row.package_type,
            'quantity': row.quantity,
            'volume': row.volume,
            'locationId': row.location_id,
            'siteId': row.site_id,
            'date': row.package_date,
            'kegCodes': codes[row.id],
        }
        for row in rows
    ]


def _get_packaging(db: Session, *, batch_id: str, packaging_id: int) -> BatchPackaging:
    packaging = db.execute(
        select(BatchPackaging).where(BatchPackaging.id == packaging_id, BatchPackaging.batch_id == batch_id)
    ).scalar_one_or_none()
    if not packaging:
        raise NotFoundError('Packaging record not found')
    return packaging


def update_packaging(
    db: Session, table: PackageVolumeTable, *, batch_id: str, packaging_id: int, new_quantity: int | None
) -> Decimal:
    if new_quantity is None or new_quantity <= 0:
        raise ValidationError('quantity must be a positive integer')
    batch = get_batch(db, batch_id)
    _require_packageable(batch)
    packaging = _get_packaging(db, batch_id=batch_id, packaging_id=packaging_id)
    if new_quantity != packaging.quantity and _keg_codes_by_packaging(db, [packaging.id])[packaging.id]:
        raise ValidationError('Cannot change the quantity of keg packaging; delete it and package again')
    per_unit = _volume_per_unit(table, packaging.package_type)

    batch_volume = batch.volume if batch.volume is not None else Decimal('0')
    new_volume = per_unit * new_quantity
    new_batch_volume = batch_volume + (packaging.volume - new_volume)
    if new_batch_volume < 0:
        raise InsufficientResourceError(
            f'Insufficient batch volume: {format_barrels(new_volume)} barrels required, '
            f'{format_barrels(batch_volume + packaging.volume)} available'
        )

    product = _product_for(db, batch)
    inventory_service.adjust_finished_goods(
        db,
        identifier=finished_goods_identifier(product.name, packaging.package_type),
        site_id=packaging.site_id,
        location_id=packaging.location_id,
        delta=Decimal(new_quantity - packaging.quantity),
    )
    packaging.quantity = new_quantity
    packaging.volume = new_volume
    batch.volume = new_batch_volume
    db.flush()
    logger.info('Packaging %s of batch %s set to %d units', packaging_id, batch_id, new_quantity)
    return new_batch_volume


def delete_packaging(db: Session, *, batch_id: str, packaging_id: int) -> Decimal:
    batch = get_batch(db, batch_id)
    _require_packageable(batch)
    packaging = _get_packaging(db, batch_id=batch_id, packaging_id=packaging_id)

    product = _product_for(db, batch)
    inventory_service.adjust_finished_goods(
        db,
        identifier=finished_goods_identifier(product.name, packaging.package_type),
        site_id=packaging.site_id,
        location_id=packaging.location_id,
        delta=-Decimal(packaging.quantity),
        delete_when_empty=True,
    )
    new_batch_volume = (batch.volume if batch.volume is not None else Decimal('0')) + packaging.volume
    batch.volume = new_batch_volume
    db.execute(delete(PackageKegCode).where(PackageKegCode.packaging_id == packaging.id))
    db.delete(packaging)
    db.flush()
    logger.info('Deleted packaging %s of batch %s, batch volume now %s', packaging_id, batch_id, new_batch_volume)
    return new_batch_volume
