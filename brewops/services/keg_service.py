from __future__ import annotations

import logging
import re
from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from brewops.errors import ConflictError, NotFoundError, ValidationError
from brewops.models import Customer, Keg, KegStatus, KegTransaction, Location, Product
from brewops.services.audit_service import log_keg_transaction

logger = logging.getLogger(__name__)

KEG_CODE_PATTERN = re.compile(r'^[A-Z0-9-]+$')

_UNSET = object()


def validate_keg_code(code: str | None) -> str:
    clean = (code or '').strip()
    if not KEG_CODE_PATTERN.match(clean):
        raise ValidationError(f'Invalid keg code: {code}. Use uppercase letters, digits and dashes')
    return clean


def parse_keg_status(raw_status: str | None) -> KegStatus:
    try:
        return KegStatus((raw_status or '').strip())
    except ValueError as exc:
        allowed = ', '.join(status.value for status in KegStatus)
        raise ValidationError(f'Invalid status: {raw_status}. Must be one of: {allowed}') from exc


def describe_whereabouts(*, location_id: int | None, customer_name: str | None) -> str:
    if location_id is not None:
        return f'Location: {location_id}'
    if customer_name:
        return f'Customer: {customer_name}'
    return 'N/A'


def get_keg(db: Session, keg_id: int) -> Keg:
    keg = db.get(Keg, keg_id)
    if not keg:
        raise NotFoundError('Keg not found')
    return keg


def get_keg_by_code(db: Session, code: str) -> Keg | None:
    return db.execute(select(Keg).where(Keg.code == code)).scalar_one_or_none()


def _check_references(
    db: Session, *, product_id: int | None, location_id: int | None, customer_id: int | None
) -> Customer | None:
    if product_id is not None and not db.get(Product, product_id):
        raise ValidationError(f'Invalid productId: {product_id}')
    if location_id is not None and not db.get(Location, location_id):
        raise ValidationError(f'Invalid locationId: {location_id}')
    customer = None
    if customer_id is not None:
        customer = db.get(Customer, customer_id)
        if not customer:
            raise ValidationError(f'Invalid customerId: {customer_id}')
    return customer


def register_keg(
    db: Session,
    *,
    code: str | None,
    status: str | None = None,
    product_id: int | None = None,
    location_id: int | None = None,
    customer_id: int | None = None,
    packaging_type: str | None = None,
) -> Keg:
    clean_code = validate_keg_code(code)
    keg_status = parse_keg_status(status) if status else KegStatus.EMPTY
    if get_keg_by_code(db, clean_code):
        raise ConflictError('Keg code already exists')
    customer = _check_references(db, product_id=product_id, location_id=location_id, customer_id=customer_id)

    keg = Keg(
        code=clean_code,
        status=keg_status,
        product_id=product_id,
        location_id=location_id,
        customer_id=customer_id,
        packaging_type=packaging_type,
        last_scanned=date.today(),
    )
    db.add(keg)
    db.flush()
    log_keg_transaction(
        db,
        keg_id=keg.id,
        action='Created',
        product_id=product_id,
        customer_id=customer_id,
        location=describe_whereabouts(location_id=location_id, customer_name=customer.name if customer else None),
    )
    db.flush()
    logger.info('Registered keg %s as %s', clean_code, keg_status.value)
    return keg


def update_keg(
    db: Session,
    keg_id: int,
    *,
    status: str | None = None,
    product_id: object = _UNSET,
    location_id: object = _UNSET,
    customer_id: object = _UNSET,
    packaging_type: object = _UNSET,
) -> Keg:
    """Administrative move: any status to any status, always logged."""
    keg = get_keg(db, keg_id)
    new_status = parse_keg_status(status) if status else keg.status

    if product_id is not _UNSET:
        keg.product_id = product_id
    if location_id is not _UNSET:
        keg.location_id = location_id
    if customer_id is not _UNSET:
        keg.customer_id = customer_id
    if packaging_type is not _UNSET:
        keg.packaging_type = packaging_type
    customer = _check_references(
        db, product_id=keg.product_id, location_id=keg.location_id, customer_id=keg.customer_id
    )
    keg.status = new_status
    keg.last_scanned = date.today()

    log_keg_transaction(
        db,
        keg_id=keg.id,
        action=new_status.value,
        product_id=keg.product_id,
        customer_id=keg.customer_id,
        location=describe_whereabouts(location_id=keg.location_id, customer_name=customer.name if customer else None),
    )
    db.flush()
    logger.info('Keg %s manually set to %s', keg.code, new_status.value)
    return keg


def fill_keg(db: Session, *, code: str, product_id: int, batch_id: str, location_id: int) -> Keg:
    keg = get_keg_by_code(db, code)
    if not keg:
        raise ValidationError(f'Keg not found: {code}')
    if keg.status != KegStatus.EMPTY:
        logger.warning('Keg %s is %s, refusing to fill', code, keg.status.value)
        raise ValidationError(f'Keg {code} is not empty (status: {keg.status.value})')

    keg.status = KegStatus.FILLED
    keg.product_id = product_id
    keg.location_id = location_id
    keg.customer_id = None
    keg.last_scanned = date.today()
    log_keg_transaction(
        db,
        keg_id=keg.id,
        action='Filled',
        product_id=product_id,
        batch_id=batch_id,
        location=describe_whereabouts(location_id=location_id, customer_name=None),
    )
    return keg


def ship_keg(db: Session, *, code: str, customer: Customer, invoice_id: int) -> Keg:
    keg = get_keg_by_code(db, code)
    if not keg:
        raise ValidationError(f'Keg not found: {code}')
    if keg.status != KegStatus.FILLED:
        raise ValidationError(f'Keg {code} is not filled (status: {keg.status.value})')

    keg.location_id = None
    keg.customer_id = customer.id
    keg.last_scanned = date.today()
    log_keg_transaction(
        db,
        keg_id=keg.id,
        action='Shipped',
        product_id=keg.product_id,
        invoice_id=invoice_id,
        customer_id=customer.id,
        location=describe_whereabouts(location_id=None, customer_name=customer.name),
    )
    return keg


def serialize_keg(keg: Keg) -> dict:
    return {
        'id': keg.id,
        'code': keg.code,
        'status': keg.status.value,
        'productId': keg.product_id,
        'locationId': keg.location_id,
        'customerId': keg.customer_id,
        'packagingType': keg.packaging_type,
        'lastScanned': keg.last_scanned,
    }


def list_kegs(
    db: Session, *, status: str | None = None, location_id: int | None = None, customer_id: int | None = None
) -> list[dict]:
    query = select(Keg).order_by(Keg.code.asc())
    if status:
        query = query.where(Keg.status == parse_keg_status(status))
    if location_id is not None:
        query = query.where(Keg.location_id == location_id)
    if customer_id is not None:
        query = query.where(Keg.customer_id == customer_id)
    return [serialize_keg(keg) for keg in db.execute(query).scalars().all()]


def list_transactions(db: Session, keg_id: int) -> list[dict]:
    get_keg(db, keg_id)
    rows = db.execute(
        select(KegTransaction).where(KegTransaction.keg_id == keg_id).order_by(KegTransaction.id.asc())
    ).scalars().all()
    return [
        {
            'id': row.id,
            'kegId': row.keg_id,
            'action': row.action,
            'productId': row.product_id,
            'batchId': row.batch_id,
            'invoiceId': row.invoice_id,
            'customerId': row.customer_id,
            'date': row.transaction_date,
            'location': row.location,
        }
        for row in rows
    ]
