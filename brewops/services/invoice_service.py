from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from brewops.errors import ConfigurationError, ConflictError, NotFoundError, ValidationError
from brewops.models import Customer, Invoice, InvoiceItem, InvoiceItemKegCode, InvoiceStatus, SystemSetting
from brewops.services import inventory_service
from brewops.services.keg_service import KEG_CODE_PATTERN, ship_keg

logger = logging.getLogger(__name__)

KEG_DEPOSIT_SETTING = 'keg_deposit_price'
KEG_DEPOSIT_ITEM = 'Keg Deposit'
CENTS = Decimal('0.01')


@dataclass(frozen=True)
class InvoiceLineInput:
    item_name: str | None
    quantity: int | None
    unit: str | None
    price: Decimal | None
    has_keg_deposit: bool = False
    keg_codes: list[str] = field(default_factory=list)


def get_keg_deposit_price(db: Session) -> Decimal:
    setting = db.get(SystemSetting, KEG_DEPOSIT_SETTING)
    if not setting:
        raise ConfigurationError('Keg deposit price not configured')
    try:
        return Decimal(setting.value.strip())
    except InvalidOperation as exc:
        raise ConfigurationError(f'Keg deposit price is not a number: {setting.value}') from exc


def get_invoice(db: Session, invoice_id: int) -> Invoice:
    invoice = db.get(Invoice, invoice_id)
    if not invoice:
        raise NotFoundError('Invoice not found')
    return invoice


def _require_draft(invoice: Invoice) -> None:
    if invoice.status != InvoiceStatus.DRAFT:
        raise ConflictError(f'Invoice {invoice.id} is not in Draft status')


def _load_lines(db: Session, invoice_id: int) -> list[InvoiceItem]:
    return db.execute(
        select(InvoiceItem)
        .where(InvoiceItem.invoice_id == invoice_id, InvoiceItem.item_name != KEG_DEPOSIT_ITEM)
        .order_by(InvoiceItem.position.asc(), InvoiceItem.id.asc())
    ).scalars().all()


def _keg_codes_by_line(db: Session, line_ids: list[int]) -> dict[int, list[str]]:
    codes: dict[int, list[str]] = {line_id: [] for line_id in line_ids}
    if not line_ids:
        return codes
    rows = db.execute(
        select(InvoiceItemKegCode)
        .where(InvoiceItemKegCode.invoice_item_id.in_(line_ids))
        .order_by(InvoiceItemKegCode.invoice_item_id.asc(), InvoiceItemKegCode.position.asc())
    ).scalars().all()
    for row in rows:
        codes[row.invoice_item_id].append(row.keg_code)
    return codes


def compute_totals(lines: list[tuple[int, Decimal, bool]], deposit_price: Decimal) -> tuple[Decimal, Decimal, Decimal]:
    """(quantity, price, has_keg_deposit) lines -> (subtotal, keg deposit total, total)."""
    subtotal = sum((price * quantity for quantity, price, _ in lines), Decimal('0'))
    deposit_total = sum((deposit_price * quantity for quantity, _, has_deposit in lines if has_deposit), Decimal('0'))
    subtotal = subtotal.quantize(CENTS)
    deposit_total = deposit_total.quantize(CENTS)
    return subtotal, deposit_total, subtotal + deposit_total


def _keg_count_error(item_name: str, quantity: int, codes: list[str], *, index: int | None = None) -> str | None:
    if len(codes) == quantity:
        return None
    where = f' at index {index}' if index is not None else ''
    return f'Item {item_name}{where} requires exactly {quantity} keg codes'


def save_draft_items(db: Session, invoice_id: int, items: list[InvoiceLineInput]) -> dict:
    if not items:
        raise ValidationError('Items are required and must be a non-empty array')
    invoice = get_invoice(db, invoice_id)
    _require_draft(invoice)
    deposit_price = get_keg_deposit_price(db)

    errors = []
    for index, item in enumerate(items):
        name = (item.item_name or '').strip()
        if not name or item.quantity is None or item.quantity < 0 or not (item.unit or '').strip() or item.price is None:
            errors.append(f'Invalid item at index {index}: itemName, quantity, unit, and valid price are required')
            continue
        if item.has_keg_deposit:
            message = _keg_count_error(name, item.quantity, item.keg_codes, index=index)
            if message:
                errors.append(message)
        if any(not KEG_CODE_PATTERN.match(code or '') for code in item.keg_codes):
            errors.append(f'Invalid kegCodes for item {name} at index {index}: must be valid codes')
    if errors:
        logger.warning('Invoice %s draft rejected: %s', invoice_id, '; '.join(errors))
        raise ValidationError('; '.join(errors))

    line_ids = select(InvoiceItem.id).where(InvoiceItem.invoice_id == invoice_id)
    db.execute(delete(InvoiceItemKegCode).where(InvoiceItemKegCode.invoice_item_id.in_(line_ids)))
    db.execute(delete(InvoiceItem).where(InvoiceItem.invoice_id == invoice_id))
    db.flush()

    for position, item in enumerate(items):
        line = InvoiceItem(
            invoice_id=invoice_id,
            position=position,
            item_name=item.item_name.strip(),
            quantity=item.quantity,
            unit=item.unit.strip(),
            price=item.price,
            has_keg_deposit=bool(item.has_keg_deposit),
        )
        db.add(line)
        db.flush()
        for code_position, code in enumerate(item.keg_codes):
            db.add(InvoiceItemKegCode(invoice_item_id=line.id, position=code_position, keg_code=code))

    invoice.subtotal, invoice.keg_deposit_total, invoice.total = compute_totals(
        [(item.quantity, item.price, bool(item.has_keg_deposit)) for item in items], deposit_price
    )
    db.flush()
    logger.info('Saved %d draft line(s) on invoice %s, total %s', len(items), invoice_id, invoice.total)
    return get_invoice_detail(db, invoice_id)


def post_invoice(db: Session, invoice_id: int) -> Invoice:
    """Ship a draft invoice: decrement saleable stock and hand kegs to the customer.

    Line checks run before any write; a shortfall or keg problem discovered
    later raises and the caller's rollback discards the partial work.
    """
    invoice = get_invoice(db, invoice_id)
    _require_draft(invoice)
    lines = _load_lines(db, invoice_id)
    if not lines:
        raise ValidationError('No items found for the invoice')
    deposit_price = get_keg_deposit_price(db)
    codes_by_line = _keg_codes_by_line(db, [line.id for line in lines])

    errors = []
    for line in lines:
        if line.price is None:
            errors.append(f'Invalid price for item {line.item_name}')
        if line.has_keg_deposit:
            message = _keg_count_error(line.item_name, line.quantity, codes_by_line[line.id])
            if message:
                errors.append(message)
    if errors:
        logger.warning('Invoice %s posting rejected: %s', invoice_id, '; '.join(errors))
        raise ValidationError('; '.join(errors))

    customer = db.get(Customer, invoice.customer_id)
    if not customer:
        raise ValidationError(f'Invalid customerId: {invoice.customer_id}')

    for line in lines:
        inventory_service.decrement_saleable(db, identifier=line.item_name, quantity=Decimal(line.quantity))
        for code in codes_by_line[line.id]:
            ship_keg(db, code=code, customer=customer, invoice_id=invoice.id)

    invoice.subtotal, invoice.keg_deposit_total, invoice.total = compute_totals(
        [(line.quantity, line.price, line.has_keg_deposit) for line in lines], deposit_price
    )
    invoice.status = InvoiceStatus.POSTED
    invoice.posted_date = date.today()
    db.flush()
    logger.info('Posted invoice %s for customer %s, total %s', invoice_id, customer.name, invoice.total)
    return invoice


def get_invoice_detail(db: Session, invoice_id: int) -> dict:
    invoice = get_invoice(db, invoice_id)
    customer = db.get(Customer, invoice.customer_id)
    deposit_price = get_keg_deposit_price(db)
    lines = _load_lines(db, invoice_id)
    codes_by_line = _keg_codes_by_line(db, [line.id for line in lines])

    items = []
    for line in lines:
        keg_deposit = None
        if line.has_keg_deposit:
            keg_deposit = {
                'itemName': KEG_DEPOSIT_ITEM,
                'quantity': line.quantity,
                'unit': 'Units',
                'price': deposit_price.quantize(CENTS),
                'hasKegDeposit': False,
                'isSubCharge': True,
            }
        items.append(
            {
                'id': line.id,
                'itemName': line.item_name,
                'quantity': line.quantity,
                'unit': line.unit,
                'price': line.price,
                'hasKegDeposit': line.has_keg_deposit,
                'kegCodes': codes_by_line[line.id],
                'kegDeposit': keg_deposit,
            }
        )

    return {
        'invoiceId': invoice.id,
        'customerId': invoice.customer_id,
        'customerName': customer.name if customer else None,
        'customerEmail': customer.email if customer else None,
        'status': invoice.status.value,
        'createdDate': invoice.created_date,
        'postedDate': invoice.posted_date,
        'subtotal': invoice.subtotal,
        'kegDepositTotal': invoice.keg_deposit_total,
        'total': invoice.total,
        'kegDepositPrice': deposit_price.quantize(CENTS),
        'items': items,
    }
