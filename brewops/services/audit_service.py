from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy.orm import Session

from brewops.models import BatchAction, InventoryLoss, KegTransaction


def log_inventory_loss(
    db: Session,
    *,
    identifier: str,
    quantity_lost: Decimal,
    reason: str,
    site_id: str,
    actor: str,
    location_id: int | None = None,
    loss_date: date | None = None,
) -> InventoryLoss:
    loss = InventoryLoss(
        identifier=identifier,
        quantity_lost=quantity_lost,
        reason=reason,
        loss_date=loss_date or date.today(),
        site_id=site_id,
        location_id=location_id,
        actor=actor,
    )
    db.add(loss)
    return loss


def log_keg_transaction(
    db: Session,
    *,
    keg_id: int,
    action: str,
    location: str | None,
    product_id: int | None = None,
    batch_id: str | None = None,
    invoice_id: int | None = None,
    customer_id: int | None = None,
) -> KegTransaction:
    transaction = KegTransaction(
        keg_id=keg_id,
        action=action,
        product_id=product_id,
        batch_id=batch_id,
        invoice_id=invoice_id,
        customer_id=customer_id,
        transaction_date=date.today(),
        location=location,
    )
    db.add(transaction)
    return transaction


def log_batch_action(db: Session, *, batch_id: str, action: str) -> BatchAction:
    entry = BatchAction(batch_id=batch_id, action=action, created_at=datetime.now(tz=timezone.utc))
    db.add(entry)
    return entry
