from __future__ import annotations

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from brewops.db import get_db
from brewops.dependencies import get_actor
from brewops.schemas import LossIn, ReceiveItemIn
from brewops.services import inventory_service
from brewops.services.inventory_service import ReceiveItem

router = APIRouter(prefix='/inventory', tags=['inventory'])


@router.get('')
def list_inventory(
    site_id: str | None = Query(default=None, alias='siteId'),
    type: str | None = None,
    location_id: int | None = Query(default=None, alias='locationId'),
    db: Session = Depends(get_db),
):
    return inventory_service.list_inventory(db, site_id=site_id, type_=type, location_id=location_id)


@router.post('/receive')
def receive_inventory(
    payload: ReceiveItemIn | list[ReceiveItemIn] = Body(...),
    db: Session = Depends(get_db),
):
    entries = payload if isinstance(payload, list) else [payload]
    count = inventory_service.receive(
        db, [ReceiveItem(**entry.model_dump()) for entry in entries]
    )
    db.commit()
    return {'message': f'Received {count} inventory item(s) successfully'}


@router.post('/loss')
def record_loss(
    payload: LossIn,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
):
    inventory_service.record_loss(
        db,
        identifier=(payload.identifier or '').strip(),
        quantity_lost=payload.quantity_lost,
        reason=payload.reason,
        site_id=(payload.site_id or '').strip(),
        type_=payload.type,
        account=payload.account,
        location_id=payload.location_id,
        loss_date=payload.loss_date,
        actor=actor,
    )
    db.commit()
    return {'message': 'Loss recorded successfully'}
