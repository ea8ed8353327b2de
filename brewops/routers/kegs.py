from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from brewops.db import get_db
from brewops.schemas import KegCreate, KegPatch
from brewops.services import keg_service

router = APIRouter(prefix='/kegs', tags=['kegs'])


@router.get('')
def list_kegs(
    status: str | None = None,
    location_id: int | None = Query(default=None, alias='locationId'),
    customer_id: int | None = Query(default=None, alias='customerId'),
    db: Session = Depends(get_db),
):
    return keg_service.list_kegs(db, status=status, location_id=location_id, customer_id=customer_id)


@router.post('')
def register_keg(payload: KegCreate, db: Session = Depends(get_db)):
    keg = keg_service.register_keg(
        db,
        code=payload.code,
        status=payload.status,
        product_id=payload.product_id,
        location_id=payload.location_id,
        customer_id=payload.customer_id,
        packaging_type=payload.packaging_type,
    )
    db.commit()
    return keg_service.serialize_keg(keg)


@router.patch('/{keg_id}')
def update_keg(keg_id: int, payload: KegPatch, db: Session = Depends(get_db)):
    # Only fields present in the body are changed; an explicit null clears one.
    changes = payload.model_dump(include=payload.model_fields_set - {'status'})
    keg = keg_service.update_keg(db, keg_id, status=payload.status, **changes)
    db.commit()
    return keg_service.serialize_keg(keg)


@router.get('/{keg_id}/transactions')
def list_transactions(keg_id: int, db: Session = Depends(get_db)):
    return keg_service.list_transactions(db, keg_id)
