from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from brewops.db import get_db
from brewops.dependencies import get_actor, get_package_table
from brewops.schemas import (
    BatchActionIn,
    BatchCreate,
    BatchPatch,
    BrewLogIn,
    EquipmentChange,
    IngredientIn,
    IngredientsPatch,
    IngredientsPost,
    PackageRequest,
    PackagingUpdate,
    StageChange,
    VolumeAdjustment,
)
from brewops.services import batch_service, packaging_service
from brewops.services.batch_service import IngredientInput
from brewops.services.package_types import PackageVolumeTable
from brewops.services.packaging_service import VolumeAdjustmentPrompt

router = APIRouter(prefix='/batches', tags=['batches'])


def _ingredient_input(payload: IngredientIn) -> IngredientInput:
    return IngredientInput(
        item_name=payload.item_name,
        quantity=payload.quantity,
        unit=payload.unit,
        is_recipe=payload.is_recipe,
        excluded=payload.excluded,
        proof=payload.proof,
        proof_gallons=payload.proof_gallons,
    )


@router.get('')
def list_batches(
    status: str | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=200),
    db: Session = Depends(get_db),
):
    return batch_service.list_batches(db, status=status, page=page, limit=limit)


@router.post('')
def create_batch(payload: BatchCreate, db: Session = Depends(get_db)):
    batch = batch_service.create_batch(
        db,
        batch_id=payload.batch_id,
        product_id=payload.product_id,
        recipe_id=payload.recipe_id,
        site_id=payload.site_id,
        fermenter_id=payload.fermenter_id,
        volume=payload.volume,
        status=payload.status,
        batch_date=payload.batch_date,
        batch_type=payload.batch_type,
    )
    db.commit()
    return {'batchId': batch.batch_id}


@router.get('/{batch_id}')
def get_batch(batch_id: str, db: Session = Depends(get_db)):
    return batch_service.get_batch_detail(db, batch_id)


@router.patch('/{batch_id}')
def update_batch(batch_id: str, payload: BatchPatch, db: Session = Depends(get_db)):
    batch_service.update_batch(db, batch_id, status=payload.status, volume=payload.volume)
    db.commit()
    return {'message': 'Batch updated successfully'}


@router.delete('/{batch_id}')
def delete_batch(batch_id: str, db: Session = Depends(get_db)):
    batch_service.delete_batch(db, batch_id)
    db.commit()
    return {'message': 'Batch deleted successfully'}


@router.post('/{batch_id}/ingredients')
def add_ingredients(batch_id: str, payload: IngredientsPost, db: Session = Depends(get_db)):
    if payload.ingredients is not None:
        ingredients = batch_service.add_ingredients(
            db, batch_id, [_ingredient_input(item) for item in payload.ingredients]
        )
        db.commit()
        return {'message': 'Ingredients added successfully', 'ingredients': ingredients}

    detail = batch_service.add_ingredient(db, batch_id, _ingredient_input(payload))
    db.commit()
    return detail


@router.patch('/{batch_id}/ingredients')
def patch_ingredients(batch_id: str, payload: IngredientsPatch, db: Session = Depends(get_db)):
    ingredients = batch_service.patch_ingredients(db, batch_id, [_ingredient_input(item) for item in payload.ingredients])
    db.commit()
    return {'message': 'Ingredients updated successfully', 'ingredients': ingredients}


@router.delete('/{batch_id}/ingredients')
def clear_ingredients(batch_id: str, db: Session = Depends(get_db)):
    batch_service.clear_ingredients(db, batch_id)
    db.commit()
    return {'message': 'Additional ingredients deleted successfully'}


@router.post('/{batch_id}/equipment')
def advance_stage(batch_id: str, payload: StageChange, db: Session = Depends(get_db)):
    batch = batch_service.advance_stage(db, batch_id, stage=payload.stage, equipment_id=payload.equipment_id)
    db.commit()
    return {'message': 'Stage updated successfully', 'stage': batch.stage.value, 'equipmentId': batch.equipment_id}


@router.patch('/{batch_id}/equipment')
def assign_equipment(batch_id: str, payload: EquipmentChange, db: Session = Depends(get_db)):
    batch = batch_service.assign_equipment(db, batch_id, equipment_id=payload.equipment_id)
    db.commit()
    return {'message': 'Equipment updated successfully', 'equipmentId': batch.equipment_id}


@router.get('/{batch_id}/package')
def list_packaging(batch_id: str, db: Session = Depends(get_db)):
    return packaging_service.list_packaging(db, batch_id)


@router.post('/{batch_id}/package')
def package_batch(
    batch_id: str,
    payload: PackageRequest,
    db: Session = Depends(get_db),
    table: PackageVolumeTable = Depends(get_package_table),
):
    outcome = packaging_service.package(
        db,
        table,
        batch_id=batch_id,
        package_type=payload.package_type,
        quantity=payload.quantity,
        location_id=payload.location_id,
        keg_codes=payload.keg_codes,
        allow_volume_increase=payload.allow_volume_increase,
    )
    if isinstance(outcome, VolumeAdjustmentPrompt):
        # Nothing was written; the caller decides whether to top up the batch.
        return outcome.to_body()
    db.commit()
    return outcome.to_body()


@router.patch('/{batch_id}/package/{packaging_id}')
def update_packaging(
    batch_id: str,
    packaging_id: int,
    payload: PackagingUpdate,
    db: Session = Depends(get_db),
    table: PackageVolumeTable = Depends(get_package_table),
):
    new_batch_volume = packaging_service.update_packaging(
        db, table, batch_id=batch_id, packaging_id=packaging_id, new_quantity=payload.quantity
    )
    db.commit()
    return {'message': 'Packaging updated successfully', 'newBatchVolume': new_batch_volume}


@router.delete('/{batch_id}/package/{packaging_id}')
def delete_packaging(batch_id: str, packaging_id: int, db: Session = Depends(get_db)):
    new_batch_volume = packaging_service.delete_packaging(db, batch_id=batch_id, packaging_id=packaging_id)
    db.commit()
    return {'message': 'Packaging deleted successfully', 'newBatchVolume': new_batch_volume}


@router.post('/{batch_id}/adjust-volume')
def adjust_volume(
    batch_id: str,
    payload: VolumeAdjustment,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
):
    new_volume = batch_service.adjust_volume(
        db, batch_id, new_volume=payload.volume, reason=payload.reason, actor=actor
    )
    db.commit()
    return {'message': 'Batch volume adjusted successfully', 'newVolume': new_volume}


@router.get('/{batch_id}/brewlog')
def list_brew_log(batch_id: str, db: Session = Depends(get_db)):
    return batch_service.list_brew_log(db, batch_id)


@router.post('/{batch_id}/brewlog')
def append_brew_log(batch_id: str, payload: BrewLogIn, db: Session = Depends(get_db)):
    entry = batch_service.append_brew_log(db, batch_id, entry=payload.entry)
    db.commit()
    return {'message': 'Brew log entry added', 'id': entry.id, 'timestamp': entry.created_at}


@router.get('/{batch_id}/actions')
def list_actions(batch_id: str, db: Session = Depends(get_db)):
    return batch_service.list_actions(db, batch_id)


@router.post('/{batch_id}/actions')
def record_action(batch_id: str, payload: BatchActionIn, db: Session = Depends(get_db)):
    entry = batch_service.record_action(db, batch_id, action=payload.action)
    db.commit()
    return {'message': 'Action recorded', 'id': entry.id}
