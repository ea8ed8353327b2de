"""Request bodies for the JSON API. Keys are camelCase on the wire."""

from __future__ import annotations

import datetime as dt
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BatchCreate(CamelModel):
    batch_id: str | None = None
    product_id: int | None = None
    recipe_id: int | None = None
    site_id: str | None = None
    fermenter_id: int | None = None
    status: str | None = None
    batch_date: dt.date | None = Field(default=None, alias='date')
    volume: Decimal | None = None
    batch_type: str | None = None


class BatchPatch(CamelModel):
    status: str | None = None
    volume: Decimal | None = None


class IngredientIn(CamelModel):
    item_name: str | None = None
    quantity: Decimal | None = None
    unit: str | None = None
    is_recipe: bool = False
    excluded: bool = False
    proof: Decimal | None = None
    proof_gallons: Decimal | None = None


class IngredientsPost(IngredientIn):
    # Present for the bulk form; absent for a single ingredient.
    ingredients: list[IngredientIn] | None = None


class IngredientsPatch(CamelModel):
    ingredients: list[IngredientIn]


class StageChange(CamelModel):
    stage: str | None = None
    equipment_id: int | None = None


class EquipmentChange(CamelModel):
    equipment_id: int | None = None


class VolumeAdjustment(CamelModel):
    volume: Decimal | None = None
    reason: str | None = None


class PackageRequest(CamelModel):
    package_type: str | None = None
    quantity: int | None = None
    location_id: int | None = None
    keg_codes: list[str] | None = None
    allow_volume_increase: bool = False


class PackagingUpdate(CamelModel):
    quantity: int | None = None


class BrewLogIn(CamelModel):
    entry: str | None = None


class BatchActionIn(CamelModel):
    action: str | None = None


class ReceiveItemIn(CamelModel):
    identifier: str | None = None
    item: str | None = None
    type: str | None = None
    quantity: Decimal | None = None
    unit: str | None = None
    received_date: str | None = None
    status: str | None = None
    site_id: str | None = None
    location_id: int | None = None
    account: str | None = None
    proof: Decimal | None = None
    proof_gallons: Decimal | None = None
    cost: Decimal | None = None
    total_cost: Decimal | None = None
    description: str | None = None
    lot_number: str | None = None
    po_number: str | None = None
    source: str | None = None


class LossIn(CamelModel):
    identifier: str | None = None
    type: str | None = None
    account: str | None = None
    quantity_lost: Decimal | None = None
    reason: str | None = None
    loss_date: dt.date | None = Field(default=None, alias='date')
    site_id: str | None = None
    location_id: int | None = None


class KegCreate(CamelModel):
    code: str | None = None
    status: str | None = None
    product_id: int | None = None
    location_id: int | None = None
    customer_id: int | None = None
    packaging_type: str | None = None


class KegPatch(CamelModel):
    status: str | None = None
    product_id: int | None = None
    location_id: int | None = None
    customer_id: int | None = None
    packaging_type: str | None = None


class InvoiceLineIn(CamelModel):
    item_name: str | None = None
    quantity: int | None = None
    unit: str | None = None
    price: Decimal | None = None
    has_keg_deposit: bool = False
    keg_codes: list[str] | None = None


class InvoicePatch(CamelModel):
    items: list[InvoiceLineIn] | None = None
