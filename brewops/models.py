from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Numeric,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
BigIntPK = BigInteger().with_variant(Integer, 'sqlite')

Quantity = Numeric(14, 4)
Volume = Numeric(14, 6)
Money = Numeric(12, 2)


class Base(DeclarativeBase):
    pass


class InventoryStatus(str, Enum):
    RECEIVED = 'Received'
    STORED = 'Stored'
    PROCESSING = 'Processing'
    PACKAGED = 'Packaged'


class InventoryAccount(str, Enum):
    STORAGE = 'Storage'
    PROCESSING = 'Processing'
    PRODUCTION = 'Production'


class BatchStatus(str, Enum):
    IN_PROGRESS = 'In Progress'
    COMPLETED = 'Completed'


class BatchStage(str, Enum):
    BREWING = 'Brewing'
    FERMENTATION = 'Fermentation'
    FILTERING_CARBONATING = 'Filtering/Carbonating'
    PACKAGING = 'Packaging'
    COMPLETED = 'Completed'


BATCH_STAGE_ORDER: tuple[BatchStage, ...] = (
    BatchStage.BREWING,
    BatchStage.FERMENTATION,
    BatchStage.FILTERING_CARBONATING,
    BatchStage.PACKAGING,
    BatchStage.COMPLETED,
)


class KegStatus(str, Enum):
    EMPTY = 'Empty'
    FILLED = 'Filled'
    DESTROYED = 'Destroyed'
    BROKEN = 'Broken'


class InvoiceStatus(str, Enum):
    DRAFT = 'Draft'
    POSTED = 'Posted'
    CANCELLED = 'Cancelled'


class Site(Base):
    __tablename__ = 'sites'

    site_id: Mapped[str] = mapped_column(Text, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str | None] = mapped_column(Text)
    address: Mapped[str | None] = mapped_column(Text)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='1')


class Location(Base):
    __tablename__ = 'locations'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    site_id: Mapped[str] = mapped_column(Text, ForeignKey('sites.site_id'), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    abbreviation: Mapped[str | None] = mapped_column(Text)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='1')


class Equipment(Base):
    __tablename__ = 'equipment'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    site_id: Mapped[str] = mapped_column(Text, ForeignKey('sites.site_id'), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    abbreviation: Mapped[str | None] = mapped_column(Text)
    type: Mapped[str | None] = mapped_column(Text)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='1')


class Product(Base):
    __tablename__ = 'products'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    abbreviation: Mapped[str | None] = mapped_column(Text)
    product_class: Mapped[str | None] = mapped_column(Text)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='1')


class ProductPackageType(Base):
    __tablename__ = 'product_package_types'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    product_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('products.id', ondelete='CASCADE'), nullable=False)
    package_type: Mapped[str] = mapped_column(Text, nullable=False)
    price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    is_keg_deposit_item: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='0')

    __table_args__ = (
        UniqueConstraint('product_id', 'package_type', name='product_package_types_product_type_uniq'),
    )


class CatalogItem(Base):
    __tablename__ = 'items'

    name: Mapped[str] = mapped_column(Text, primary_key=True)
    type: Mapped[str] = mapped_column(Text, nullable=False, default='Other', server_default='Other')
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='1')


class Recipe(Base):
    __tablename__ = 'recipes'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    product_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('products.id'), nullable=False)
    quantity: Mapped[Decimal | None] = mapped_column(Quantity)
    unit: Mapped[str | None] = mapped_column(Text)


class RecipeIngredient(Base):
    __tablename__ = 'recipe_ingredients'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    recipe_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('recipes.id', ondelete='CASCADE'), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    item_name: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    unit: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        CheckConstraint('quantity > 0', name='recipe_ingredients_quantity_positive_ck'),
    )


class InventoryRecord(Base):
    __tablename__ = 'inventory'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    identifier: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    item: Mapped[str | None] = mapped_column(Text)
    lot_number: Mapped[str | None] = mapped_column(Text)
    account: Mapped[InventoryAccount] = mapped_column(
        SQLEnum(InventoryAccount, name='inventory_account'),
        nullable=False,
        default=InventoryAccount.STORAGE,
        server_default='STORAGE',
    )
    type: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    unit: Mapped[str] = mapped_column(Text, nullable=False)
    proof: Mapped[Decimal | None] = mapped_column(Numeric(6, 2))
    proof_gallons: Mapped[Decimal | None] = mapped_column(Quantity)
    cost: Mapped[Decimal | None] = mapped_column(Numeric(14, 4))
    total_cost: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=Decimal('0'), server_default='0')
    price: Mapped[Decimal | None] = mapped_column(Money)
    is_keg_deposit_item: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='0')
    received_date: Mapped[date | None] = mapped_column(Date)
    source: Mapped[str | None] = mapped_column(Text)
    po_number: Mapped[str | None] = mapped_column(Text)
    description: Mapped[str | None] = mapped_column(Text)
    status: Mapped[InventoryStatus] = mapped_column(
        SQLEnum(InventoryStatus, name='inventory_status'), nullable=False, default=InventoryStatus.STORED
    )
    site_id: Mapped[str] = mapped_column(Text, ForeignKey('sites.site_id'), nullable=False)
    location_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('locations.id'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint('identifier', 'type', 'account', 'site_id', 'location_id', name='inventory_key_uniq'),
        CheckConstraint('quantity >= 0', name='inventory_quantity_non_negative_ck'),
    )


class InventoryLoss(Base):
    __tablename__ = 'inventory_losses'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    identifier: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    quantity_lost: Mapped[Decimal] = mapped_column(Volume, nullable=False)
    proof_gallons_lost: Mapped[Decimal] = mapped_column(Quantity, nullable=False, default=Decimal('0'), server_default='0')
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    loss_date: Mapped[date] = mapped_column(Date, nullable=False)
    site_id: Mapped[str] = mapped_column(Text, ForeignKey('sites.site_id'), nullable=False)
    location_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('locations.id'))
    actor: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Batch(Base):
    __tablename__ = 'batches'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    batch_id: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    product_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('products.id'), nullable=False)
    recipe_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('recipes.id'), nullable=False)
    site_id: Mapped[str] = mapped_column(Text, ForeignKey('sites.site_id'), nullable=False)
    fermenter_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('equipment.id'))
    equipment_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('equipment.id'))
    status: Mapped[BatchStatus] = mapped_column(
        SQLEnum(BatchStatus, name='batch_status'), nullable=False, default=BatchStatus.IN_PROGRESS
    )
    stage: Mapped[BatchStage | None] = mapped_column(SQLEnum(BatchStage, name='batch_stage'))
    batch_date: Mapped[date] = mapped_column(Date, nullable=False)
    volume: Mapped[Decimal | None] = mapped_column(Volume)
    batch_type: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint('volume IS NULL OR volume >= 0', name='batches_volume_non_negative_ck'),
    )


class BatchIngredientOverride(Base):
    __tablename__ = 'batch_ingredient_overrides'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    batch_id: Mapped[str] = mapped_column(Text, ForeignKey('batches.batch_id', ondelete='CASCADE'), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    item_name: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[Decimal | None] = mapped_column(Quantity)
    unit: Mapped[str] = mapped_column(Text, nullable=False)
    is_recipe: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='0')
    excluded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='0')
    proof: Mapped[Decimal | None] = mapped_column(Numeric(6, 2))
    proof_gallons: Mapped[Decimal | None] = mapped_column(Quantity)

    __table_args__ = (
        UniqueConstraint('batch_id', 'position', name='batch_ingredient_overrides_batch_position_uniq'),
        CheckConstraint('quantity IS NULL OR quantity >= 0', name='batch_ingredient_overrides_quantity_ck'),
    )


class BatchLogEntry(Base):
    __tablename__ = 'batch_log_entries'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    batch_id: Mapped[str] = mapped_column(Text, ForeignKey('batches.batch_id', ondelete='CASCADE'), nullable=False)
    entry: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class BatchAction(Base):
    __tablename__ = 'batch_actions'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    batch_id: Mapped[str] = mapped_column(Text, ForeignKey('batches.batch_id', ondelete='CASCADE'), nullable=False)
    action: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class BatchPackaging(Base):
    __tablename__ = 'batch_packaging'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    batch_id: Mapped[str] = mapped_column(Text, ForeignKey('batches.batch_id', ondelete='CASCADE'), nullable=False)
    package_type: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    volume: Mapped[Decimal] = mapped_column(Volume, nullable=False)
    location_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('locations.id'), nullable=False)
    site_id: Mapped[str] = mapped_column(Text, ForeignKey('sites.site_id'), nullable=False)
    package_date: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint('quantity >= 0', name='batch_packaging_quantity_non_negative_ck'),
    )


class PackageKegCode(Base):
    __tablename__ = 'package_keg_codes'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    packaging_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey('batch_packaging.id', ondelete='CASCADE'), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    keg_code: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        UniqueConstraint('packaging_id', 'position', name='package_keg_codes_packaging_position_uniq'),
    )


class Customer(Base):
    __tablename__ = 'customers'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str | None] = mapped_column(Text)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='1')


class Keg(Base):
    __tablename__ = 'kegs'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    code: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    status: Mapped[KegStatus] = mapped_column(SQLEnum(KegStatus, name='keg_status'), nullable=False)
    product_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('products.id'))
    location_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('locations.id'))
    customer_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('customers.id'))
    packaging_type: Mapped[str | None] = mapped_column(Text)
    last_scanned: Mapped[date | None] = mapped_column(Date)


class KegTransaction(Base):
    __tablename__ = 'keg_transactions'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    keg_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('kegs.id'), nullable=False, index=True)
    action: Mapped[str] = mapped_column(Text, nullable=False)
    product_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('products.id'))
    batch_id: Mapped[str | None] = mapped_column(Text)
    invoice_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('invoices.id'))
    customer_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('customers.id'))
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    location: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Invoice(Base):
    __tablename__ = 'invoices'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    customer_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('customers.id'), nullable=False)
    status: Mapped[InvoiceStatus] = mapped_column(
        SQLEnum(InvoiceStatus, name='invoice_status'), nullable=False, default=InvoiceStatus.DRAFT
    )
    created_date: Mapped[date] = mapped_column(Date, nullable=False)
    posted_date: Mapped[date | None] = mapped_column(Date)
    subtotal: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0.00'), server_default='0')
    keg_deposit_total: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0.00'), server_default='0')
    total: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0.00'), server_default='0')


class InvoiceItem(Base):
    __tablename__ = 'invoice_items'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    invoice_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    item_name: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit: Mapped[str] = mapped_column(Text, nullable=False)
    price: Mapped[Decimal | None] = mapped_column(Money)
    has_keg_deposit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='0')

    __table_args__ = (
        CheckConstraint('quantity >= 0', name='invoice_items_quantity_non_negative_ck'),
    )


class InvoiceItemKegCode(Base):
    __tablename__ = 'invoice_item_keg_codes'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    invoice_item_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey('invoice_items.id', ondelete='CASCADE'), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    keg_code: Mapped[str] = mapped_column(Text, nullable=False)


class SystemSetting(Base):
    __tablename__ = 'system_settings'

    key: Mapped[str] = mapped_column(Text, primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
