from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from brewops.db import SessionLocal
from brewops.models import (
    CatalogItem,
    Customer,
    Equipment,
    Keg,
    KegStatus,
    Location,
    Product,
    ProductPackageType,
    Recipe,
    RecipeIngredient,
    Site,
    SystemSetting,
)

BREWERY_SITE = 'BR-AL-20019'
DISTILLERY_SITE = 'DSP-AL-20010'
DEMO_PRODUCT = 'Hazy Jack'
DEMO_RECIPE = 'Hazy Jack Standard'

LOCATIONS = [
    (BREWERY_SITE, 'Brewhouse Storage', 'BHS'),
    (BREWERY_SITE, 'Cold Room', 'CR'),
    (DISTILLERY_SITE, 'Rickhouse', 'RH'),
]
EQUIPMENT = [
    (BREWERY_SITE, 'Mash Tun', 'MT', 'Mash Tun'),
    (BREWERY_SITE, 'Fermenter 1', 'FV1', 'Fermenter'),
    (BREWERY_SITE, 'Brite Tank 1', 'BT1', 'Brite Tank'),
    (DISTILLERY_SITE, 'Pot Still', 'PS', 'Still'),
]
PACKAGE_PRICES = [
    ('12oz Can', Decimal('2.50'), False),
    ('1/2 BBL Keg', Decimal('150.00'), True),
    ('1/6 BBL Keg', Decimal('65.00'), True),
]
CATALOG = [
    ('2-Row Barley', 'Raw Material'),
    ('Cascade Hops', 'Raw Material'),
    ('Corn', 'Raw Material'),
    ('Brewery Sticker', 'Marketing'),
] + [(f'{DEMO_PRODUCT} {package_type}', 'Finished Goods') for package_type, _, _ in PACKAGE_PRICES]
RECIPE_INGREDIENTS = [
    ('2-Row Barley', Decimal('50'), 'lbs'),
    ('Cascade Hops', Decimal('5'), 'lbs'),
]
KEG_CODES = ['KEG-001', 'KEG-002', 'KEG-003', 'KEG-004']
KEG_DEPOSIT_PRICE = '30.00'


def seed_reference_data(db: Session) -> None:
    """Insert the demo sites, catalog and kegs unless they already exist."""
    for site_id, name, site_type in [
        (BREWERY_SITE, 'Madison Brewery', 'Brewery'),
        (DISTILLERY_SITE, 'Madison Distillery', 'DSP'),
    ]:
        if not db.get(Site, site_id):
            db.add(Site(site_id=site_id, name=name, type=site_type, enabled=True))
    db.flush()

    for site_id, name, abbreviation in LOCATIONS:
        exists = db.execute(
            select(Location.id).where(Location.site_id == site_id, Location.name == name)
        ).scalar_one_or_none()
        if not exists:
            db.add(Location(site_id=site_id, name=name, abbreviation=abbreviation, enabled=True))

    for site_id, name, abbreviation, equipment_type in EQUIPMENT:
        exists = db.execute(
            select(Equipment.id).where(Equipment.site_id == site_id, Equipment.name == name)
        ).scalar_one_or_none()
        if not exists:
            db.add(Equipment(site_id=site_id, name=name, abbreviation=abbreviation, type=equipment_type, enabled=True))

    product = db.execute(select(Product).where(Product.name == DEMO_PRODUCT)).scalar_one_or_none()
    if not product:
        product = Product(name=DEMO_PRODUCT, abbreviation='HJ', product_class='Beer', enabled=True)
        db.add(product)
        db.flush()

    for package_type, price, is_deposit in PACKAGE_PRICES:
        exists = db.execute(
            select(ProductPackageType.id).where(
                ProductPackageType.product_id == product.id, ProductPackageType.package_type == package_type
            )
        ).scalar_one_or_none()
        if not exists:
            db.add(
                ProductPackageType(
                    product_id=product.id, package_type=package_type, price=price, is_keg_deposit_item=is_deposit
                )
            )

    for name, item_type in CATALOG:
        if not db.get(CatalogItem, name):
            db.add(CatalogItem(name=name, type=item_type, enabled=True))

    recipe = db.execute(select(Recipe).where(Recipe.name == DEMO_RECIPE)).scalar_one_or_none()
    if not recipe:
        recipe = Recipe(name=DEMO_RECIPE, product_id=product.id, quantity=Decimal('10'), unit='barrels')
        db.add(recipe)
        db.flush()
        for position, (item_name, quantity, unit) in enumerate(RECIPE_INGREDIENTS):
            db.add(RecipeIngredient(recipe_id=recipe.id, position=position, item_name=item_name, quantity=quantity, unit=unit))

    if not db.execute(select(Customer.id).where(Customer.name == 'Corner Tap')).scalar_one_or_none():
        db.add(Customer(name='Corner Tap', email='orders@cornertap.example', enabled=True))

    for code in KEG_CODES:
        if not db.execute(select(Keg.id).where(Keg.code == code)).scalar_one_or_none():
            db.add(Keg(code=code, status=KegStatus.EMPTY, packaging_type='1/2 BBL Keg'))

    if not db.get(SystemSetting, 'keg_deposit_price'):
        db.add(SystemSetting(key='keg_deposit_price', value=KEG_DEPOSIT_PRICE))
    db.flush()


def seed() -> None:
    with SessionLocal() as db:
        seed_reference_data(db)
        db.commit()


if __name__ == '__main__':
    seed()
    print('Seed data inserted/verified.')
