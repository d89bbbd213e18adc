from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

from marketplace.core.database import Base, init_db, make_engine
from marketplace.models.database import (
    Address, Brand, InventoryRecord, Product, ProductImage,
)
from marketplace.services.cart_service import CartService
from marketplace.services.inventory_service import InventoryLedger

BUYER_ID = 1
OTHER_BUYER_ID = 2


@pytest.fixture
def test_engine(tmp_path):
    # A file database so that several sessions and threads share the same data
    engine = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    init_db(engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture
def test_db(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


def create_product(db, name, price, stock, sale_price=None, is_active=True, brand=None, sku=None):
    product = Product(
        name=name,
        sku=sku,
        price=Decimal(price),
        sale_price=Decimal(sale_price) if sale_price is not None else None,
        is_active=is_active,
        brand=brand,
    )
    db.add(product)
    db.flush()
    if stock is not None:
        db.add(InventoryRecord(product_id=product.id, quantity=stock, location="Warehouse A"))
    db.commit()
    db.refresh(product)
    return product


@pytest.fixture
def sample_catalog(test_db):
    """
    drill:   100000, no sale, 10 in stock
    grinder: 250000, 1 in stock
    wrench:  50000 on sale for 45000, 4 in stock
    vise:    inactive, 5 in stock
    """
    brand = Brand(name="Makita")
    test_db.add(brand)
    test_db.commit()

    drill = create_product(test_db, "Cordless Drill 18V", "100000", 10, brand=brand, sku="DRL-18V")
    grinder = create_product(test_db, "Angle Grinder 125mm", "250000", 1, brand=brand, sku="GRD-125")
    wrench = create_product(test_db, "Torque Wrench 1/2in", "50000", 4, sale_price="45000", sku="TWR-12")
    vise = create_product(test_db, "Bench Vise 6in", "80000", 5, is_active=False, sku="VSE-6")

    test_db.add(ProductImage(product_id=drill.id, url="https://cdn.example.com/drill.jpg", is_primary=True))
    test_db.add(ProductImage(product_id=drill.id, url="https://cdn.example.com/drill-side.jpg", is_primary=False))
    test_db.commit()

    return {"drill": drill, "grinder": grinder, "wrench": wrench, "vise": vise}


def create_address(db, user_id, city="Ho Chi Minh City"):
    address = Address(
        user_id=user_id,
        label="Workshop",
        address_line="12 Nguyen Trai",
        city=city,
        district="District 1",
        postal_code="700000",
        phone="0901234567",
    )
    db.add(address)
    db.commit()
    db.refresh(address)
    return address


@pytest.fixture
def buyer_address(test_db):
    return create_address(test_db, BUYER_ID)


@pytest.fixture
def other_address(test_db):
    return create_address(test_db, OTHER_BUYER_ID, city="Hanoi")


def stock_of(db, product) -> int:
    return InventoryLedger(db).available(product.id)


def fill_cart(db, user_id, *lines):
    """lines are (product, quantity) pairs"""
    service = CartService(db)
    for product, quantity in lines:
        service.add_item(user_id, product.id, quantity)
    return service.get_or_create_cart(user_id)
