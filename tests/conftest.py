# tests/conftest.py
from types import SimpleNamespace

import pytest

from wms import models  # noqa: F401
from wms.db import Base, create_db_engine, create_session_factory
from wms.models import Location, MovementType, Product, User, Warehouse, Zone
from wms.schemas import MovementCreate
from wms.services.inventory_service import InventoryService
from wms.services.order_service import OrderService


@pytest.fixture
def engine(tmp_path):
    """A fresh file-backed SQLite database per test."""
    eng = create_db_engine(f"sqlite+pysqlite:///{tmp_path / 'wms-test.db'}")
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def seed(db) -> SimpleNamespace:
    """One warehouse/zone with three locations, two products and an actor.

    Only plain ids are returned so that touching them never reopens a
    transaction on ``db``.
    """
    user = User(username="operator", name="Operator")
    warehouse = Warehouse(code="WH1", name="Main warehouse")
    zone = Zone(warehouse=warehouse, name="Zone A")
    loc_a = Location(zone=zone, code="A-01")
    loc_b = Location(zone=zone, code="A-02")
    loc_c = Location(zone=zone, code="A-03")
    product_p = Product(sku="SKU-P", name="Pallet jack")
    product_q = Product(sku="SKU-Q", name="Shrink wrap")
    db.add_all([user, warehouse, zone, loc_a, loc_b, loc_c, product_p, product_q])
    db.flush()
    ids = SimpleNamespace(
        user=user.id,
        warehouse=warehouse.id,
        zone=zone.id,
        loc_a=loc_a.id,
        loc_b=loc_b.id,
        loc_c=loc_c.id,
        product_p=product_p.id,
        product_q=product_q.id,
    )
    db.commit()
    return ids


@pytest.fixture
def inventory(db) -> InventoryService:
    return InventoryService(db)


@pytest.fixture
def orders(db, inventory) -> OrderService:
    return OrderService(db, completion_mode="atomic", inventory=inventory)


@pytest.fixture
def two_phase_orders(db, inventory) -> OrderService:
    return OrderService(db, completion_mode="two_phase", inventory=inventory)


@pytest.fixture
def stock_in(inventory, seed):
    """Receives stock through the movement engine, as the operator."""

    def _stock_in(product_id: int, location_id: int, quantity: int):
        return inventory.create_movement(
            MovementCreate(
                type=MovementType.IN,
                product_id=product_id,
                to_location_id=location_id,
                quantity=quantity,
            ),
            actor_id=seed.user,
        )

    return _stock_in
