# tests/test_order_workflow.py
import logging
import re

import pytest
from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from wms.errors import (
    DuplicateOrderNumber,
    InsufficientStock,
    InvalidStatusTransition,
    NoLocationAvailable,
    OrderAlreadyFinal,
    OrderNotFound,
    ProductNotFound,
)
from wms.models import MovementType, Order, OrderStatus, OrderType, Product, StockMovement, User
from wms.repositories.balance_repository import BalanceRepository
from wms.schemas import MovementCreate, OrderCreate, OrderItemCreate
from wms.services.inventory_service import InventoryService
from wms.services.order_service import OrderService, order_reference


def _order(order_type, *items, partner="ACME"):
    return OrderCreate(
        type=order_type,
        partner_name=partner,
        items=[OrderItemCreate(product_id=pid, quantity=qty) for pid, qty in items],
    )


def _out_movements(db, order_id):
    return list(
        db.scalars(
            select(StockMovement)
            .where(StockMovement.reference_id == order_reference(order_id))
            .order_by(StockMovement.id)
        )
    )


def test_create_order_starts_pending_with_generated_number(orders, seed) -> None:
    order = orders.create(_order(OrderType.OUT, (seed.product_p, 3), (seed.product_q, 1)), actor_id=seed.user)

    assert order.status == OrderStatus.PENDING.value
    assert re.fullmatch(r"ORD-\d{8}-\d{6}", order.order_number)
    assert [(i.product_id, i.quantity) for i in order.items] == [(seed.product_p, 3), (seed.product_q, 1)]
    assert order.partner_name == "ACME"
    assert order.created_by_id == seed.user


def test_order_numbers_are_unique_and_sequential(orders, seed) -> None:
    first = orders.create(_order(OrderType.IN, (seed.product_p, 1)), actor_id=seed.user)
    second = orders.create(_order(OrderType.IN, (seed.product_p, 1)), actor_id=seed.user)

    assert first.order_number != second.order_number
    assert int(second.order_number[-6:]) == int(first.order_number[-6:]) + 1


def test_taken_order_number_is_reported_as_duplicate(orders, seed, db, monkeypatch) -> None:
    taken = orders.create(_order(OrderType.IN, (seed.product_p, 1)), actor_id=seed.user).order_number
    monkeypatch.setattr(orders, "_generate_order_number", lambda: taken)

    with pytest.raises(DuplicateOrderNumber) as exc_info:
        orders.create(_order(OrderType.IN, (seed.product_p, 1)), actor_id=seed.user)

    assert exc_info.value.status_code == 409
    assert db.scalar(select(func.count(Order.id))) == 1


def test_other_integrity_errors_are_not_masked(orders, seed, db, monkeypatch) -> None:
    def failing_flush(*args, **kwargs):
        raise IntegrityError("INSERT INTO orders", {}, Exception("FOREIGN KEY constraint failed"))

    monkeypatch.setattr(db, "flush", failing_flush)

    with pytest.raises(IntegrityError):
        orders.create(_order(OrderType.IN, (seed.product_p, 1)), actor_id=seed.user)


def test_create_order_lists_exactly_the_missing_product(orders, seed, db) -> None:
    with pytest.raises(ProductNotFound) as exc_info:
        orders.create(_order(OrderType.OUT, (seed.product_p, 1), (777, 2), (seed.product_q, 1)), actor_id=seed.user)

    assert exc_info.value.missing_ids == [777]
    assert exc_info.value.detail["missing_ids"] == [777]
    assert db.scalar(select(Order)) is None


def test_duplicate_products_in_items_are_accepted(orders, seed) -> None:
    order = orders.create(_order(OrderType.IN, (seed.product_p, 1), (seed.product_p, 2)), actor_id=seed.user)
    assert len(order.items) == 2


def test_order_requires_items() -> None:
    with pytest.raises(ValidationError):
        OrderCreate(type=OrderType.IN, items=[])


def test_update_status_of_unknown_order(orders, seed) -> None:
    with pytest.raises(OrderNotFound):
        orders.update_status(12345, OrderStatus.PROCESSING, actor_id=seed.user)


@pytest.mark.parametrize("final_status", [OrderStatus.COMPLETED, OrderStatus.CANCELLED])
@pytest.mark.parametrize("target", list(OrderStatus))
def test_final_orders_reject_every_transition(orders, seed, final_status, target) -> None:
    order = orders.create(_order(OrderType.IN, (seed.product_p, 1)), actor_id=seed.user)
    orders.update_status(order.id, final_status, actor_id=seed.user)

    with pytest.raises(OrderAlreadyFinal) as exc_info:
        orders.update_status(order.id, target, actor_id=seed.user)

    assert exc_info.value.detail["status"] == final_status.value
    assert orders.get(order.id).status == final_status.value


def test_transitions_only_move_forward(orders, seed) -> None:
    order = orders.create(_order(OrderType.IN, (seed.product_p, 1)), actor_id=seed.user)

    updated = orders.update_status(order.id, OrderStatus.PROCESSING, actor_id=seed.user)
    assert updated.status == OrderStatus.PROCESSING.value

    with pytest.raises(InvalidStatusTransition):
        orders.update_status(order.id, OrderStatus.PENDING, actor_id=seed.user)
    with pytest.raises(InvalidStatusTransition):
        orders.update_status(order.id, OrderStatus.DRAFT, actor_id=seed.user)
    assert orders.get(order.id).status == OrderStatus.PROCESSING.value


def test_cancel_has_no_inventory_effect(orders, stock_in, seed, db) -> None:
    stock_in(seed.product_p, seed.loc_a, 5)
    order = orders.create(_order(OrderType.OUT, (seed.product_p, 5)), actor_id=seed.user)

    cancelled = orders.update_status(order.id, OrderStatus.CANCELLED, actor_id=seed.user)

    assert cancelled.status == OrderStatus.CANCELLED.value
    assert _out_movements(db, order.id) == []
    assert BalanceRepository(db).quantity(seed.product_p, seed.loc_a) == 5


def test_out_completion_allocates_fifo_across_locations(orders, stock_in, seed, db) -> None:
    stock_in(seed.product_p, seed.loc_a, 5)
    stock_in(seed.product_p, seed.loc_b, 5)
    order = orders.create(_order(OrderType.OUT, (seed.product_p, 7)), actor_id=seed.user)

    completed = orders.update_status(order.id, OrderStatus.COMPLETED, actor_id=seed.user)

    assert completed.status == OrderStatus.COMPLETED.value
    movements = _out_movements(db, order.id)
    assert [(m.type, m.from_location_id, m.quantity) for m in movements] == [
        (MovementType.OUT.value, seed.loc_a, 5),
        (MovementType.OUT.value, seed.loc_b, 2),
    ]
    assert all(m.created_by_id == seed.user for m in movements)
    balances = BalanceRepository(db)
    assert balances.snapshot() == {(seed.product_p, seed.loc_b): 3}


def test_restocked_location_goes_to_back_of_fifo_queue(orders, inventory, stock_in, seed, db) -> None:
    stock_in(seed.product_p, seed.loc_a, 2)
    stock_in(seed.product_p, seed.loc_b, 2)
    inventory.create_movement(
        MovementCreate(type=MovementType.OUT, product_id=seed.product_p, from_location_id=seed.loc_a, quantity=2),
        actor_id=seed.user,
    )
    stock_in(seed.product_p, seed.loc_a, 2)

    order = orders.create(_order(OrderType.OUT, (seed.product_p, 3)), actor_id=seed.user)
    orders.update_status(order.id, OrderStatus.COMPLETED, actor_id=seed.user)

    assert [(m.from_location_id, m.quantity) for m in _out_movements(db, order.id)] == [
        (seed.loc_b, 2),
        (seed.loc_a, 1),
    ]


def test_atomic_completion_rolls_back_status_and_movements(orders, stock_in, seed, db) -> None:
    """Atomic mode: a shortfall reverts the whole completion, status included."""
    stock_in(seed.product_p, seed.loc_a, 5)
    stock_in(seed.product_p, seed.loc_b, 5)
    order = orders.create(_order(OrderType.OUT, (seed.product_p, 20)), actor_id=seed.user)

    with pytest.raises(InsufficientStock) as exc_info:
        orders.update_status(order.id, OrderStatus.COMPLETED, actor_id=seed.user)

    assert exc_info.value.shortfall == 10
    assert exc_info.value.detail["requested"] == 20
    assert orders.get(order.id).status == OrderStatus.PENDING.value
    assert _out_movements(db, order.id) == []
    assert BalanceRepository(db).snapshot() == {
        (seed.product_p, seed.loc_a): 5,
        (seed.product_p, seed.loc_b): 5,
    }


def test_rejected_completion_logs_a_warning_without_traceback(orders, stock_in, seed, caplog) -> None:
    stock_in(seed.product_p, seed.loc_a, 2)
    order = orders.create(_order(OrderType.OUT, (seed.product_p, 5)), actor_id=seed.user)

    with caplog.at_level(logging.WARNING, logger="wms.services.order_service"):
        with pytest.raises(InsufficientStock):
            orders.update_status(order.id, OrderStatus.COMPLETED, actor_id=seed.user)

    records = [r for r in caplog.records if r.name == "wms.services.order_service"]
    assert [r.levelno for r in records] == [logging.WARNING]
    assert records[0].exc_info is None
    assert "rejected" in records[0].getMessage()


def test_atomic_completion_keeps_earlier_items_untouched(orders, stock_in, seed, db) -> None:
    stock_in(seed.product_p, seed.loc_a, 4)
    stock_in(seed.product_q, seed.loc_b, 1)
    order = orders.create(_order(OrderType.OUT, (seed.product_p, 4), (seed.product_q, 3)), actor_id=seed.user)

    with pytest.raises(InsufficientStock):
        orders.update_status(order.id, OrderStatus.COMPLETED, actor_id=seed.user)

    assert orders.get(order.id).status == OrderStatus.PENDING.value
    assert BalanceRepository(db).quantity(seed.product_p, seed.loc_a) == 4


def test_two_phase_completion_keeps_status_and_committed_prefix(two_phase_orders, stock_in, seed, db) -> None:
    """Two-phase mode: status commits first; a shortfall leaves the drained prefix applied."""
    stock_in(seed.product_p, seed.loc_a, 5)
    stock_in(seed.product_p, seed.loc_b, 5)
    order = two_phase_orders.create(_order(OrderType.OUT, (seed.product_p, 20)), actor_id=seed.user)

    with pytest.raises(InsufficientStock) as exc_info:
        two_phase_orders.update_status(order.id, OrderStatus.COMPLETED, actor_id=seed.user)

    assert exc_info.value.shortfall == 10
    assert two_phase_orders.get(order.id).status == OrderStatus.COMPLETED.value
    assert [(m.from_location_id, m.quantity) for m in _out_movements(db, order.id)] == [
        (seed.loc_a, 5),
        (seed.loc_b, 5),
    ]
    assert BalanceRepository(db).snapshot() == {}


def test_two_phase_completion_applies_items_before_the_failing_one(two_phase_orders, stock_in, seed, db) -> None:
    stock_in(seed.product_p, seed.loc_a, 4)
    order = two_phase_orders.create(
        _order(OrderType.OUT, (seed.product_p, 3), (seed.product_q, 1)), actor_id=seed.user
    )

    with pytest.raises(InsufficientStock):
        two_phase_orders.update_status(order.id, OrderStatus.COMPLETED, actor_id=seed.user)

    assert two_phase_orders.get(order.id).status == OrderStatus.COMPLETED.value
    assert BalanceRepository(db).snapshot() == {(seed.product_p, seed.loc_a): 1}
    with pytest.raises(OrderAlreadyFinal):
        two_phase_orders.update_status(order.id, OrderStatus.COMPLETED, actor_id=seed.user)


def test_in_completion_receives_into_first_location(orders, seed, db) -> None:
    order = orders.create(_order(OrderType.IN, (seed.product_p, 8), (seed.product_q, 2)), actor_id=seed.user)

    orders.update_status(order.id, OrderStatus.COMPLETED, actor_id=seed.user)

    movements = _out_movements(db, order.id)
    assert [(m.type, m.to_location_id, m.product_id, m.quantity) for m in movements] == [
        (MovementType.IN.value, seed.loc_a, seed.product_p, 8),
        (MovementType.IN.value, seed.loc_a, seed.product_q, 2),
    ]
    assert BalanceRepository(db).snapshot() == {
        (seed.product_p, seed.loc_a): 8,
        (seed.product_q, seed.loc_a): 2,
    }


def test_in_completion_without_locations_fails(db) -> None:
    user = User(username="buyer")
    product = Product(sku="SKU-X", name="Pallet")
    db.add_all([user, product])
    db.flush()
    user_id, product_id = user.id, product.id
    db.commit()
    service = OrderService(db, completion_mode="atomic")
    order = service.create(_order(OrderType.IN, (product_id, 1)), actor_id=user_id)

    with pytest.raises(NoLocationAvailable):
        service.update_status(order.id, OrderStatus.COMPLETED, actor_id=user_id)

    assert service.get(order.id).status == OrderStatus.PENDING.value


def test_unhandled_order_type_completes_without_movements(orders, seed, db, caplog) -> None:
    legacy = Order(
        order_number="ORD-LEGACY-000001",
        type="TRANSFER",
        status=OrderStatus.PROCESSING.value,
        created_by_id=seed.user,
    )
    db.add(legacy)
    db.flush()
    legacy_id = legacy.id
    db.commit()

    with caplog.at_level(logging.WARNING, logger="wms.services.order_service"):
        completed = orders.update_status(legacy_id, OrderStatus.COMPLETED, actor_id=seed.user)

    assert completed.status == OrderStatus.COMPLETED.value
    assert _out_movements(db, legacy_id) == []
    assert "unhandled type" in caplog.text


def test_complete_order_returns_created_movements(orders, stock_in, seed, db) -> None:
    stock_in(seed.product_q, seed.loc_c, 6)
    order = orders.create(_order(OrderType.OUT, (seed.product_q, 4)), actor_id=seed.user)

    with orders._uow.transaction():
        created = orders.complete_order(orders.get(order.id), actor_id=seed.user)
        quantities = [m.quantity for m in created]

    assert quantities == [4]
    assert InventoryService(db).verify_balances() == []


def test_list_orders_newest_first_and_by_status(orders, seed) -> None:
    first = orders.create(_order(OrderType.IN, (seed.product_p, 1)), actor_id=seed.user)
    second = orders.create(_order(OrderType.IN, (seed.product_p, 1)), actor_id=seed.user)
    orders.update_status(first.id, OrderStatus.CANCELLED, actor_id=seed.user)

    assert [o.id for o in orders.list()] == [second.id, first.id]
    assert [o.id for o in orders.list(status=OrderStatus.CANCELLED)] == [first.id]
