from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from wms.errors import (
    DuplicateOrderNumber,
    InsufficientStock,
    InvalidStatusTransition,
    NoLocationAvailable,
    OrderAlreadyFinal,
    OrderNotFound,
    ProductNotFound,
    WMSError,
)
from wms.models import MovementType, Order, OrderItem, OrderStatus, OrderType, StockMovement
from wms.schemas import MovementCreate, OrderCreate
from wms.services.inventory_service import InventoryService
from wms.settings import CompletionMode, load_settings
from wms.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

# CANCELLED is reachable from any non-final state, so it shares COMPLETED's rank.
_STATUS_RANK = {
    OrderStatus.DRAFT.value: 0,
    OrderStatus.PENDING.value: 1,
    OrderStatus.PROCESSING.value: 2,
    OrderStatus.COMPLETED.value: 3,
    OrderStatus.CANCELLED.value: 3,
}


def order_reference(order_id: int) -> str:
    return f"ORDER-{order_id}"


class OrderService:
    def __init__(
        self,
        db: Session,
        completion_mode: Optional[CompletionMode] = None,
        inventory: Optional[InventoryService] = None,
    ):
        self._db = db
        self._inventory = inventory or InventoryService(db)
        self._uow = self._inventory.uow
        self._orders = self._uow.orders
        self._completion_mode = completion_mode or load_settings().order_completion_mode

    @property
    def completion_mode(self) -> CompletionMode:
        return self._completion_mode

    def _generate_order_number(self, now: Optional[datetime] = None, width: int = 6) -> str:
        now_dt = now or datetime.now(timezone.utc)
        prefix = f"ORD-{now_dt:%Y%m%d}-"
        max_n = 0
        for number in self._orders.list_numbers_starting_with(prefix):
            suffix = number[len(prefix) :]
            if suffix.isdigit():
                max_n = max(max_n, int(suffix))
        return f"{prefix}{str(max_n + 1).zfill(width)}"

    def create(self, payload: OrderCreate, actor_id: int) -> Order:
        try:
            with self._uow.transaction() as uow:
                missing = uow.catalog.missing_product_ids(item.product_id for item in payload.items)
                if missing:
                    raise ProductNotFound(missing)

                order = Order(
                    order_number=self._generate_order_number(),
                    type=payload.type.value,
                    status=OrderStatus.PENDING.value,
                    partner_name=payload.partner_name.strip() if payload.partner_name else None,
                    expected_date=payload.expected_date,
                    created_by_id=actor_id,
                    items=[
                        OrderItem(product_id=item.product_id, quantity=item.quantity)
                        for item in payload.items
                    ],
                )
                self._orders.add(order)
                self._db.flush()
                order_id = order.id
                order_number = order.order_number
        except IntegrityError as e:
            if "order_number" not in str(e.orig):
                raise
            raise DuplicateOrderNumber() from e

        logger.info(
            "Order %s (#%s) created: type=%s items=%d actor=%s",
            order_number,
            order_id,
            payload.type.value,
            len(payload.items),
            actor_id,
        )
        return self.get(order_id)

    def get(self, order_id: int) -> Order:
        order = self._orders.get(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    def list(self, status: Optional[OrderStatus] = None, limit: int = 100) -> list[Order]:
        return self._orders.list(status=status.value if status else None, limit=limit)

    def _transition(self, uow: UnitOfWork, order_id: int, new_status: OrderStatus) -> Order:
        order = uow.orders.get(order_id, for_update=True)
        if order is None:
            raise OrderNotFound(order_id)
        if order.is_final:
            raise OrderAlreadyFinal(order_id, order.status)
        if _STATUS_RANK[new_status.value] < _STATUS_RANK[order.status]:
            raise InvalidStatusTransition(order_id, order.status, new_status.value)

        previous = order.status
        order.status = new_status.value
        self._db.flush()
        logger.info("Order %s: %s -> %s", order.order_number, previous, new_status.value)
        return order

    def update_status(self, order_id: int, new_status: OrderStatus, actor_id: int) -> Order:
        """Moves an order to ``new_status``; COMPLETED also generates stock movements.

        In ``atomic`` mode the status write and every completion movement share
        one transaction, so a failed completion leaves the order untouched. In
        ``two_phase`` mode the status commits first and each movement commits
        on its own, so a failure part way leaves the order COMPLETED with only
        the movements that already went through.
        """
        if self._completion_mode == "two_phase":
            with self._uow.transaction() as uow:
                self._transition(uow, order_id, new_status)
            if new_status == OrderStatus.COMPLETED:
                self._run_completion(self.get(order_id), actor_id)
            return self.get(order_id)

        with self._uow.transaction() as uow:
            order = self._transition(uow, order_id, new_status)
            if new_status == OrderStatus.COMPLETED:
                self._run_completion(order, actor_id)
        return self.get(order_id)

    def _run_completion(self, order: Order, actor_id: int) -> list[StockMovement]:
        try:
            return self.complete_order(order, actor_id)
        except WMSError as e:
            logger.warning(
                "Completion of order %s rejected (mode=%s): %s",
                order.order_number,
                self._completion_mode,
                e.message,
            )
            raise

    def complete_order(self, order: Order, actor_id: int) -> list[StockMovement]:
        """Generates the stock movements for a completed order.

        OUT orders drain balances FIFO across locations; IN orders receive every
        item into the first location. Each movement runs in its own unit of
        work unless the caller already opened one.
        """
        reference = order_reference(order.id)
        items = [(item.product_id, item.quantity) for item in order.items]
        logger.info(
            "Processing completion of order %s: type=%s items=%d",
            order.order_number,
            order.type,
            len(items),
        )

        if order.type == OrderType.OUT.value:
            created: list[StockMovement] = []
            for product_id, quantity in items:
                created.extend(self._deduct_fifo(product_id, quantity, reference, actor_id))
            return created

        if order.type == OrderType.IN.value:
            location = self._uow.catalog.first_location()
            if location is None:
                raise NoLocationAvailable()
            location_id = location.id
            created = []
            for product_id, quantity in items:
                created.append(
                    self._apply(
                        MovementCreate(
                            type=MovementType.IN,
                            product_id=product_id,
                            to_location_id=location_id,
                            quantity=quantity,
                            reference_id=reference,
                        ),
                        actor_id,
                    )
                )
            return created

        logger.warning("Order %s has unhandled type %r; no stock movements created", order.order_number, order.type)
        return []

    def _apply(self, payload: MovementCreate, actor_id: int) -> StockMovement:
        with self._uow.transaction() as uow:
            return self._inventory.apply(uow, payload, actor_id)

    def _deduct_fifo(
        self, product_id: int, quantity: int, reference: str, actor_id: int
    ) -> list[StockMovement]:
        with self._uow.transaction() as uow:
            entries = [
                (entry.location_id, int(entry.quantity))
                for entry in uow.balances.fifo_entries_for_product_id(product_id)
            ]

        created: list[StockMovement] = []
        remaining = quantity
        for location_id, available in entries:
            if remaining <= 0:
                break
            take = min(available, remaining)
            created.append(
                self._apply(
                    MovementCreate(
                        type=MovementType.OUT,
                        product_id=product_id,
                        from_location_id=location_id,
                        quantity=take,
                        reference_id=reference,
                    ),
                    actor_id,
                )
            )
            remaining -= take

        if remaining > 0:
            raise InsufficientStock(
                product_id=product_id,
                requested=quantity,
                available=quantity - remaining,
            )
        return created
