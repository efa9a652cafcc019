from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from wms.models import Order, OrderItem


class OrderRepository:
    def __init__(self, db: Session):
        self._db = db

    def add(self, order: Order) -> None:
        self._db.add(order)

    def get(self, order_id: int, for_update: bool = False) -> Optional[Order]:
        stmt = (
            select(Order)
            .options(selectinload(Order.items).selectinload(OrderItem.product))
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update(of=Order)
        return self._db.scalar(stmt)

    def list(self, status: Optional[str] = None, limit: int = 100) -> list[Order]:
        stmt = (
            select(Order)
            .options(selectinload(Order.items).selectinload(OrderItem.product))
            .order_by(Order.created_at.desc(), Order.id.desc())
        )
        if status:
            stmt = stmt.where(Order.status == status)
        return list(self._db.scalars(stmt.limit(limit)))

    def list_numbers_starting_with(self, prefix: str) -> list[str]:
        rows = self._db.execute(
            select(Order.order_number).where(Order.order_number.like(f"{prefix}%"))
        ).all()
        return [number for (number,) in rows]
