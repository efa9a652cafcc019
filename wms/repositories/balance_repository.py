from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session, joinedload

from wms.errors import BalanceNotFound, InsufficientStock
from wms.models import BalanceEntry, Location, Zone

logger = logging.getLogger(__name__)


class BalanceRepository:
    """Per (product, location) on-hand quantities.

    Entries are kept sparse: ``decrease`` deletes an entry that reaches zero,
    so absence means zero everywhere else in the code. Reads that precede a
    write lock the row (``FOR UPDATE`` on PostgreSQL; SQLite already holds
    the database write lock for the whole transaction).
    """

    def __init__(self, db: Session):
        self._db = db

    def _upsert_statement(self):
        if self._db.get_bind().dialect.name == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        else:
            from sqlalchemy.dialects.sqlite import insert
        return insert(BalanceEntry)

    def get_for_update(self, product_id: int, location_id: int) -> Optional[BalanceEntry]:
        return self._db.scalar(
            select(BalanceEntry)
            .where(
                BalanceEntry.product_id == product_id,
                BalanceEntry.location_id == location_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )

    def quantity(self, product_id: int, location_id: int) -> int:
        qty = self._db.scalar(
            select(BalanceEntry.quantity).where(
                BalanceEntry.product_id == product_id,
                BalanceEntry.location_id == location_id,
            )
        )
        return int(qty or 0)

    def increase(self, product_id: int, location_id: int, quantity: int) -> None:
        stmt = self._upsert_statement().values(
            product_id=product_id,
            location_id=location_id,
            quantity=quantity,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[BalanceEntry.product_id, BalanceEntry.location_id],
            set_={
                "quantity": BalanceEntry.quantity + stmt.excluded.quantity,
                "updated_at": func.now(),
            },
        )
        self._db.execute(stmt)
        logger.debug("balance +%s product=%s location=%s", quantity, product_id, location_id)

    def decrease(self, product_id: int, location_id: int, quantity: int) -> int:
        entry = self.get_for_update(product_id, location_id)
        if entry is None:
            raise BalanceNotFound(product_id=product_id, location_id=location_id)

        available = int(entry.quantity)
        if available < quantity:
            raise InsufficientStock(
                product_id=product_id,
                location_id=location_id,
                available=available,
                requested=quantity,
            )

        remaining = available - quantity
        if remaining == 0:
            self._db.delete(entry)
        else:
            entry.quantity = remaining
        self._db.flush()
        logger.debug("balance -%s product=%s location=%s left=%s", quantity, product_id, location_id, remaining)
        return remaining

    def fifo_entries_for_product_id(self, product_id: int) -> list[BalanceEntry]:
        return list(
            self._db.scalars(
                select(BalanceEntry)
                .where(BalanceEntry.product_id == product_id)
                .order_by(BalanceEntry.created_at, BalanceEntry.id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        )

    def list(
        self,
        product_id: Optional[int] = None,
        location_id: Optional[int] = None,
    ) -> list[BalanceEntry]:
        stmt = (
            select(BalanceEntry)
            .options(
                joinedload(BalanceEntry.product),
                joinedload(BalanceEntry.location)
                .joinedload(Location.zone)
                .joinedload(Zone.warehouse),
            )
            .order_by(BalanceEntry.product_id, BalanceEntry.created_at, BalanceEntry.id)
            .execution_options(populate_existing=True)
        )
        if product_id is not None:
            stmt = stmt.where(BalanceEntry.product_id == product_id)
        if location_id is not None:
            stmt = stmt.where(BalanceEntry.location_id == location_id)
        return list(self._db.scalars(stmt))

    def snapshot(self) -> dict[tuple[int, int], int]:
        rows = self._db.execute(
            select(BalanceEntry.product_id, BalanceEntry.location_id, BalanceEntry.quantity)
        ).all()
        return {(p, l): int(q) for p, l, q in rows}
