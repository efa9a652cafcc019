from __future__ import annotations

from collections import defaultdict
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, joinedload

from wms.models import MovementType, StockMovement


class MovementRepository:
    def __init__(self, db: Session):
        self._db = db

    def append(self, movement: StockMovement) -> StockMovement:
        self._db.add(movement)
        self._db.flush()
        self._db.refresh(movement)
        return movement

    def get(self, movement_id: int) -> Optional[StockMovement]:
        return self._db.scalar(
            select(StockMovement)
            .options(
                joinedload(StockMovement.product),
                joinedload(StockMovement.from_location),
                joinedload(StockMovement.to_location),
                joinedload(StockMovement.created_by),
            )
            .where(StockMovement.id == movement_id)
        )

    def history(
        self,
        product_id: Optional[int] = None,
        location_id: Optional[int] = None,
        movement_type: Optional[str] = None,
        reference_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[StockMovement]:
        stmt = (
            select(StockMovement)
            .options(
                joinedload(StockMovement.product),
                joinedload(StockMovement.from_location),
                joinedload(StockMovement.to_location),
                joinedload(StockMovement.created_by),
            )
            .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        )

        if product_id is not None:
            stmt = stmt.where(StockMovement.product_id == product_id)

        if location_id is not None:
            stmt = stmt.where(
                or_(
                    StockMovement.from_location_id == location_id,
                    StockMovement.to_location_id == location_id,
                )
            )

        if movement_type:
            stmt = stmt.where(StockMovement.type == movement_type)

        if reference_id:
            stmt = stmt.where(StockMovement.reference_id == reference_id)

        return list(self._db.scalars(stmt.limit(limit)))

    def replay(self, product_id: Optional[int] = None) -> dict[tuple[int, int], int]:
        """Rebuild (product, location) -> quantity from the ledger, oldest first."""
        stmt = select(
            StockMovement.type,
            StockMovement.product_id,
            StockMovement.from_location_id,
            StockMovement.to_location_id,
            StockMovement.quantity,
        ).order_by(StockMovement.created_at, StockMovement.id)
        if product_id is not None:
            stmt = stmt.where(StockMovement.product_id == product_id)

        balances: dict[tuple[int, int], int] = defaultdict(int)
        for mv_type, pid, from_id, to_id, qty in self._db.execute(stmt):
            if from_id is not None and mv_type in (MovementType.OUT.value, MovementType.TRANSFER.value):
                balances[(pid, from_id)] -= int(qty)
            if to_id is not None and mv_type in (
                MovementType.IN.value,
                MovementType.TRANSFER.value,
                MovementType.ADJUSTMENT.value,
            ):
                balances[(pid, to_id)] += int(qty)
        return {key: qty for key, qty in balances.items() if qty != 0}
