from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.orm import Session

from wms.errors import InvalidMovementShape, LocationNotFound, ProductNotFound, WMSError
from wms.models import MovementType, StockMovement
from wms.repositories.balance_repository import BalanceRepository
from wms.repositories.movement_repository import MovementRepository
from wms.schemas import BalanceMismatch, BalanceRead, MovementCreate, MovementRead
from wms.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

_DECREASES_SOURCE = (MovementType.OUT, MovementType.TRANSFER)
_INCREASES_TARGET = (MovementType.IN, MovementType.TRANSFER, MovementType.ADJUSTMENT)


def validate_movement_shape(payload: MovementCreate) -> None:
    """Rejects a movement whose locations don't match its type.

    IN and ADJUSTMENT need a destination, OUT needs a source, TRANSFER needs
    both. Runs before any storage access.
    """
    mv_type = payload.type
    if mv_type in (MovementType.OUT, MovementType.TRANSFER) and payload.from_location_id is None:
        raise InvalidMovementShape(mv_type.value, "from_location_id")
    if mv_type in (MovementType.IN, MovementType.TRANSFER, MovementType.ADJUSTMENT) and payload.to_location_id is None:
        raise InvalidMovementShape(mv_type.value, "to_location_id")


class InventoryService:
    def __init__(self, db: Session, uow: Optional[UnitOfWork] = None):
        self._db = db
        self._uow = uow or UnitOfWork(db)
        self._balances = BalanceRepository(db)
        self._movements = MovementRepository(db)

    @property
    def uow(self) -> UnitOfWork:
        return self._uow

    def _check_references(self, uow: UnitOfWork, payload: MovementCreate) -> None:
        if not uow.catalog.product_exists(payload.product_id):
            raise ProductNotFound([payload.product_id])
        for field, location_id in (
            ("from_location_id", payload.from_location_id),
            ("to_location_id", payload.to_location_id),
        ):
            if location_id is not None and not uow.catalog.location_exists(location_id):
                raise LocationNotFound(location_id=location_id, field=field)

    def apply(self, uow: UnitOfWork, payload: MovementCreate, actor_id: int) -> StockMovement:
        """Applies one movement inside an open transaction.

        The source is decreased first so a shortage aborts before anything is
        written; the ledger row is only appended once both balance updates
        succeeded. The caller's transaction makes the three writes atomic.
        """
        validate_movement_shape(payload)
        self._check_references(uow, payload)

        if payload.from_location_id is not None and payload.type in _DECREASES_SOURCE:
            uow.balances.decrease(payload.product_id, payload.from_location_id, payload.quantity)

        if payload.to_location_id is not None and payload.type in _INCREASES_TARGET:
            uow.balances.increase(payload.product_id, payload.to_location_id, payload.quantity)

        movement = StockMovement(
            type=payload.type.value,
            product_id=payload.product_id,
            from_location_id=payload.from_location_id,
            to_location_id=payload.to_location_id,
            quantity=payload.quantity,
            reference_id=payload.reference_id,
            created_by_id=actor_id,
        )
        return uow.movements.append(movement)

    def create_movement(self, payload: MovementCreate, actor_id: int) -> MovementRead:
        try:
            with self._uow.transaction() as uow:
                movement = self.apply(uow, payload, actor_id)
                movement_id = movement.id
        except WMSError as e:
            logger.warning(
                "Movement %s rejected for product %s: %s",
                payload.type.value,
                payload.product_id,
                e.message,
            )
            raise

        logger.info(
            "Movement %s #%s product=%s qty=%s from=%s to=%s ref=%s actor=%s",
            payload.type.value,
            movement_id,
            payload.product_id,
            payload.quantity,
            payload.from_location_id,
            payload.to_location_id,
            payload.reference_id,
            actor_id,
        )
        return self.get_movement(movement_id)

    def get_movement(self, movement_id: int) -> MovementRead:
        movement = self._movements.get(movement_id)
        if movement is None:
            raise LookupError(f"movement {movement_id} not found")
        return MovementRead.model_validate(movement)

    def movements(
        self,
        product_id: Optional[int] = None,
        location_id: Optional[int] = None,
        movement_type: Optional[str] = None,
        reference_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[MovementRead]:
        return [
            MovementRead.model_validate(mv)
            for mv in self._movements.history(
                product_id=product_id,
                location_id=location_id,
                movement_type=movement_type,
                reference_id=reference_id,
                limit=limit,
            )
        ]

    def balances(
        self,
        product_id: Optional[int] = None,
        location_id: Optional[int] = None,
    ) -> list[BalanceRead]:
        return [
            BalanceRead.model_validate(entry)
            for entry in self._balances.list(product_id=product_id, location_id=location_id)
        ]

    def replay_balances(self, product_id: Optional[int] = None) -> dict[tuple[int, int], int]:
        return self._movements.replay(product_id=product_id)

    def verify_balances(self) -> list[BalanceMismatch]:
        replayed = self._movements.replay()
        stored = self._balances.snapshot()
        mismatches = []
        for key in sorted(set(replayed) | set(stored)):
            if replayed.get(key, 0) != stored.get(key, 0):
                product_id, location_id = key
                mismatches.append(
                    BalanceMismatch(
                        product_id=product_id,
                        location_id=location_id,
                        stored=stored.get(key, 0),
                        replayed=replayed.get(key, 0),
                    )
                )
        if mismatches:
            logger.error("Balance store diverges from ledger on %d pairs", len(mismatches))
        return mismatches
