from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.orm import Session

from wms.repositories.balance_repository import BalanceRepository
from wms.repositories.catalog_repository import CatalogRepository
from wms.repositories.movement_repository import MovementRepository
from wms.repositories.order_repository import OrderRepository


class UnitOfWork:
    """Transaction boundary around one session.

    ``balances`` and ``movements`` are only handed out while a transaction is
    open, so stock can't be mutated outside one. Nested ``transaction()``
    blocks join the outermost block, which alone commits or rolls back.
    """

    def __init__(self, db: Session):
        self._db = db
        self._depth = 0
        self._balances = BalanceRepository(db)
        self._movements = MovementRepository(db)
        self.orders = OrderRepository(db)
        self.catalog = CatalogRepository(db)

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    @property
    def balances(self) -> BalanceRepository:
        self._require_transaction("balances")
        return self._balances

    @property
    def movements(self) -> MovementRepository:
        self._require_transaction("movements")
        return self._movements

    def _require_transaction(self, name: str) -> None:
        if not self._depth:
            raise RuntimeError(f"{name} can only be used inside UnitOfWork.transaction()")

    @contextmanager
    def transaction(self) -> Iterator[UnitOfWork]:
        if self._depth:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
            return

        self._depth = 1
        try:
            yield self
            self._db.commit()
        except BaseException:
            self._db.rollback()
            raise
        finally:
            self._depth = 0

