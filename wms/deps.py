from __future__ import annotations

from collections.abc import Generator

from fastapi import Depends
from sqlalchemy.orm import Session

from wms.db import get_session
from wms.services.inventory_service import InventoryService
from wms.services.order_service import OrderService


def session_dep() -> Generator[Session, None, None]:
    db = get_session()
    try:
        yield db
    finally:
        db.close()


def inventory_service_dep(db: Session = Depends(session_dep)) -> InventoryService:
    return InventoryService(db)


def order_service_dep(db: Session = Depends(session_dep)) -> OrderService:
    return OrderService(db)
