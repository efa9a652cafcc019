from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from wms.deps import inventory_service_dep
from wms.models import MovementType, User
from wms.schemas import BalanceRead, MovementCreate, MovementRead
from wms.security import require_user_api
from wms.services.inventory_service import InventoryService

router = APIRouter(prefix="/inventory", tags=["inventory"])


@router.post("/movements", response_model=MovementRead, status_code=201)
def create_movement(
    payload: MovementCreate,
    user: User = Depends(require_user_api),
    service: InventoryService = Depends(inventory_service_dep),
) -> MovementRead:
    return service.create_movement(payload, actor_id=user.id)


@router.get("/movements", response_model=list[MovementRead])
def list_movements(
    product_id: Optional[int] = None,
    location_id: Optional[int] = None,
    movement_type: Optional[MovementType] = Query(default=None, alias="type"),
    reference_id: Optional[str] = None,
    limit: int = Query(default=100, ge=1, le=1000),
    user: User = Depends(require_user_api),
    service: InventoryService = Depends(inventory_service_dep),
) -> list[MovementRead]:
    return service.movements(
        product_id=product_id,
        location_id=location_id,
        movement_type=movement_type.value if movement_type else None,
        reference_id=reference_id,
        limit=limit,
    )


@router.get("/balance", response_model=list[BalanceRead])
def get_balance(
    product_id: Optional[int] = None,
    location_id: Optional[int] = None,
    user: User = Depends(require_user_api),
    service: InventoryService = Depends(inventory_service_dep),
) -> list[BalanceRead]:
    return service.balances(product_id=product_id, location_id=location_id)
