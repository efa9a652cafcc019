from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from wms.deps import order_service_dep
from wms.models import OrderStatus, User
from wms.schemas import OrderCreate, OrderRead, OrderStatusUpdate
from wms.security import require_user_api
from wms.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", response_model=OrderRead, status_code=201)
def create_order(
    payload: OrderCreate,
    user: User = Depends(require_user_api),
    service: OrderService = Depends(order_service_dep),
) -> OrderRead:
    return OrderRead.model_validate(service.create(payload, actor_id=user.id))


@router.get("", response_model=list[OrderRead])
def list_orders(
    status: Optional[OrderStatus] = None,
    limit: int = Query(default=100, ge=1, le=1000),
    user: User = Depends(require_user_api),
    service: OrderService = Depends(order_service_dep),
) -> list[OrderRead]:
    return [OrderRead.model_validate(o) for o in service.list(status=status, limit=limit)]


@router.get("/{order_id}", response_model=OrderRead)
def get_order(
    order_id: int,
    user: User = Depends(require_user_api),
    service: OrderService = Depends(order_service_dep),
) -> OrderRead:
    return OrderRead.model_validate(service.get(order_id))


@router.patch("/{order_id}/status", response_model=OrderRead)
def update_order_status(
    order_id: int,
    payload: OrderStatusUpdate,
    user: User = Depends(require_user_api),
    service: OrderService = Depends(order_service_dep),
) -> OrderRead:
    return OrderRead.model_validate(service.update_status(order_id, payload.status, actor_id=user.id))
