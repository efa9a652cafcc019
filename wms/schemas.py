from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from wms.models import MovementType, OrderStatus, OrderType


class MovementCreate(BaseModel):
    type: MovementType
    product_id: int
    from_location_id: Optional[int] = None
    to_location_id: Optional[int] = None
    quantity: int
    reference_id: Optional[str] = None

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("quantity must be greater than 0")
        return v


class ProductRef(BaseModel):
    id: int
    sku: str
    name: str

    model_config = {"from_attributes": True}


class WarehouseRef(BaseModel):
    id: int
    code: str
    name: str

    model_config = {"from_attributes": True}


class ZoneRef(BaseModel):
    id: int
    name: str
    warehouse: WarehouseRef

    model_config = {"from_attributes": True}


class LocationRef(BaseModel):
    id: int
    code: str

    model_config = {"from_attributes": True}


class LocationDetail(LocationRef):
    zone: ZoneRef


class UserRef(BaseModel):
    id: int
    username: str
    name: Optional[str]

    model_config = {"from_attributes": True}


class MovementRead(BaseModel):
    id: int
    type: MovementType
    product_id: int
    from_location_id: Optional[int]
    to_location_id: Optional[int]
    quantity: int
    reference_id: Optional[str]
    created_by_id: int
    created_at: datetime
    product: ProductRef
    from_location: Optional[LocationRef]
    to_location: Optional[LocationRef]
    created_by: UserRef

    model_config = {"from_attributes": True}


class BalanceRead(BaseModel):
    id: int
    product_id: int
    location_id: int
    quantity: int
    created_at: datetime
    updated_at: datetime
    product: ProductRef
    location: LocationDetail

    model_config = {"from_attributes": True}


class BalanceMismatch(BaseModel):
    product_id: int
    location_id: int
    stored: int
    replayed: int


class OrderItemCreate(BaseModel):
    product_id: int
    quantity: int

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("quantity must be greater than 0")
        return v


class OrderCreate(BaseModel):
    type: OrderType
    partner_name: Optional[str] = None
    expected_date: Optional[datetime] = None
    items: list[OrderItemCreate] = Field(min_length=1)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class OrderItemRead(BaseModel):
    id: int
    product_id: int
    quantity: int
    product: ProductRef

    model_config = {"from_attributes": True}


class OrderRead(BaseModel):
    id: int
    order_number: str
    type: str
    status: OrderStatus
    partner_name: Optional[str]
    expected_date: Optional[datetime]
    created_by_id: int
    created_at: datetime
    updated_at: datetime
    items: list[OrderItemRead]

    model_config = {"from_attributes": True}
