"""Domain errors raised by the inventory ledger and order workflow.

Every error is an HTTPException so services can raise it directly and FastAPI
renders it without extra handlers. ``detail`` is a dict carrying an ``error``
code, a human readable ``message`` and the facts an operator needs to fix the
input (missing field, shortfall, unknown ids).
"""

from __future__ import annotations

from typing import Any, Iterable, Optional

from fastapi import HTTPException


class WMSError(HTTPException):
    status_code_default = 400
    code = "wms_error"

    def __init__(self, message: str, **facts: Any) -> None:
        self.message = message
        self.facts = facts
        detail = {"error": self.code, "message": message, **facts}
        super().__init__(status_code=self.status_code_default, detail=detail)

    def __str__(self) -> str:
        return self.message


class InvalidMovementShape(WMSError):
    status_code_default = 400
    code = "invalid_movement_shape"

    def __init__(self, movement_type: str, missing_field: str) -> None:
        super().__init__(
            f"{movement_type} movement requires {missing_field}",
            movement_type=movement_type,
            missing_field=missing_field,
        )


class BalanceNotFound(WMSError):
    status_code_default = 404
    code = "balance_not_found"

    def __init__(self, product_id: int, location_id: int) -> None:
        super().__init__(
            f"No stock of product {product_id} at location {location_id}",
            product_id=product_id,
            location_id=location_id,
        )


class InsufficientStock(WMSError):
    status_code_default = 409
    code = "insufficient_stock"

    def __init__(
        self,
        product_id: int,
        requested: int,
        available: int,
        location_id: Optional[int] = None,
    ) -> None:
        self.requested = requested
        self.available = available
        self.shortfall = requested - available
        where = f" at location {location_id}" if location_id is not None else ""
        super().__init__(
            f"Insufficient stock for product {product_id}{where}. "
            f"Available: {available}, requested: {requested}, short: {self.shortfall}",
            product_id=product_id,
            location_id=location_id,
            available=available,
            requested=requested,
            shortfall=self.shortfall,
        )


class ProductNotFound(WMSError):
    status_code_default = 404
    code = "product_not_found"

    def __init__(self, missing_ids: Iterable[int]) -> None:
        self.missing_ids = sorted(set(missing_ids))
        super().__init__(
            "Products not found: " + ", ".join(str(i) for i in self.missing_ids),
            missing_ids=self.missing_ids,
        )


class LocationNotFound(WMSError):
    status_code_default = 404
    code = "location_not_found"

    def __init__(self, location_id: int, field: str) -> None:
        super().__init__(
            f"Location {location_id} ({field}) not found",
            location_id=location_id,
            field=field,
        )


class NoLocationAvailable(WMSError):
    status_code_default = 409
    code = "no_location_available"

    def __init__(self) -> None:
        super().__init__("No location available to receive stock")


class OrderNotFound(WMSError):
    status_code_default = 404
    code = "order_not_found"

    def __init__(self, order_id: int) -> None:
        super().__init__(f"Order {order_id} not found", order_id=order_id)


class OrderAlreadyFinal(WMSError):
    status_code_default = 409
    code = "order_already_final"

    def __init__(self, order_id: int, status: str) -> None:
        super().__init__(
            f"Order {order_id} is already {status} and cannot change status",
            order_id=order_id,
            status=status,
        )


class InvalidStatusTransition(WMSError):
    status_code_default = 409
    code = "invalid_status_transition"

    def __init__(self, order_id: int, current: str, requested: str) -> None:
        super().__init__(
            f"Order {order_id} cannot move from {current} back to {requested}",
            order_id=order_id,
            current=current,
            requested=requested,
        )


class DuplicateOrderNumber(WMSError):
    status_code_default = 409
    code = "duplicate_order_number"

    def __init__(self) -> None:
        super().__init__("Order number already taken by a concurrent request, retry")
