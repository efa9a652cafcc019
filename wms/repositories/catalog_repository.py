from __future__ import annotations

from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from wms.models import Location, Product, User


class CatalogRepository:
    """Read-only existence facts owned by the catalog and location registry."""

    def __init__(self, db: Session):
        self._db = db

    def product_exists(self, product_id: int) -> bool:
        return self._db.scalar(select(Product.id).where(Product.id == product_id)) is not None

    def missing_product_ids(self, product_ids: Iterable[int]) -> list[int]:
        wanted = set(product_ids)
        if not wanted:
            return []
        found = set(self._db.scalars(select(Product.id).where(Product.id.in_(wanted))))
        return sorted(wanted - found)

    def location_exists(self, location_id: int) -> bool:
        return self._db.scalar(select(Location.id).where(Location.id == location_id)) is not None

    def first_location(self) -> Optional[Location]:
        return self._db.scalar(select(Location).order_by(Location.id).limit(1))

    def get_user(self, user_id: int) -> Optional[User]:
        return self._db.get(User, user_id)

    def get_user_by_username(self, username: str) -> Optional[User]:
        u = (username or "").strip()
        if not u:
            return None
        return self._db.scalar(select(User).where(User.username == u))
