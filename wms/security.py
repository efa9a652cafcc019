from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from wms.deps import session_dep
from wms.models import User
from wms.repositories.catalog_repository import CatalogRepository


def get_actor(db: Session, user_id: Optional[int]) -> Optional[User]:
    if user_id is None:
        return None
    user = CatalogRepository(db).get_user(user_id)
    if user is None or not user.is_active:
        return None
    return user


def require_user_api(
    x_user_id: Optional[int] = Header(default=None),
    db: Session = Depends(session_dep),
) -> User:
    """Resolves the actor forwarded by the identity layer in ``X-User-Id``."""
    user = get_actor(db, x_user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user
