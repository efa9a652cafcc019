from __future__ import annotations

import logging
import os
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

if __name__ == "__main__" and __package__ is None:
    sys.path.append(str(Path(__file__).resolve().parents[1]))

from wms import models  # noqa: F401  registers the tables on Base.metadata
from wms.db import Base, SessionLocal, engine
from wms.logging_config import setup_logging
from wms.models import User
from wms.repositories.catalog_repository import CatalogRepository
from wms.routers.health import router as health_router
from wms.routers.inventory import router as inventory_router
from wms.routers.orders import router as orders_router
from wms.settings import load_settings

logger = logging.getLogger(__name__)


def run_startup_tasks(
    bind: Optional[Engine] = None,
    session_factory: Optional[sessionmaker[Session]] = None,
) -> None:
    """Creates the tables and makes sure the default actor exists."""
    bind = bind or engine
    session_factory = session_factory or SessionLocal
    Base.metadata.create_all(bind=bind)

    username = load_settings().default_actor_username
    db = session_factory()
    try:
        existing = CatalogRepository(db).get_user_by_username(username)
        if existing is None:
            db.add(User(username=username, name="System", role="admin", is_active=True))
            logger.info("Created default actor %r", username)
        else:
            existing.is_active = True
        db.commit()
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Runs the startup tasks before the app serves requests."""
    setup_logging()
    run_startup_tasks()
    yield


app = FastAPI(title="Warehouse inventory ledger", lifespan=lifespan)

app.include_router(health_router)
app.include_router(inventory_router)
app.include_router(orders_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "wms.main:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("RELOAD", "1") == "1",
    )
