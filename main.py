from __future__ import annotations

import os

import uvicorn

from wms.logging_config import setup_logging
from wms.settings import load_settings


def main() -> None:
    app_port = int(os.getenv("APP_PORT", "10000"))
    reload = os.getenv("RELOAD", "0") == "1"
    setup_logging()

    uvicorn.run(
        "wms.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=app_port,
        reload=reload,
        log_config=None,
        log_level=load_settings().log_level.lower(),
    )


if __name__ == "__main__":
    main()
