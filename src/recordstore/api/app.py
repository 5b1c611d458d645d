from __future__ import annotations

from typing import Optional

from fastapi import FastAPI

from recordstore.api.errors import install_error_handlers
from recordstore.api.routes import router
from recordstore.api.structured_logging import RequestLogMiddleware
from recordstore.runtime.record_store import RecordStore
from recordstore.runtime.store_boot import build_store as _build_store
from recordstore.runtime.store_config import StoreConfig, load_store_config


def build_store(cfg: StoreConfig) -> RecordStore:
    """Build the RecordStore for API runtime.

    This wrapper exists so tests can monkeypatch `recordstore.api.app.build_store`
    without reaching into runtime modules.
    """
    return _build_store(cfg)


def create_app(*, boot_runtime: bool = True, cfg: Optional[StoreConfig] = None) -> FastAPI:
    """Create the FastAPI application.

    cfg: store config; loaded from RECORDSTORE_CONFIG_PATH (or defaults) when None.
         Its mode decides whether the interactive docs are served.

    boot_runtime:
      - True (default): attach app.state.store built from cfg
      - False: keep lightweight; callers attach app.state.store themselves
    """
    cfg = cfg or load_store_config()

    if cfg.mode == "prod":
        app = FastAPI(title="Record Store API", docs_url=None, redoc_url=None, openapi_url=None)
    else:
        app = FastAPI(title="Record Store API")

    app.state.config = cfg
    app.state.store = build_store(cfg) if boot_runtime else None

    app.add_middleware(RequestLogMiddleware)
    install_error_handlers(app)
    app.include_router(router, prefix="/v1")

    return app
