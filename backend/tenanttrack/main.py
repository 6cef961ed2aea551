# backend/tenanttrack/main.py
from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .errors import install_error_handlers
from .logging_config import configure_logging

from .middleware.request_id import RequestIDMiddleware
from .middleware.structured_logging import StructuredLoggingMiddleware

from .routers.health import router as health_router
from .routers.metrics import router as metrics_router

from .routers.properties import router as properties_router
from .routers.tenants import router as tenants_router
from .routers.leases import router as leases_router
from .routers.payments import router as payments_router
from .routers.maintenance_requests import router as maintenance_router

API_PREFIX = "/api"


def _cors_origins() -> list[str]:
    val = getattr(settings, "cors_allow_origins", ["*"])
    if isinstance(val, str):
        v = val.strip()
        return ["*"] if v == "*" else [x.strip() for x in v.split(",") if x.strip()]
    if isinstance(val, list) and val:
        return val
    return ["*"]


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(title=settings.app_name, version="0.1.0")

    # Request-ID first so every log line below can carry it
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(StructuredLoggingMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    install_error_handlers(app)

    # Ops
    app.include_router(health_router, prefix=API_PREFIX)
    app.include_router(metrics_router, prefix=API_PREFIX)

    # Portfolio
    app.include_router(properties_router, prefix=API_PREFIX)
    app.include_router(tenants_router, prefix=API_PREFIX)

    # Lease lifecycle + payments
    app.include_router(leases_router, prefix=API_PREFIX)
    app.include_router(payments_router, prefix=API_PREFIX)

    app.include_router(maintenance_router, prefix=API_PREFIX)
    return app


app = create_app()
