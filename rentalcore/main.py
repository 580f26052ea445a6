# Application entrypoint: configures middleware, error handlers, startup routines, and API routers.
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
import os
import threading
import time

from .db import init_db
from .errors import register_error_handlers
from .routes.audit_logs import router as audit_logs_router
from .routes.auth import router as auth_router
from .routes.contracts import router as contracts_router
from .routes.estates import router as estates_router
from .routes.maintenance import router as maintenance_router
from .routes.properties import router as properties_router
from .routes.tenant_portal import router as tenant_portal_router
from .routes.tenants import router as tenants_router
from .sweepers import sweep_property_statuses

logger = logging.getLogger("rentalcore.main")

STATUS_SWEEP_SECONDS = int(os.getenv("STATUS_SWEEP_SECONDS", "60"))


def _start_status_sweeper(interval_seconds: int) -> None:
    """
    Launch a daemon thread that periodically reconciles property statuses with lease end dates.

    Behavior:
    - Call sweep_property_statuses()
    - Sleep for `interval_seconds`
    Errors are logged and the worker tries again on the next interval.
    """
    def _loop() -> None:
        while True:
            try:
                sweep_property_statuses()
            except Exception:
                logger.exception("property status sweep failed")
            time.sleep(interval_seconds)

    t = threading.Thread(target=_loop, name="property-status-sweeper", daemon=True)
    t.start()


# Parse CORS origins from a comma-separated env var.
# Note: '*' cannot be used with allow_credentials=True; we fall back to explicit localhost origins for dev.
def _parse_cors_origins(env_value: str | None) -> list[str]:
    default_dev_origins = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    if not env_value:
        return default_dev_origins

    origins = [o.strip() for o in env_value.split(",") if o.strip()]
    if "*" in origins:
        return default_dev_origins

    return origins


app = FastAPI(title="Rentalcore API", version="0.1.0")
allow_list = _parse_cors_origins(os.getenv("CORS_ORIGINS"))

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
register_error_handlers(app)


@app.on_event("startup")
def on_startup() -> None:
    init_db()
    if STATUS_SWEEP_SECONDS > 0:
        _start_status_sweeper(interval_seconds=STATUS_SWEEP_SECONDS)


# Simple liveness endpoint for container orchestrators and uptime checks
@app.get("/healthz")
def healthz() -> dict:
    return {"status": "ok"}


app.include_router(auth_router, prefix="", tags=["auth"])
app.include_router(estates_router, prefix="/api/v1", tags=["estates"])
app.include_router(properties_router, prefix="/api/v1", tags=["properties"])
app.include_router(tenants_router, prefix="/api/v1", tags=["tenants"])
app.include_router(contracts_router, prefix="/api/v1", tags=["contracts"])
app.include_router(maintenance_router, prefix="/api/v1", tags=["maintenance"])
app.include_router(tenant_portal_router, prefix="/api/v1", tags=["tenant-portal"])
app.include_router(audit_logs_router, prefix="/api/v1", tags=["audit"])
