"""FastAPI server for supplier ledger reconciliation.

Run with ``uvicorn api.server:app`` or ``python -m api.server``.
"""

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routes import health, reconciliation
from api.routes.health import API_VERSION
from core.observability.logging import configure_logging, get_logger
from reconciliation.errors import ReconciliationError


logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    config = reconciliation.get_config()
    logger.info(
        "Ledger reconciliation API starting",
        extra_fields={
            "default_strategy": config.resolution_strategy,
            "anomaly_tolerance": str(config.anomaly_tolerance),
        },
    )
    yield
    logger.info("Ledger reconciliation API shutting down")


async def reconciliation_error_handler(request: Request, exc: ReconciliationError) -> JSONResponse:
    """Bad input records are the caller's problem: 422 with the record position."""
    logger.warning(
        f"Rejected {request.url.path}: {exc}",
        extra_fields={"record_type": exc.record_type, "index": exc.index},
    )
    return JSONResponse(status_code=422, content={"detail": str(exc)})


def create_app() -> FastAPI:
    app = FastAPI(
        title="Ledger Reconciliation API",
        description="Supplier profile resolution, payment allocation, anomaly detection and statements",
        version=API_VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=os.getenv("RECON_CORS_ORIGINS", "*").split(","),
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ReconciliationError, reconciliation_error_handler)

    app.include_router(health.router, tags=["Health"])
    app.include_router(reconciliation.router, tags=["Reconciliation"])

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    configure_logging(json_format=os.getenv("RECON_JSON_LOGS", "").lower() in ("1", "true"), force=True)
    uvicorn.run(app, host=os.getenv("RECON_HOST", "0.0.0.0"), port=int(os.getenv("RECON_PORT", "8000")))
