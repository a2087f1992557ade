"""
Cockpit Portal Access Gateway (port 8400)
------------------------------------------
Catalog of managed endpoints with encrypted credentials, liveness checks,
one-time access hand-off and an append-only access log.

Run with:
    uvicorn portal.services.gateway.main:app --port 8400
"""

import logging
import os
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from portal.services.shared.config import load_settings
from portal.services.shared.database import create_all_tables
from portal.services.shared.errors import (
    EndpointUnreachableError, GatewayError, NotFoundError, ValidationError,
)
from portal.services.gateway.codec import SecretCodec
from portal.services.gateway.prober import LivenessProber

logging.basicConfig(level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO))
logger = structlog.get_logger()

CORS_ALLOW_ORIGINS = [o.strip() for o in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",") if o.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("portal_gateway_starting")
    settings = load_settings()
    app.state.settings = settings
    app.state.codec = SecretCodec(settings.encryption_key)
    app.state.prober = LivenessProber(settings.probe_timeout_ms, settings.probe_workers)
    create_all_tables()
    logger.info(
        "portal_gateway_ready",
        probe_timeout_ms=settings.probe_timeout_ms,
        default_port=settings.default_port,
    )
    yield
    logger.info("portal_gateway_stopping")


app = FastAPI(
    title="Cockpit Portal Access Gateway",
    version="0.1.0",
    description="Managed endpoint catalog with brokered, audited access to remote admin interfaces.",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Error mapping ─────────────────────────────────────────────────────────────

@app.exception_handler(ValidationError)
async def _validation_error(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"detail": exc.message, "errors": exc.errors})


@app.exception_handler(RequestValidationError)
async def _request_validation_error(request: Request, exc: RequestValidationError):
    errors: dict[str, str] = {}
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        errors[".".join(loc) or "request"] = err.get("msg", "invalid value")
    return JSONResponse(status_code=400, content={"detail": "Validation failed", "errors": errors})


@app.exception_handler(NotFoundError)
async def _not_found(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": f"{exc.resource} not found"})


@app.exception_handler(EndpointUnreachableError)
async def _unreachable(request: Request, exc: EndpointUnreachableError):
    return JSONResponse(status_code=503, content={"detail": "Endpoint is offline or unreachable"})


@app.exception_handler(GatewayError)
async def _internal(request: Request, exc: GatewayError):
    # CryptoError, AccessIssuanceError: never echo internals to the caller
    logger.error("gateway_internal_error", kind=type(exc).__name__, path=request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal error"})


from portal.services.gateway.routes_endpoints import router as endpoints_router  # noqa: E402
from portal.services.gateway.routes_access    import router as access_router     # noqa: E402

app.include_router(endpoints_router, prefix="/api", tags=["Endpoints"])
app.include_router(access_router,    prefix="/api", tags=["Access"])


@app.get("/health", tags=["Health"])
def health():
    return {"status": "healthy", "service": "cockpit-portal-gateway", "version": "0.1.0"}
