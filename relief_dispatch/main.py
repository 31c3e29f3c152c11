# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Relief Dispatch Service
=======================
Coordinates emergency response: citizens report incidents, coordinators
verify and escalate them, and volunteers are matched by proximity and
verified skills, then walked through the assignment lifecycle:

    pending ─► accepted ─► in-progress ─► completed
    pending ─► rejected
    pending | accepted | in-progress ─► cancelled

Port: 8005
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from relief_dispatch.controllers import (
    assignment_controller,
    incident_controller,
    skill_controller,
    system_controller,
)
from relief_dispatch.core.config import settings
from relief_dispatch.core.database import init_schema
from relief_dispatch.core.dependencies import get_engine
from relief_dispatch.core.errors import DispatchError
from relief_dispatch.core.logging import get_logger
from relief_dispatch.middleware import MetricsMiddleware, RequestIDMiddleware
from relief_dispatch.schemas.dispatch import ErrorResponse

logger = get_logger(__name__)


# ── Lifespan ──────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Create the schema at startup; dispose the pool on shutdown."""
    engine = get_engine()
    try:
        init_schema(engine)
    except Exception as exc:
        logger.error("Schema initialisation FAILED — DB calls will fail: %s", exc)
    logger.info("%s v%s starting on port %d",
                settings.SERVICE_NAME, settings.SERVICE_VERSION, settings.SERVICE_PORT)
    yield
    engine.dispose()
    logger.info("Database connection pool disposed — shutting down")


# ── FastAPI App ───────────────────────────────────────────────────────────
app = FastAPI(
    title="Relief Dispatch Service",
    description="Matches volunteers to emergency incidents and tracks their assignments.",
    version=settings.SERVICE_VERSION,
    lifespan=lifespan,
    responses={
        403: {"model": ErrorResponse, "description": "Not authorized"},
        404: {"model": ErrorResponse, "description": "Not found"},
        409: {"model": ErrorResponse, "description": "Conflict or invalid transition"},
        422: {"model": ErrorResponse, "description": "Validation error"},
        500: {"model": ErrorResponse, "description": "Internal server error"},
    },
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestIDMiddleware)

app.include_router(system_controller.router)
app.include_router(incident_controller.router)
app.include_router(assignment_controller.router)
app.include_router(skill_controller.router)


# ── Exception handlers ───────────────────────────────────────────────────
@app.exception_handler(DispatchError)
async def dispatch_error_handler(request: Request, exc: DispatchError):
    req_id = getattr(request.state, "request_id", None)
    logger.info("Request rejected: %s %s", exc.code, exc.message, extra={"request_id": req_id})
    return JSONResponse(
        status_code=exc.status_code,
        content={**exc.to_dict(), "request_id": req_id},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    req_id = getattr(request.state, "request_id", None)
    logger.info("Request validation failed: %s", exc.errors(), extra={"request_id": req_id})
    return JSONResponse(
        status_code=422,
        content={"error": "invalid_input", "detail": "Request validation failed",
                 "context": {"errors": jsonable_encoder(exc.errors())}, "request_id": req_id},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    req_id = getattr(request.state, "request_id", None)
    logger.exception("Unhandled exception", extra={"request_id": req_id})
    return JSONResponse(
        status_code=500,
        content={"error": "internal_server_error", "detail": str(exc),
                 "request_id": req_id, "context": {}},
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("relief_dispatch.main:app", host="0.0.0.0", port=settings.SERVICE_PORT)
