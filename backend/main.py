"""
Payment Order API — FastAPI Application

Server-authoritative payment order lifecycle: idempotent creation, signed
gateway callbacks, refunds and a pollable status projection.
"""
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi import HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from database import Database
from domain.errors import DomainError
from domain.responses import error_response
from routes import health, payment

# ── Logging ─────────────────────────────────────────────────────────

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: open the order database, start the expiry sweeper. Shutdown: reverse."""
    settings.validate_production_settings()

    # An embedding process (or a test) may attach its own Database first.
    database = getattr(app.state, "database", None)
    owns_database = database is None
    if owns_database:
        if settings.database_url.startswith("sqlite:///./data/"):
            os.makedirs("data", exist_ok=True)
        database = Database(
            settings.async_database_url,
            echo=(settings.environment == "development"),
        )
        app.state.database = database

    await database.open()
    logger.info("Database initialized")

    from services import expiry_service
    await expiry_service.start(database)
    logger.info("Expiry sweeper started")

    yield  # app runs here

    await expiry_service.stop()

    if owns_database:
        await database.close()
        app.state.database = None

    logger.info("Shutting down")


# ── App Factory ─────────────────────────────────────────────────────

app = FastAPI(
    title="Payment Order API",
    description="Payment order state machine with idempotent creation and gateway callbacks",
    version="1.0.0",
    lifespan=lifespan,
)

# Creation policy slot for the subscription/permission collaborator (None = allow all)
app.state.creation_policy = None
app.state.transition_listener = None

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routes ──────────────────────────────────────────────────────────

app.include_router(health.router)
app.include_router(payment.router)


# ── Exception Handlers ──────────────────────────────────────────────


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """
    Catch-all for unhandled exceptions.

    Never return raw exception details to clients; the full traceback is
    logged server-side.
    """
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=error_response("internal_server_error", "Internal server error"),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request, exc: RequestValidationError):
    """Malformed request shapes are validation failures (400), like field-rule violations."""
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ())[1:]) or "body",
            "message": err.get("msg", "invalid value"),
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content=error_response("validation", "Malformed request", {"errors": errors}),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc: HTTPException):
    """
    Standardize HTTPException responses for frontend consumers.

    Keeps the original HTTP status code, but wraps the payload.
    """
    if isinstance(exc, DomainError):
        error_code = exc.__class__.__name__.replace("Error", "").lower()
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response(error_code, exc.message, exc.details),
            headers=exc.headers,
        )

    detail = exc.detail
    message = detail if isinstance(detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(
            "http_error", message, detail if not isinstance(detail, str) else None
        ),
        headers=exc.headers,
    )


# ── Entrypoint ──────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info")
