from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, TimeoutError as SQLAlchemyTimeoutError
from budget_ledger.api.v1.routes import router as api_router
from budget_ledger.core.config import get_settings, parse_cors_origins
import logging
import time
from budget_ledger.core.database import Base, engine, SessionLocal
from budget_ledger.core.errors import ConsistencyError, LedgerError, StorageUnavailable, ValidationError, describe_validation_errors
from budget_ledger.core.logging import configure_logging
from budget_ledger.middlewares.rate_limit import limiter, rate_limit_exceeded_handler
import budget_ledger.models  # noqa: F401


settings = get_settings()

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
_started_at = time.time()


@app.exception_handler(LedgerError)
async def ledger_error_handler(request, exc: LedgerError):
    if isinstance(exc, ConsistencyError):
        logger.error("Ledger consistency violation on %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request, exc: RequestValidationError):
    error = ValidationError(describe_validation_errors(exc.errors()))
    return JSONResponse(status_code=error.status_code, content=error.to_payload())


@app.exception_handler(SQLAlchemyTimeoutError)
@app.exception_handler(OperationalError)
async def storage_unavailable_handler(request, exc):
    logger.warning("Database unavailable on %s %s: %s", request.method, request.url.path, exc)
    error = StorageUnavailable()
    return JSONResponse(status_code=error.status_code, content=error.to_payload(), headers={"Retry-After": "1"})


allow_origins = parse_cors_origins(settings.cors_origins or "")

logger.info("CORS allow_origins=%s", allow_origins)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Retry-After", "Idempotent-Replayed"],
)

app.include_router(api_router, prefix=settings.api_prefix)


@app.on_event("startup")
def ensure_tables():
    if not settings.auto_create_tables:
        return

    # Optional local fallback for fresh environments.
    try:
        Base.metadata.create_all(bind=engine)
    except OperationalError as exc:
        logger.warning("DB unavailable on startup, skipping table creation: %s", exc)


@app.get("/")
def root():
    return {"status": "ok"}


@app.get("/healthz")
def healthz():
    # Liveness: process is up.
    return {
        "status": "ok",
        "uptime_seconds": int(max(0, time.time() - _started_at)),
        "service": settings.app_name,
    }


@app.get("/readyz")
def readyz():
    # Readiness: database is reachable.
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        return {
            "status": "ready",
            "uptime_seconds": int(max(0, time.time() - _started_at)),
        }
    except (OperationalError, SQLAlchemyTimeoutError) as exc:
        logger.warning("Readiness DB check failed: %s", exc)
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "detail": "database_unavailable"},
        )
    finally:
        db.close()
