# ============================================================
# tuition/main.py
#
# Entry point for the fee setup backend.
#
# What this file does:
# - Creates the FastAPI app instance
# - Adds CORS middleware for the school suite's frontend
# - Registers all routes under /api/v1
# - Adds a /health endpoint for Docker healthchecks
# - Adds global error handlers for clean error responses
# ============================================================

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from contextlib import asynccontextmanager
import logging
import time

from tuition.core.config import settings
from tuition.core.database import check_db_connection
from tuition.core.exceptions import FeeSetupError
from tuition.api.v1.router import api_router

logging.basicConfig(
    level=logging.INFO if settings.is_production else logging.DEBUG,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)

# Never leak service keys from low-level HTTP debug logs.
if settings.is_production and not settings.HTTP_CLIENT_DEBUG_LOGS:
    for noisy_logger in ("httpx", "httpcore", "hpack"):
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)


# ── Startup / Shutdown ───────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Environment: {settings.ENVIRONMENT}")

    if await check_db_connection():
        logger.info("Database connection OK")
    else:
        logger.error("Database connection FAILED: check SUPABASE_URL and keys")

    yield

    logger.info(f"Shutting down {settings.APP_NAME}")


# ── Create App ───────────────────────────────────────────────
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Tuition fee allocation, discounts and fee setup commits.",
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_request_timing(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    duration = (time.time() - start) * 1000
    logger.info(f"{request.method} {request.url.path} → {response.status_code} ({duration:.1f}ms)")
    return response


# ── Global error handlers ────────────────────────────────────
@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = []
    for error in exc.errors():
        field = " → ".join(str(e) for e in error["loc"])
        errors.append(f"{field}: {error['msg']}")

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "success": False,
            "message": "Validation error",
            "detail": errors,
        },
    )


@app.exception_handler(FeeSetupError)
async def fee_setup_error_handler(request: Request, exc: FeeSetupError):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "message": exc.message,
            "detail": exc.kind,
        },
    )


@app.exception_handler(Exception)
async def global_error_handler(request: Request, exc: Exception):
    """Catch-all for unexpected errors. Never expose stack traces in production."""
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "message": "An unexpected error occurred. Please try again.",
        },
    )


# ── Routes ───────────────────────────────────────────────────
app.include_router(api_router, prefix=settings.API_PREFIX)


@app.get("/health", tags=["Health"])
async def health_check():
    """200 when the API and DB are reachable, 503 otherwise."""
    if await check_db_connection():
        return {"status": "healthy", "version": settings.APP_VERSION}
    return JSONResponse(
        status_code=503,
        content={"status": "unhealthy", "reason": "database_unreachable"},
    )


@app.get("/", tags=["Health"])
async def root():
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
