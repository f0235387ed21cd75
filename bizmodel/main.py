# bizmodel/main.py
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlmodel import Session

from bizmodel.core.config import get_settings
from bizmodel.core.logging import configure_logging, get_logger
from bizmodel.database import create_db_and_tables, engine

# Import models so SQLModel metadata is populated before create_all()
from bizmodel.models import user as _user_models  # noqa: F401
from bizmodel.models import staged_account as _staged_models  # noqa: F401
from bizmodel.models import quiz_attempt as _quiz_models  # noqa: F401
from bizmodel.models import payment as _payment_models  # noqa: F401

from bizmodel.repositories.session_repo import LoginSessionRepository
from bizmodel.repositories.staged_repo import StagedAccountRepository
from bizmodel.repositories.user_repo import UserRepository
from bizmodel.services.cleanup_service import CleanupService

# Routers
from bizmodel.routers.auth import router as auth_router
from bizmodel.routers.quiz_attempts import router as quiz_attempts_router
from bizmodel.routers.report_unlock import router as report_unlock_router
from bizmodel.routers.reports import router as reports_router
from bizmodel.routers.payments import router as payments_router
from bizmodel.routers.access import router as access_router
from bizmodel.routers.admin import router as admin_router

settings = get_settings()

configure_logging(settings.LOG_LEVEL)
logger = get_logger(__name__)

cleanup = CleanupService(StagedAccountRepository(), UserRepository(), LoginSessionRepository())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
      - Verify DB connectivity and create tables.
      - Drop expired staged accounts, reset tokens and sessions.
    """
    logger.info("Startup: connecting to database...")
    try:
        create_db_and_tables()
        with Session(engine) as session:
            cleanup.purge_expired(session)
        logger.info("Startup: DB connection OK, tables verified.")
    except Exception:
        logger.exception("Startup: DB connection FAILED")
        raise
    yield


app = FastAPI(
    title=settings.PROJECT_NAME,
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Error handling ---


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Bad input is a 400 here, not FastAPI's default 422."""
    response = await request_validation_exception_handler(request, exc)
    response.status_code = status.HTTP_400_BAD_REQUEST
    return response


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    content = {"detail": "Internal server error"}
    if not settings.is_production:
        content["error"] = str(exc)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)


# Versioned API prefix, e.g. /api/v1
app.include_router(auth_router, prefix=settings.API_V1_STR)
app.include_router(quiz_attempts_router, prefix=settings.API_V1_STR)
app.include_router(report_unlock_router, prefix=settings.API_V1_STR)
app.include_router(reports_router, prefix=settings.API_V1_STR)
app.include_router(payments_router, prefix=settings.API_V1_STR)
app.include_router(access_router, prefix=settings.API_V1_STR)
app.include_router(admin_router, prefix=settings.API_V1_STR)


@app.get("/")
def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "bizmodel-api"}
