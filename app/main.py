import logging
import os
import uuid

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from app.config import settings
from app.auth import router as auth_router
from app.routers.clients import router as clients_router
from app.routers.trainers import router as trainers_router
from app.routers.workouts import router as workouts_router
from app.routers.nutrition import router as nutrition_router
from app.routers.progress import router as progress_router
from app.routers.messages import router as messages_router
from app.routers.functions import router as functions_router
from app.routers.realtime import router as realtime_router
from app.core import exceptions
from app.core.logging import configure_logging
from app.database import AsyncSessionLocal
from app.services.role_resolver import role_resolver

logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json"
)

# Progress photos and other uploads
os.makedirs(settings.MEDIA_ROOT, exist_ok=True)
app.mount("/static", StaticFiles(directory=settings.MEDIA_ROOT), name="static")

# CORS must be added before other middleware
configured_origins = [str(origin).rstrip("/") for origin in settings.BACKEND_CORS_ORIGINS]
default_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]
allow_origins = configured_origins if settings.APP_ENV == "production" else list(dict.fromkeys([*default_origins, *configured_origins]))

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def attach_request_id(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response

# Exception Handlers
app.add_exception_handler(RequestValidationError, exceptions.validation_exception_handler)  # type: ignore
app.add_exception_handler(IntegrityError, exceptions.integrity_exception_handler)  # type: ignore
app.add_exception_handler(exceptions.AccountFunctionError, exceptions.account_function_exception_handler)  # type: ignore

# Routers
app.include_router(auth_router.router, prefix=f"{settings.API_V1_STR}/auth", tags=["Auth"])
app.include_router(clients_router, prefix=f"{settings.API_V1_STR}/clients", tags=["Clients"])
app.include_router(trainers_router, prefix=f"{settings.API_V1_STR}/trainers", tags=["Trainers"])
app.include_router(workouts_router, prefix=f"{settings.API_V1_STR}/workout-plans", tags=["Workout Plans"])
app.include_router(nutrition_router, prefix=f"{settings.API_V1_STR}/nutrition-plans", tags=["Nutrition Plans"])
app.include_router(progress_router, prefix=f"{settings.API_V1_STR}/progress", tags=["Progress"])
app.include_router(messages_router, prefix=f"{settings.API_V1_STR}/messages", tags=["Messages"])
app.include_router(functions_router, prefix=f"{settings.API_V1_STR}/functions", tags=["Functions"])
app.include_router(realtime_router, prefix=f"{settings.API_V1_STR}/realtime", tags=["Realtime"])

@app.get("/health")
async def health_check():
    return {"status": "ok"}


@app.get("/healthz")
async def healthz():
    try:
        async with AsyncSessionLocal() as db:
            await db.execute(text("SELECT 1"))
    except Exception as exc:
        logger.exception("Health check failed")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="database unavailable",
        ) from exc
    return {"status": "ok", "database": "ok"}

@app.get("/")
async def root():
    return {"message": "Welcome to the Trainer Hub API", "docs": "/docs"}


@app.on_event("startup")
async def startup() -> None:
    configure_logging()
    _validate_security_settings()
    logger.info("%s %s starting (env=%s)", settings.PROJECT_NAME, settings.VERSION, settings.APP_ENV)


@app.on_event("shutdown")
async def shutdown() -> None:
    # Let pending cache writes and repairs finish before the engine goes away.
    await role_resolver.drain()


def _validate_security_settings() -> None:
    if settings.APP_ENV != "production":
        return

    errors: list[str] = []
    if len(settings.SECRET_KEY.strip()) < 24:
        errors.append("SECRET_KEY must be at least 24 characters in production.")
    if not settings.BACKEND_CORS_ORIGINS:
        errors.append("BACKEND_CORS_ORIGINS must be explicitly configured in production.")

    if errors:
        raise RuntimeError("; ".join(errors))
