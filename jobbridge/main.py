import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from jobbridge.core.config import settings, split_csv, validate_config
from jobbridge.core.logging import configure_logging
from jobbridge.core.middleware.request_id import RequestIdMiddleware
from jobbridge.core.validation import validate_env
from jobbridge.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from jobbridge.core.admin_auth import get_admin_policy
from jobbridge.core.database import create_all_tables
from jobbridge.core.identity_provider import close_client
from jobbridge.api import admin, analytics, applications, health, subscription

configure_logging(settings.ENV)
validate_env()
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("jobbridge")
    logger.info("Starting JobBridge access service...")
    policy = get_admin_policy()
    logger.info(
        "[admin] email policy loaded",
        extra={"admin_emails": len(policy.emails), "admin_pattern": policy.pattern is not None},
    )
    try:
        create_all_tables()
    except ValueError as e:
        logger.warning(f"[startup] tables not created: {e}")
    try:
        yield
    finally:
        await close_client()
        logger.info("Stopping JobBridge access service...")


app = FastAPI(title="JobBridge Access Service", lifespan=lifespan)

app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(HTTPException, http_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=split_csv(settings.CORS_ORIGINS),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.root_router)
app.include_router(subscription.router)
app.include_router(applications.router)
app.include_router(analytics.router)
app.include_router(admin.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("jobbridge.main:app", host="0.0.0.0", port=8000, reload=settings.ENV != "production")
