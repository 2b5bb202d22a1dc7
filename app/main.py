from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config.settings import settings
from app.db.db import create_tables
from app.middlewares import RequestIDMiddleware
from app.routers import main_router, webhook_router
from app.utils.errors import setup_error_handlers
from app.utils.logging import get_logger

logger = get_logger()


@asynccontextmanager
async def lifespan(_: FastAPI):
    logger.info(
        f"{settings.NAME} {settings.VERSION} starting in {settings.ENVIRONMENT} "
        f"(timezone {settings.TIMEZONE}, scheduling mode "
        f"{settings.NOTIFICATION_SCHEDULING_MODE})"
    )
    create_tables()
    if not settings.CRON_SECRET:
        logger.warning("CRON_SECRET is empty, the sweep endpoint is unauthenticated")
    yield
    logger.info(f"{settings.NAME} is shutting down...")


def create_application() -> FastAPI:
    """
    Bookings API plus the operator sweep endpoints under API_PREFIX, and the
    provider delivery callbacks under WEBHOOK_PREFIX.
    """
    application = FastAPI(
        title=settings.NAME, version=settings.VERSION, lifespan=lifespan
    )

    setup_error_handlers(application)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_HOSTS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )
    application.add_middleware(RequestIDMiddleware)

    application.include_router(main_router, prefix=settings.API_PREFIX)
    application.include_router(
        webhook_router, prefix=settings.WEBHOOK_PREFIX, tags=["Webhooks"]
    )
    return application


app = create_application()


if __name__ == "__main__":
    import uvicorn

    # log_config=None keeps uvicorn on the loguru intercept handler
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.ENVIRONMENT == "development",
        log_config=None,
    )
