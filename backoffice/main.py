import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from mangum import Mangum
from starlette.middleware.cors import CORSMiddleware

from backoffice import containers
from backoffice.config import settings
from backoffice.core.exception_handlers import register_exception_handlers
from backoffice.core.logging_middleware import LoggingMiddleware
from backoffice.logging_config import setup_logging
from backoffice.routers import (
    auth_router,
    gift_code_router,
    health_router,
    payment_router,
    prize_router,
    shop_router,
    wallet_router,
)

load_dotenv("backoffice/.env")

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await app.container.infrastructure.redis_service().close()  # type: ignore


def create_app() -> FastAPI:
    setup_logging(settings.LOG_LEVEL, debug=settings.DEBUG)

    app = FastAPI(
        title=settings.APP_NAME,
        debug=settings.DEBUG,
        lifespan=lifespan,
    )
    app.container = containers.Container()  # type: ignore

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(LoggingMiddleware)

    register_exception_handlers(app)

    @app.get("/")
    def hello() -> dict:
        return {"message": settings.APP_NAME}

    app.include_router(health_router.router)
    for module in (
        auth_router,
        prize_router,
        gift_code_router,
        shop_router,
        wallet_router,
        payment_router,
    ):
        app.include_router(module.router, prefix=settings.API_V1_STR)

    logger.info(f"{settings.APP_NAME} started ({settings.ENVIRONMENT})")
    return app


app = create_app()

handler = Mangum(app)
