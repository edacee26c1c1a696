from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .auth import router as auth_router
from .config import settings
from .dashboard import router as dashboard_router
from .database import close_db_pool, database_status, init_db_pool
from .logging_config import setup_logging
from .rate_limit import InMemoryRateLimitStore, RateLimiter
from .transactions import router as transactions_router


@asynccontextmanager
async def lifespan(_: FastAPI):
    await init_db_pool()
    yield
    await close_db_pool()


def create_app(rate_limiter: RateLimiter | None = None) -> FastAPI:
    logger = setup_logging(settings.log_level.upper())

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.rate_limiter = rate_limiter or RateLimiter(
        InMemoryRateLimitStore(),
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth_router, prefix="/auth")
    # /users/me mirrors /auth/me for clients that treat the profile as a user resource.
    app.include_router(auth_router, prefix="/users")
    app.include_router(transactions_router)
    app.include_router(dashboard_router)

    @app.get("/")
    def root() -> dict[str, str]:
        return {"message": f"{settings.app_name} is running"}

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "database": database_status()}

    logger.info("Application %s configured", settings.app_name)
    return app


app = create_app()
