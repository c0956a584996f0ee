import os
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from .config import settings
from .db import Base, engine
from .errors import register_error_handlers
from .logging import setup_logging, RequestIdMiddleware
from .routes.activities import router as activities_router
from .routes.analytics import router as analytics_router
from .routes.callbacks import router as callbacks_router
from .routes.customers import router as customers_router
from .routes.equipment import router as equipment_router
from .routes.jobs import router as jobs_router
from .routes.orders import router as orders_router
from .routes.public import router as public_router
from .routes.tasks import router as tasks_router
from .routes.users import router as users_router


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name)

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    limiter = Limiter(
        key_func=get_remote_address,
        default_limits=[settings.rate_limit],
        enabled=settings.rate_limit_enabled,
    )
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    register_error_handlers(app)

    # Routers
    for router in (
        customers_router,
        equipment_router,
        users_router,
        jobs_router,
        tasks_router,
        callbacks_router,
        orders_router,
        activities_router,
        analytics_router,
        public_router,
    ):
        app.include_router(router, prefix="/api")

    # Metrics
    Instrumentator().instrument(app).expose(app)

    @app.on_event("startup")
    def _startup():
        # Ensure local SQLite directory exists
        if settings.database_url.startswith("sqlite:///./"):
            os.makedirs("var", exist_ok=True)
        if settings.auto_create_db:
            Base.metadata.create_all(bind=engine)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


app = create_app()
