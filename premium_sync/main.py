import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from premium_sync.api import checkout, webhooks
from premium_sync.core.audit import AuditTrail
from premium_sync.core.config import Settings, get_settings
from premium_sync.db.session import build_engine, create_session_factory
from premium_sync.services.billing_processor import BillingProcessor
from premium_sync.services.gateway import SubscriptionGateway

APP_TITLE = "Premium Sync API"
APP_VERSION = "1.0.0"

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Missing secrets or an unreachable database stop startup here
        settings.validate_for_webhooks()
        engine = build_engine(settings.DATABASE_URL)
        session_factory = create_session_factory(engine)
        app.state.engine = engine
        app.state.processor = BillingProcessor(
            SubscriptionGateway(session_factory),
            AuditTrail(session_factory),
        )
        logger.info("%s %s ready", APP_TITLE, APP_VERSION)
        try:
            yield
        finally:
            engine.dispose()

    app = FastAPI(title=APP_TITLE, version=APP_VERSION, lifespan=lifespan)
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_allowed_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    app.include_router(webhooks.router, tags=["webhooks"])
    app.include_router(checkout.router, prefix="/api", tags=["checkout"])

    @app.get("/")
    async def root():
        return {"message": APP_TITLE, "version": APP_VERSION}

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    return app


app = create_app()
