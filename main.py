from contextlib import asynccontextmanager
from typing import Dict

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from upload_service.upload_route import router as statements_router
from transactions.transaction_routes import router as transactions_router
from db.postgres import init_postgres, close_postgres
import logging
from settings.logging_config import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # DB lifecycle
    logger.info("Initializing database")
    await init_postgres()
    yield
    logger.info("Closing database")
    await close_postgres()


def get_app() -> FastAPI:
    configure_logging()
    logger.info("Starting Statement Ingest API")
    app = FastAPI(title="Statement Ingest API", lifespan=lifespan)

    # CORS: enable permissive defaults for local development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(statements_router)
    app.include_router(transactions_router)
    logger.info("Routers initialized successfully")

    # Health
    @app.get("/health")
    async def health_check() -> Dict[str, str]:
        return {"status": "ok"}

    logger.info("API started")
    return app


# ASGI app instance
app = get_app()
