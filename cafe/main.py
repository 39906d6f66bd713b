# cafe/main.py
from contextlib import asynccontextmanager

from fastapi import FastAPI
from cafe.data.database import Base, engine
from cafe.api.routers import checkout, admin, health
from cafe.utils.logging import get_logger
import uvicorn

logger = get_logger(__name__)

# import wszystkich modeli przed create_all
from cafe.data.models import CheckoutAttemptModel


def init_db() -> None:
    logger.info(f"Initializing database, tables: {list(Base.metadata.tables.keys())}")
    try:
        Base.metadata.create_all(bind=engine)
    except Exception as e:
        logger.error(f"Failed to create tables: {e}")
        raise
    logger.info("Database tables ready")


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


def create_app() -> FastAPI:
    app = FastAPI(
        title="Cafe Checkout Service",
        version="1.0.0",
        lifespan=lifespan,
    )

    # Include routers
    app.include_router(health.router)
    app.include_router(checkout.router)
    app.include_router(admin.router)

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
