import logging
from fastapi import FastAPI
from contextlib import asynccontextmanager

from storefront.config import settings
from storefront.database import AsyncSessionLocal, create_tables
from storefront.infrastructure.seed import seed_shipping_data
from storefront.presentation.api import router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Управление жизненным циклом приложения"""
    await create_tables()
    logger.info("Таблицы созданы")

    if settings.SEED_SHIPPING_DATA:
        await seed_shipping_data(AsyncSessionLocal)

    yield

    logger.info("Приложение останавливается...")


app = FastAPI(
    title="Storefront Order Service",
    description="Оформление заказов: остатки, доставка, налоги, купоны",
    version="1.0.0",
    lifespan=lifespan
)

app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    return {"message": "Storefront Order Service работает"}


@app.get("/health")
async def health():
    return {"status": "healthy"}
