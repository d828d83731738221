import os
from decimal import Decimal
from dotenv import load_dotenv

load_dotenv()


class Settings:
    # Database
    POSTGRES_CONNECTION_STRING: str = os.getenv("POSTGRES_CONNECTION_STRING", "")
    SQLITE_PATH: str = os.getenv("SQLITE_PATH", "./storefront.db")

    # API
    ADMIN_API_TOKEN: str = os.getenv("ADMIN_API_TOKEN", "")

    # Доставка
    DEFAULT_SHIPPING_COST: Decimal = Decimal(os.getenv("DEFAULT_SHIPPING_COST", "10.00"))
    DISTANCE_SURCHARGE_ENABLED: bool = os.getenv("DISTANCE_SURCHARGE_ENABLED", "true").lower() == "true"
    SEED_SHIPPING_DATA: bool = os.getenv("SEED_SHIPPING_DATA", "false").lower() == "true"

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @property
    def DATABASE_URL(self) -> str:
        """Асинхронный URL для приложения"""
        if not self.POSTGRES_CONNECTION_STRING:
            return f"sqlite+aiosqlite:///{self.SQLITE_PATH}"
        return self.POSTGRES_CONNECTION_STRING.replace("postgres://", "postgresql+asyncpg://")

    @property
    def SYNC_DATABASE_URL(self) -> str:
        """Синхронный URL для Alembic"""
        if not self.POSTGRES_CONNECTION_STRING:
            return f"sqlite:///{self.SQLITE_PATH}"
        return self.POSTGRES_CONNECTION_STRING.replace("postgres://", "postgresql://")


settings = Settings()
