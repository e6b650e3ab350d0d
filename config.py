from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
import os


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    # ---------------------------
    # Project / Logging
    # ---------------------------
    PROJECT_NAME: str = os.getenv("PROJECT_NAME", "Equipment Rental API")
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    PORT: int = int(os.getenv("PORT", "8000"))

    # ---------------------------
    # Database (one snapshot document)
    # ---------------------------
    DATABASE_URL: Optional[str] = os.getenv("DATABASE_URL")
    DATABASE_NAME: Optional[str] = os.getenv("DATABASE_NAME")
    SNAPSHOT_COLLECTION: str = os.getenv("SNAPSHOT_COLLECTION", "snapshot")

    # ---------------------------
    # Defaults for a fresh snapshot
    # ---------------------------
    DEFAULT_RENTAL_SYSTEM: str = os.getenv("DEFAULT_RENTAL_SYSTEM", "weekly")  # weekly | monthly
    DEFAULT_CURRENCY: str = os.getenv("DEFAULT_CURRENCY", "SAR")
    FIRST_INVOICE_NUMBER: int = int(os.getenv("FIRST_INVOICE_NUMBER", "1001"))

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"


settings = Settings()
