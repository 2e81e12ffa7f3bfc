from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from pathlib import Path
from typing import List, Optional


class Settings(BaseSettings):
    # --- General App Settings ---
    PROJECT_NAME: str = "Fleet Compliance Reporting Service"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = Field("development", description="Environment: development | production")

    # --- Server Settings ---
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    DEBUG: bool = False

    # --- Database ---
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "memp_shore"
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: int = 5432
    DATABASE_URL_OVERRIDE: Optional[str] = Field(None, description="Full SQLAlchemy URL, wins over POSTGRES_*")
    DB_POOL_SIZE: int = Field(5, ge=1)
    CREATE_TABLES_ON_STARTUP: bool = True

    @property
    def DATABASE_URL(self) -> str:
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # --- Storage queries ---
    STORAGE_QUERY_TIMEOUT_SECONDS: float = Field(15.0, gt=0)

    # --- Attachments ---
    # Stored attachment paths are recorded relative to SERVICE_ROOT.
    SERVICE_ROOT: Path = Path(".")
    UPLOAD_SUBDIR: str = "public/uploads/report_attachments"
    MAX_ATTACHMENT_BYTES: int = 10 * 1024 * 1024  # 10 MB

    @property
    def UPLOAD_ROOT(self) -> Path:
        return self.SERVICE_ROOT / self.UPLOAD_SUBDIR

    @property
    def PUBLIC_UPLOADS_DIR(self) -> Path:
        return self.SERVICE_ROOT / "public" / "uploads"

    # --- CORS ---
    CORS_ORIGINS: List[str] = ["*"]

    # --- Logging ---
    LOG_DIR: str = "logs"
    LOG_TO_FILE: bool = False
    API_LOG_LEVEL: str = "INFO"
    DB_LOG_LEVEL: str = "INFO"
    STORAGE_LOG_LEVEL: str = "INFO"
    REPORT_LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
