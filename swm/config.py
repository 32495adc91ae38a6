"""Application settings, read from the environment and `.env`."""
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Stores
    DATABASE_URL: str = "sqlite:///./swm.db"
    DOCUMENT_DATABASE_URL: str = "sqlite:///./swm_documents.db"

    # Approval workflow
    APPROVAL_WINDOW_DAYS: int = 7
    ESTIMATED_APPROVAL_TIME: str = "24-48 hours"

    # Pagination
    DEFAULT_PAGE_SIZE: int = 20
    MY_REQUESTS_PAGE_SIZE: int = 10
    MAX_PAGE_SIZE: int = 100

    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: str = "*"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
    )

    @property
    def cors_origins(self) -> list:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


settings = Settings()
