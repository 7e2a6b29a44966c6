from typing import List, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEV_ORIGINS = ["http://localhost:5173", "http://localhost:3000", "http://localhost"]


class Settings(BaseSettings):
    # Secrets (required to boot, checked by the app lifespan)
    ADMIN_PASSWORD: Optional[str] = Field(default=None, description="Shared admin dashboard password.")
    SESSION_SECRET: Optional[str] = Field(default=None, description="Key used to sign session cookies.")

    # Server
    HOST: str = Field(default="0.0.0.0", description="Interface uvicorn binds to.")
    PORT: int = Field(default=3001, description="Port uvicorn listens on.")
    ENVIRONMENT: str = Field(
        default="development",
        validation_alias=AliasChoices("ENVIRONMENT", "NODE_ENV"),
        description="development or production.",
    )
    CORS_ORIGIN: Optional[str] = Field(default=None, description="Comma-separated origins allowed in production.")
    LOG_LEVEL: str = Field(default="INFO", description="Root logging level.")

    # Storage locations
    DATA_DIR: str = Field(default="data", description="Directory holding trucks.json and backups/.")
    UPLOADS_DIR: str = Field(default="uploads", description="Directory holding uploaded images.")

    # Session behaviour
    SESSION_MAX_AGE: int = Field(default=24 * 60 * 60, description="Admin session lifetime in seconds.")
    LOGIN_FAILURE_DELAY: float = Field(default=1.0, description="Seconds to wait before answering a failed login.")

    # Contact form
    BUSINESS_EMAIL: Optional[str] = Field(default=None, description="Inbox that receives contact form messages.")
    SES_FROM_EMAIL: Optional[str] = Field(default=None, description="Sender address for contact form messages.")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True)

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT != "production"

    @property
    def cors_origins(self) -> List[str]:
        if self.is_development:
            return list(DEV_ORIGINS)
        if self.CORS_ORIGIN:
            return [origin.strip() for origin in self.CORS_ORIGIN.split(",") if origin.strip()]
        return ["http://localhost"]

    def missing_required(self) -> List[str]:
        """Names of required secrets that are not configured."""
        return [name for name in ("SESSION_SECRET", "ADMIN_PASSWORD") if not getattr(self, name)]


settings = Settings()
