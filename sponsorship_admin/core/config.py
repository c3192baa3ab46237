from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")

    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(60, alias="ACCESS_TOKEN_EXPIRE_MINUTES")
    refresh_token_expire_days: int = Field(7, alias="REFRESH_TOKEN_EXPIRE_DAYS")

    superuser_email: Optional[str] = Field(None, alias="SUPERUSER_EMAIL")
    superuser_password: Optional[str] = Field(None, alias="SUPERUSER_PASSWORD")
    superuser_name: str = Field("Administrator", alias="SUPERUSER_NAME")

    log_level: str = Field("INFO", alias="LOG_LEVEL")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"], alias="CORS_ORIGINS")

    organization_name: str = Field("David's Hope International", alias="ORGANIZATION_NAME")
    email_timeout_seconds: int = Field(20, alias="EMAIL_TIMEOUT_SECONDS")
    resend_api_url: str = Field("https://api.resend.com/emails", alias="RESEND_API_URL")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
