import os
from functools import cache
from typing import List, Literal

from pydantic import BaseModel, field_validator

LogLevel = Literal["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"]


class Settings(BaseModel):
    port: int = 8000
    mongodb_url: str = "mongodb://localhost:27017/"
    mongodb_db: str = "beergame"
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"
    jwt_expiration_minutes: int = 24 * 60
    cors_origins: List[str] = ["*"]
    log_level: LogLevel = "INFO"

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value):
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Build settings from the environment the compose file provides.

        Raises:
            pydantic.ValidationError: If a variable is malformed, e.g. a non-numeric PORT
        """
        origins = os.getenv("CORS_ORIGINS", "*")
        return cls(
            port=os.getenv("PORT", "8000"),
            mongodb_url=os.getenv("MONGODB_URL", "mongodb://localhost:27017/"),
            mongodb_db=os.getenv("MONGODB_DB", "beergame"),
            jwt_secret=os.getenv("JWT_SECRET", ""),
            jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            jwt_expiration_minutes=os.getenv("JWT_EXPIRATION_MINUTES", str(24 * 60)),
            cors_origins=[origin.strip() for origin in origins.split(",") if origin.strip()],
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


@cache
def get_settings() -> Settings:
    return Settings.from_env()
