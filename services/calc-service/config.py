"""
Service configuration from environment variables (and an optional .env).
"""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from engine import DEFAULT_MAX_DEPTH

load_dotenv(Path(__file__).parent / ".env")


class DatabaseConfig(BaseModel):
    host: str = Field(default="localhost")
    port: int = Field(default=5432, ge=1, le=65535)
    user: str = Field(min_length=1)
    password: str = Field(min_length=1)
    database: str = Field(min_length=1)
    url: str | None = None

    @property
    def dsn(self) -> str:
        """DSN for psycopg2; DATABASE_URL wins over the separate parts."""
        if self.url:
            return self.url
        return (
            f"host={self.host} port={self.port} dbname={self.database}"
            f" user={self.user} password={self.password}"
        )


class Settings(BaseModel):
    environment: str = "production"
    log_level: str = "INFO"
    rate_limit: str = "100/15minutes"
    write_rate_limit: str = "30/minute"
    allowed_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3001", "http://localhost:3000"]
    )
    max_payload_bytes: int = Field(default=10 * 1024 * 1024, gt=0)
    max_tree_depth: int = Field(default=DEFAULT_MAX_DEPTH, gt=0)
    ensure_schema: bool = True
    database: DatabaseConfig

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def split_origins(cls, v):
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


def load_settings() -> Settings:
    values = {
        "environment": os.getenv("ENVIRONMENT"),
        "log_level": os.getenv("LOG_LEVEL"),
        "rate_limit": os.getenv("RATE_LIMIT"),
        "write_rate_limit": os.getenv("WRITE_RATE_LIMIT"),
        "allowed_origins": os.getenv("ALLOWED_ORIGINS"),
        "max_payload_bytes": os.getenv("MAX_PAYLOAD_BYTES"),
        "max_tree_depth": os.getenv("MAX_TREE_DEPTH"),
        "ensure_schema": os.getenv("ENSURE_SCHEMA"),
    }
    return Settings(
        **{k: v for k, v in values.items() if v is not None},
        database=DatabaseConfig(
            host=os.getenv("DB_HOST", "localhost"),
            port=os.getenv("DB_PORT", "5432"),
            user=os.getenv("DB_USER", "calcforest"),
            password=os.getenv("DB_PASSWORD", "calcforest"),
            database=os.getenv("DB_NAME", "calcforest"),
            url=os.getenv("DATABASE_URL") or None,
        ),
    )
