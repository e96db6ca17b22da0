from pydantic_settings import BaseSettings, NoDecode
from pydantic import Field, field_validator
from functools import lru_cache
from pathlib import Path
from typing import Annotated, List, Any
import json
from dotenv import load_dotenv

# Resolve project root (parent of cardtime/)
PROJECT_ROOT = Path(__file__).resolve().parents[2]
ENV_PATH = PROJECT_ROOT / ".env"

load_dotenv(ENV_PATH, override=False)

class Settings(BaseSettings):
    app_secret: str = Field(alias="APP_SECRET", default="change-me-please-32bytes")
    sqlite_path: str = Field(default="cardtime.db", alias="SQLITE_PATH")
    # Full SQLAlchemy URL; wins over SQLITE_PATH when set
    database_url: str | None = Field(default=None, alias="DATABASE_URL")
    sql_echo: bool = Field(default=False, alias="SQL_ECHO")

    # Allow a single string or comma/semicolon separated list in .env (e.g. FRONTEND_ORIGINS=https://trello.com,http://localhost:5173)
    frontend_origins: Annotated[List[str], NoDecode] = Field(default=["https://trello.com"], alias="FRONTEND_ORIGINS")

    # Used for "date at noon" adjustments and report date presets
    timezone: str = Field(default="UTC", alias="TIMEZONE")

    grace_period_seconds: int = Field(default=120, alias="GRACE_PERIOD_SECONDS")
    poll_interval_seconds: float = Field(default=5.0, alias="POLL_INTERVAL_SECONDS")
    tick_interval_seconds: float = Field(default=1.0, alias="TICK_INTERVAL_SECONDS")

    csv_delimiter: str = Field(default=";", alias="CSV_DELIMITER")
    csv_bom: bool = Field(default=True, alias="CSV_BOM")
    unlabeled_name: str = Field(default="Unlabeled", alias="UNLABELED_NAME")
    unlabeled_color: str = Field(default="gray", alias="UNLABELED_COLOR")

    trello_api_key: str | None = Field(default=None, alias="TRELLO_API_KEY")
    trello_base_url: str = Field(default="https://api.trello.com", alias="TRELLO_BASE_URL")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @field_validator("frontend_origins", mode="before")
    @classmethod
    def _parse_frontend_origins(cls, v: Any):
        # Accept JSON-style list OR simple comma/semicolon separated string
        if isinstance(v, str):
            s = v.strip()
            if s.startswith("[") and s.endswith("]"):
                return json.loads(s)
            parts = [p.strip() for p in s.replace(";", ",").split(",") if p.strip()]
            return parts
        return v

    @field_validator("csv_delimiter")
    @classmethod
    def _single_char_delimiter(cls, v: str):
        if len(v) != 1:
            raise ValueError("CSV_DELIMITER must be a single character")
        return v

    @property
    def dsn(self) -> str:
        if self.database_url:
            return self.database_url
        return f"sqlite+aiosqlite:///{self.sqlite_path}"

    model_config = {
        "env_file": str(ENV_PATH),
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "populate_by_name": True,
        "extra": "ignore",
    }

@lru_cache
def get_settings() -> Settings:
    return Settings()
