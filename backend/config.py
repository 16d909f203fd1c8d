# backend/config.py
from pydantic_settings import BaseSettings
from typing import ClassVar, Optional
from pathlib import Path

# Resolve absolute path to the .env file for reliable loading
env_path = Path(__file__).parent.parent / ".env"

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./inventory_ledger.db"

    SECRET_KEY: str = "dev-secret-change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Optional extra CORS origin (deployed frontend)
    FRONTEND_URL: Optional[str] = None

    LOG_LEVEL: str = "INFO"

    # Product / supplier search
    SEARCH_MIN_TERM_LENGTH: int = 2
    SEARCH_RESULT_LIMIT: int = 10

    # Stock ledger
    DEFAULT_MIN_STOCK_LEVEL: int = 5
    STOCK_UPDATE_ATTEMPTS: int = 3
    LOW_STOCK_LIST_LIMIT: int = 5

    # Fonts used for printed labels; Helvetica is used when missing
    LABEL_FONT_DIR: str = str(Path(__file__).parent / "assets" / "fonts")

    class Config:
        env_file: ClassVar[str] = str(env_path)
        extra: ClassVar[str] = "ignore"

settings = Settings()
