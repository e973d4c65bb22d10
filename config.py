"""
config.py
Application settings, read from the environment and an optional .env file.
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings

BASE_DIR = Path(__file__).resolve().parent


class Settings(BaseSettings):
    DATABASE_PATH: Path = BASE_DIR / "gym.db"
    GYM_NAME: str = "Gym"
    CURRENCY_SYMBOL: str = "₹"
    IMGBB_API_KEY: str | None = None
    IMGBB_UPLOAD_URL: str = "https://api.imgbb.com/1/upload"
    HTTP_TIMEOUT_SECONDS: float = 30.0
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    PLACEHOLDER_IMAGE_URL: str = "https://picsum.photos/seed/{seed}/400/400"
    EXPIRY_WARNING_DAYS: int = 7
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"


settings = Settings()
