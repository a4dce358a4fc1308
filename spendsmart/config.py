"""
Application settings
"""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    # Backend proxy (AI generation + image hosting)
    BACKEND_URL: str = "http://localhost:3000"
    BACKEND_SECRET_KEY: str = ""
    BACKEND_AUTH_TOKEN: str = ""
    REQUEST_TIMEOUT: float = 30.0

    # Remote relational store (authenticated sessions)
    DATABASE_URL: str = "sqlite:///./data/spendsmart.db"

    # On-device storage (guest sessions + image fallback)
    DATA_DIR: str = "./data"
    LOCAL_STORE_KEY: str = "saved_receipts"

    # Images
    MAX_IMAGE_DIMENSION: int = 1000
    JPEG_QUALITY: int = 80

    # Generation defaults for receipt extraction
    AI_TEMPERATURE: float = 1.0
    AI_TOP_P: float = 0.95
    AI_TOP_K: int = 40
    AI_MAX_OUTPUT_TOKENS: int = 8192

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
