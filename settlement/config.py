import logging
import os
from dotenv import load_dotenv

load_dotenv()


def _log_level(value: str) -> str:
    """Return value as a logging level name, or INFO when logging does not know it."""
    level = value.strip().upper()
    if isinstance(logging.getLevelName(level), int):
        return level
    return "INFO"


class Config:
    APP_ENV = os.environ.get("APP_ENV", "development")
    LOG_LEVEL = _log_level(os.environ.get("LOG_LEVEL", "INFO"))

    # Demo ledger (four users, three activities) loaded into the in-memory store
    SEED_DATABASE = os.environ.get("SEED_DATABASE", "true").lower() == "true"

    CORS_ORIGINS = [o.strip() for o in os.environ.get("CORS_ORIGINS", "*").split(",") if o.strip()]

    HOST = os.environ.get("HOST", "0.0.0.0")
    PORT = int(os.environ.get("PORT", 8000))


config = Config()
