import logging
import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str = "False") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # API settings
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    api_key: str = os.getenv("API_KEY", "super-secret-key")

    # Storage settings
    store_backend: str = os.getenv("LIBRARY_STORE", "sqlite")  # sqlite | rest
    data_file: str = os.getenv("LIBRARY_DATA_FILE", "library.db")
    store_url: Optional[str] = os.getenv("STORE_URL")
    store_api_key: Optional[str] = os.getenv("STORE_API_KEY")
    store_timeout: float = float(os.getenv("STORE_TIMEOUT", "10"))
    store_read_retries: int = int(os.getenv("STORE_READ_RETRIES", "1"))

    # Circulation rules
    default_due_days: int = int(os.getenv("DEFAULT_DUE_DAYS", "14"))
    max_due_days: int = int(os.getenv("MAX_DUE_DAYS", "90"))

    # Member form rules
    member_email_domain: str = os.getenv("MEMBER_EMAIL_DOMAIN", "@gmail.com")
    member_phone_digits: int = int(os.getenv("MEMBER_PHONE_DIGITS", "11"))

    # Application settings
    app_name: str = os.getenv("APP_NAME", "Library Loan Ledger")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    debug: bool = _env_flag("DEBUG")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()


def configure_logging(level: Optional[str] = None) -> None:
    """Set up root logging for the API and CLI entry points."""
    name = (level or ("DEBUG" if settings.debug else settings.log_level)).upper()
    logging.basicConfig(
        level=getattr(logging, name, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
