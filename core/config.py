# core/config.py
import os
from pydantic_settings import BaseSettings
from dotenv import load_dotenv
import logging
from typing import Optional

# Load variables from .env file located in the project root directory
dotenv_path = os.path.join(os.path.dirname(os.path.dirname(__file__)), '.env')
if os.path.exists(dotenv_path):
    load_dotenv(dotenv_path=dotenv_path)
else:
    load_dotenv() # Fallback

MB = 1024 * 1024

class Settings(BaseSettings):
    """Loads configuration settings from environment variables and .env file."""

    # --- Supabase Configuration ---
    SUPABASE_URL: str | None = None
    SUPABASE_KEY: str | None = None # ANON key usually
    SUPABASE_SERVICE_KEY: str | None = None # SERVICE_ROLE key, needed for storage writes

    # --- Service URLs ---
    API_GATEWAY_URL: str = "http://localhost:8000"
    ASSET_SERVICE_URL: str = "http://localhost:8010"

    # --- Gateway ---
    API_GATEWAY_KEY: Optional[str] = None # Mutating routes require X-API-Key when set
    RATE_LIMIT_MAX_CALLS: int = 100
    RATE_LIMIT_PERIOD: int = 60 # seconds

    # --- Upload Workflow ---
    UPLOAD_MAX_ATTEMPTS: int = 3
    UPLOAD_RETRY_DELAY_SECONDS: float = 1.0
    DEFAULT_MAX_UPLOAD_BYTES: int = 15 * MB
    AVATAR_MAX_UPLOAD_BYTES: int = 10 * MB
    STORAGE_CACHE_CONTROL: str = "3600"
    ENSURE_BUCKETS: bool = True
    # Delete the freshly uploaded asset when linking it to its owner fails
    COMPENSATE_ON_LINK_FAILURE: bool = False

    class Config:
        env_file = '.env'
        env_file_encoding = 'utf-8'
        extra = 'ignore'

# Instantiate settings once for import
settings = Settings()

# --- Logging Setup ---
log_level_str = os.getenv("LOG_LEVEL", "INFO").upper(); log_level = getattr(logging, log_level_str, logging.INFO)
logging.basicConfig(level=log_level, format='%(asctime)s - %(name)s - [%(levelname)s] - %(message)s', datefmt='%Y-%m-%d %H:%M:%S')
logger = logging.getLogger("SCS_Core")
logging.getLogger("httpx").setLevel(logging.WARNING); logging.getLogger("supabase").setLevel(logging.WARNING)
logging.getLogger("watchfiles").setLevel(logging.WARNING)

# --- Configuration Validation Checks ---
logger.info(f"Core Settings loaded. Log Level: {log_level_str}")
if not settings.SUPABASE_URL or not settings.SUPABASE_KEY: logger.warning("Supabase URL/Key missing.")
if not settings.SUPABASE_SERVICE_KEY: logger.warning("Supabase Service Key missing. Storage uploads will fail.")
if not settings.API_GATEWAY_KEY: logger.info("API_GATEWAY_KEY not set, gateway key check disabled.")

try: assert settings.UPLOAD_MAX_ATTEMPTS > 0; logger.info(f"Upload Config: Max Attempts={settings.UPLOAD_MAX_ATTEMPTS}, Retry Delay={settings.UPLOAD_RETRY_DELAY_SECONDS}s")
except AssertionError: logger.error(f"Invalid UPLOAD_MAX_ATTEMPTS: {settings.UPLOAD_MAX_ATTEMPTS}.")
if settings.DEFAULT_MAX_UPLOAD_BYTES <= 0 or settings.AVATAR_MAX_UPLOAD_BYTES <= 0:
    logger.error(f"Invalid upload size limits: default={settings.DEFAULT_MAX_UPLOAD_BYTES}, avatar={settings.AVATAR_MAX_UPLOAD_BYTES}.")
else:
    logger.info(f"Upload Size Limits: default={settings.DEFAULT_MAX_UPLOAD_BYTES // MB}MB, avatar={settings.AVATAR_MAX_UPLOAD_BYTES // MB}MB")
logger.info(f"Compensating delete on link failure: {settings.COMPENSATE_ON_LINK_FAILURE}")
