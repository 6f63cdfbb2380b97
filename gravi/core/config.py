"""Application configuration helpers."""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_LLM_API_URL = "https://api.groq.com/openai/v1/chat/completions"
DEFAULT_VISION_MODEL = "meta-llama/llama-4-scout-17b-16e-instruct"
DEFAULT_BULK_LLM_API_URL = "https://router.huggingface.co/v1/chat/completions"
DEFAULT_BULK_VISION_MODEL = "Qwen/Qwen3.5-397B-A17B:novita"


class ConfigError(RuntimeError):
    """Raised when mandatory configuration is missing."""


@dataclass(frozen=True)
class Settings:
    google_places_api_key: str
    llm_api_key: str
    database_url: str = ""
    llm_api_url: str = DEFAULT_LLM_API_URL
    vision_model: str = DEFAULT_VISION_MODEL
    summary_model: str = DEFAULT_VISION_MODEL
    bulk_llm_api_key: str = ""
    bulk_llm_api_url: str = DEFAULT_BULK_LLM_API_URL
    bulk_vision_model: str = DEFAULT_BULK_VISION_MODEL
    google_drive_api_key: str = ""
    worker_port: int = 9000
    http_timeout: float = 15.0
    max_images: int = 4
    max_reviews: int = 10
    location_bias_radius: int = 50
    bulk_batch_size: int = 3
    bulk_batch_delay: float = 2.0


def require(settings: Settings, field_name: str, env_name: str) -> str:
    """Return a settings value or raise ConfigError naming the env variable."""
    value = getattr(settings, field_name)
    if not value:
        raise ConfigError(f"{env_name} must be set in the environment.")
    return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    google_places_api_key = os.getenv("GOOGLE_PLACES_API_KEY", "")
    llm_api_key = os.getenv("GROQ_API_KEY", "")
    database_url = os.getenv("DATABASE_URL", "")
    vision_model = os.getenv("VISION_MODEL") or DEFAULT_VISION_MODEL
    bulk_llm_api_key = os.getenv("HF_TOKEN", "")
    google_drive_api_key = os.getenv("GOOGLE_DRIVE_API_KEY") or google_places_api_key

    if not google_places_api_key:
        logger.warning("GOOGLE_PLACES_API_KEY is not configured; place resolution will fail.")
    if not llm_api_key:
        logger.warning("GROQ_API_KEY is not configured; vision and review models will fail.")
    if not bulk_llm_api_key:
        logger.warning("HF_TOKEN is not configured; bulk folder analysis will fail.")
    if not database_url:
        logger.warning("DATABASE_URL is not set; analysis records will not be persisted.")

    return Settings(
        google_places_api_key=google_places_api_key,
        llm_api_key=llm_api_key,
        database_url=database_url,
        llm_api_url=os.getenv("LLM_API_URL") or DEFAULT_LLM_API_URL,
        vision_model=vision_model,
        summary_model=os.getenv("SUMMARY_MODEL") or vision_model,
        bulk_llm_api_key=bulk_llm_api_key,
        bulk_llm_api_url=os.getenv("BULK_LLM_API_URL") or DEFAULT_BULK_LLM_API_URL,
        bulk_vision_model=os.getenv("BULK_VISION_MODEL") or DEFAULT_BULK_VISION_MODEL,
        google_drive_api_key=google_drive_api_key,
        worker_port=int(os.getenv("WORKER_PORT", "9000")),
        http_timeout=float(os.getenv("HTTP_TIMEOUT_SECONDS", "15")),
        max_images=int(os.getenv("MAX_IMAGES", "4")),
        max_reviews=int(os.getenv("MAX_REVIEWS", "10")),
        location_bias_radius=int(os.getenv("LOCATION_BIAS_RADIUS_M", "50")),
        bulk_batch_size=int(os.getenv("BULK_BATCH_SIZE", "3")),
        bulk_batch_delay=float(os.getenv("BULK_BATCH_DELAY_SECONDS", "2")),
    )
