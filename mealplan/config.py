# mealplan/config.py
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv(override=True)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    api_key: str = ""
    base_url: Optional[str] = None
    model: str = "gpt-4o-mini"

    max_recipes: int = 150
    plan_timeout_ms: int = 30000
    swap_timeout_ms: int = 15000
    analysis_timeout_ms: int = 60000
    cooldown_ms: int = 120000
    provider_max_workers: int = 8

    swap_cache_ttl_ms: int = 30 * 60 * 1000
    swap_cache_max_size: int = 50
    analysis_cache_ttl_ms: int = 60 * 60 * 1000
    analysis_cache_max_size: int = 200

    redis_host: str = "localhost"
    redis_port: int = 6379

    pinecone_api_key: Optional[str] = None
    pinecone_host: Optional[str] = None
    pinecone_index: Optional[str] = None
    recipes_path: str = "recipes.json"

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            api_key=os.getenv("LITELLM_API_KEY") or os.getenv("OPENAI_API_KEY") or "",
            base_url=os.getenv("LITELLM_BASE_URL") or None,
            model=os.getenv("MEAL_PLAN_LLM_MODEL") or os.getenv("LLM_MODEL") or "gpt-4o-mini",
            max_recipes=_int_env("MEAL_PLAN_MAX_RECIPES", 150),
            plan_timeout_ms=_int_env("MEAL_PLAN_TIMEOUT_MS", 30000),
            swap_timeout_ms=_int_env("MEAL_PLAN_SWAP_TIMEOUT_MS", 15000),
            analysis_timeout_ms=_int_env("RECIPE_ANALYSIS_TIMEOUT_MS", 60000),
            cooldown_ms=_int_env("MEAL_PLAN_LLM_COOLDOWN_MS", 120000),
            provider_max_workers=_int_env("PROVIDER_MAX_WORKERS", 8),
            swap_cache_ttl_ms=_int_env("SWAP_CACHE_TTL_MS", 30 * 60 * 1000),
            swap_cache_max_size=_int_env("SWAP_CACHE_MAX_SIZE", 50),
            analysis_cache_ttl_ms=_int_env("ANALYSIS_CACHE_TTL_MS", 60 * 60 * 1000),
            analysis_cache_max_size=_int_env("ANALYSIS_CACHE_MAX_SIZE", 200),
            redis_host=os.getenv("REDIS_HOST", "localhost"),
            redis_port=_int_env("REDIS_PORT", 6379),
            pinecone_api_key=os.getenv("PINECONE_API_KEY") or None,
            pinecone_host=os.getenv("PINECONE_HOST") or None,
            pinecone_index=os.getenv("PINECONE_INDEX") or None,
            recipes_path=os.getenv("RECIPES_PATH", "recipes.json"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )

    @property
    def pinecone_configured(self) -> bool:
        return bool(self.pinecone_api_key and (self.pinecone_host or self.pinecone_index))


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings
