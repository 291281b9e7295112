# mealplan/dependencies.py
import os
import threading
from typing import Optional

from mealplan.config import Settings, get_settings
from mealplan.database import get_openai_client, get_pinecone_index, get_redis_client
from mealplan.logging_utils import get_logger
from mealplan.services.circuit_breaker import CircuitBreakerState
from mealplan.services.generation_context import GenerationContextBuilder
from mealplan.services.grounded_planner import GroundedPlanner
from mealplan.services.meal_plan_engine import MealPlanEngine
from mealplan.services.member_directory import RedisMemberDirectory
from mealplan.services.provider_gateway import ProviderGateway
from mealplan.services.recipe_analyzer import RecipeAnalyzer
from mealplan.services.recipe_catalog import (
    InMemoryRecipeCatalog,
    PineconeRecipeCatalog,
    RecipeCatalog,
    openai_embedder,
)
from mealplan.services.response_cache import ResponseCache

logger = get_logger(__name__)

_lock = threading.Lock()
_gateway: Optional[ProviderGateway] = None
_engine: Optional[MealPlanEngine] = None
_analyzer: Optional[RecipeAnalyzer] = None


def build_catalog(settings: Settings, client) -> RecipeCatalog:
    if settings.pinecone_configured and client is not None:
        return PineconeRecipeCatalog(get_pinecone_index(settings), openai_embedder(client))
    if os.path.exists(settings.recipes_path):
        logger.info("Using in-memory recipe catalog from %s", settings.recipes_path)
        return InMemoryRecipeCatalog.from_json_file(settings.recipes_path)
    logger.warning("No recipe store configured; catalog is empty")
    return InMemoryRecipeCatalog([])


def get_gateway() -> ProviderGateway:
    global _gateway
    with _lock:
        if _gateway is None:
            settings = get_settings()
            _gateway = ProviderGateway(
                client=get_openai_client(settings),
                breaker=CircuitBreakerState(cooldown_seconds=settings.cooldown_ms / 1000),
                model=settings.model,
                max_workers=settings.provider_max_workers,
            )
        return _gateway


def get_engine() -> MealPlanEngine:
    global _engine
    gateway = get_gateway()
    with _lock:
        if _engine is None:
            settings = get_settings()
            builder = GenerationContextBuilder(
                catalog=build_catalog(settings, gateway.client),
                directory=RedisMemberDirectory(get_redis_client(settings)),
                max_recipes=settings.max_recipes,
            )
            planner = GroundedPlanner(
                gateway,
                swap_cache=ResponseCache(
                    max_size=settings.swap_cache_max_size,
                    ttl_seconds=settings.swap_cache_ttl_ms / 1000,
                ),
                max_recipes=settings.max_recipes,
                plan_timeout_s=settings.plan_timeout_ms / 1000,
                swap_timeout_s=settings.swap_timeout_ms / 1000,
            )
            _engine = MealPlanEngine(builder, planner)
        return _engine


def get_analyzer() -> RecipeAnalyzer:
    global _analyzer
    gateway = get_gateway()
    with _lock:
        if _analyzer is None:
            settings = get_settings()
            _analyzer = RecipeAnalyzer(
                gateway,
                cache=ResponseCache(
                    max_size=settings.analysis_cache_max_size,
                    ttl_seconds=settings.analysis_cache_ttl_ms / 1000,
                ),
                timeout_s=settings.analysis_timeout_ms / 1000,
            )
        return _analyzer
