# mealplan/services/recipe_analyzer.py
from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError

from mealplan.logging_utils import get_logger
from mealplan.services.errors import AnalysisFailed, MealPlanError
from mealplan.services.grounded_planner import parse_json_object
from mealplan.services.provider_gateway import ProviderGateway
from mealplan.services.response_cache import ResponseCache, cache_key

logger = get_logger(__name__)

MAX_RECIPE_TEXT_CHARS = 20000

RECIPE_ANALYSIS_SYSTEM_PROMPT = """You are a nutrition expert. Extract structured recipe data as JSON.

Required JSON schema:
{"title":"string","servings":int,"ingredients":[{"qty":number|null,"unit":"string|null","item":"string","calories_per_unit":number,"protein_g":number,"carbs_g":number,"fat_g":number}],"steps":["string"],"nutrition_per_serving":{"calories":int,"protein_g":number,"carbs_g":number,"fat_g":number,"sodium_mg":number,"sugar_g":number,"fiber_g":number},"allergens":["string"],"diets_compatible":["string"],"diets_incompatible":["string"],"suggestions":["string"],"cuisine":"string","difficulty":"easy|medium|hard","prep_time_minutes":int,"cook_time_minutes":int}

Rules:
- Estimate nutrition per serving from ingredient quantities
- Allergens to check: gluten, dairy, eggs, fish, shellfish, tree nuts, peanuts, soy, sesame
- Diets: vegan, vegetarian, gluten-free, keto, paleo, etc.
- 2-4 healthier substitution suggestions
- Return ONLY valid JSON"""


class AnalyzedIngredient(BaseModel):
    item: str
    qty: Optional[float] = None
    unit: Optional[str] = None
    calories_per_unit: Optional[float] = None
    protein_g: Optional[float] = None
    carbs_g: Optional[float] = None
    fat_g: Optional[float] = None


class NutritionPerServing(BaseModel):
    calories: float = 0
    protein_g: float = 0
    carbs_g: float = 0
    fat_g: float = 0
    sodium_mg: Optional[float] = None
    sugar_g: Optional[float] = None
    fiber_g: Optional[float] = None


class RecipeAnalysis(BaseModel):
    title: str = "Untitled Recipe"
    servings: int = 1
    ingredients: List[AnalyzedIngredient] = Field(default_factory=list)
    steps: List[str] = Field(default_factory=list)
    nutrition_per_serving: NutritionPerServing = Field(default_factory=NutritionPerServing)
    allergens: List[str] = Field(default_factory=list)
    diets_compatible: List[str] = Field(default_factory=list)
    diets_incompatible: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)
    cuisine: Optional[str] = None
    difficulty: Optional[str] = None
    prep_time_minutes: Optional[int] = None
    cook_time_minutes: Optional[int] = None


def normalize_recipe_text(text: str) -> str:
    """Lower-case and collapse whitespace so trivially different inputs share a cache entry."""
    return " ".join(text.lower().split())


def _drop_empty(data: dict) -> dict:
    # Missing and null fields both fall back to the model defaults
    cleaned = {k: v for k, v in data.items() if v not in (None, "", [])}
    if not isinstance(cleaned.get("servings"), int) or cleaned.get("servings", 1) < 1:
        cleaned.pop("servings", None)
    if isinstance(cleaned.get("ingredients"), list):
        cleaned["ingredients"] = [i for i in cleaned["ingredients"] if isinstance(i, dict) and i.get("item")]
    return cleaned


class RecipeAnalyzer:
    def __init__(self, gateway: ProviderGateway, cache: ResponseCache, timeout_s: float = 60.0):
        self.gateway = gateway
        self.cache = cache
        self.timeout_s = timeout_s

    def analyze(self, text: str) -> RecipeAnalysis:
        if not text or not text.strip():
            raise AnalysisFailed("Recipe text is empty", status_code=400)

        normalized = normalize_recipe_text(text)
        key = cache_key("recipe", normalized)
        cached = self.cache.get(key)
        if cached is not None:
            logger.info("Analysis cache HIT (title=%s)", cached.title)
            return cached

        logger.info("Analysis cache MISS, calling LLM (text length %d)", len(text))
        try:
            content = self.gateway.complete_json(
                RECIPE_ANALYSIS_SYSTEM_PROMPT,
                f"Analyze this recipe:\n\n{text[:MAX_RECIPE_TEXT_CHARS]}",
                self.timeout_s,
                "recipe analysis",
                temperature=0.1,
            )
            analysis = RecipeAnalysis.model_validate(_drop_empty(parse_json_object(content)))
        except ValidationError as e:
            logger.error("Recipe analysis returned an unexpected shape: %s", e)
            raise AnalysisFailed("LLM analysis failed: response did not match the analysis schema") from e
        except MealPlanError as e:
            logger.error("Recipe analysis failed: %s", e)
            raise AnalysisFailed(f"LLM analysis failed: {e.message}", status_code=e.status_code,
                                 retry_after=e.retry_after) from e

        self.cache.set(key, analysis)
        return analysis
