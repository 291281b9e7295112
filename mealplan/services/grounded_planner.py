# mealplan/services/grounded_planner.py
import json
import math
import re
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from mealplan.logging_utils import get_logger
from mealplan.models.meal import (
    MealAssignment,
    MemberConstraintProfile,
    PlanGenerationRequest,
    PlanResult,
    RecipeCandidate,
    SwapSuggestion,
)
from mealplan.services.errors import MalformedResponse, MealPlanError, PlannerCallFailed
from mealplan.services.provider_gateway import ProviderGateway
from mealplan.services.response_cache import ResponseCache, cache_key

logger = get_logger(__name__)

MAX_REASONING_CHARS = 500

PLAN_SYSTEM_PROMPT = """You are an expert meal planner and nutritionist. Generate a structured meal plan as JSON.

STRICT RULES:
1. Only use recipe IDs from provided_recipes. Never invent recipes.
2. ZERO allergen violations: if ANY member is allergic to something, exclude ALL recipes containing that allergen.
3. Stay within the budget if one is provided.
4. Meet each member's calorie/macro targets within 10%.
5. No repeat recipes within the plan unless there are fewer recipes than meal slots.
6. Balance variety across cuisines and meal types.
7. Respect the cooking time limit.
8. For each meal, estimate the grocery cost in the given currency.

Return ONLY valid JSON with this exact schema:
{
  "meals": [
    {
      "date": "YYYY-MM-DD",
      "mealType": "breakfast|lunch|dinner|snack",
      "recipeId": "string",
      "servings": number,
      "estimatedCost": number_or_null,
      "reasoning": "brief explanation"
    }
  ],
  "totalEstimatedCost": number_or_null,
  "planSummary": "brief overall plan summary"
}"""

SWAP_SYSTEM_PROMPT = """You are an expert meal planner. Suggest a replacement meal from the alternatives provided.

RULES:
1. Only pick from the provided alternatives.
2. Respect all allergen constraints.
3. Keep a similar nutrition profile to the replaced meal.
4. Consider the reason for the swap if provided.
5. Pick something different from the current recipe.

Return ONLY valid JSON:
{
  "recipeId": "string",
  "servings": number,
  "estimatedCost": number_or_null,
  "reasoning": "why this is a good swap"
}"""


# ---------- untrusted output helpers ----------

def _strip_code_fence(text: str) -> str:
    txt = text.strip()
    if txt.startswith("```"):
        txt = re.sub(r"^```[a-zA-Z0-9_-]*\s*", "", txt, count=1)
        txt = re.sub(r"\s*```$", "", txt, count=1).strip()
    return txt


def parse_json_object(content: str) -> Dict[str, Any]:
    try:
        data = json.loads(_strip_code_fence(content))
    except (ValueError, RecursionError) as e:
        logger.error("JSON parse error: %s. Content: %s", e, content[:500])
        raise MalformedResponse(f"Failed to parse LLM response as JSON: {e}")
    if not isinstance(data, dict):
        raise MalformedResponse("LLM response is not a JSON object")
    return data


def _text(value: Any) -> str:
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        return ""
    return str(value).strip()


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None
    return num if math.isfinite(num) else None


def _servings(value: Any) -> int:
    num = _number(value)
    if num is None or num < 1:
        return 1
    return int(num)


def _cost(value: Any) -> Optional[float]:
    num = _number(value)
    if num is None or num < 0:
        return None
    return round(num, 2)


def _reasoning(value: Any, default: str = "") -> str:
    if not isinstance(value, str) or not value.strip():
        return default
    return value.strip()[:MAX_REASONING_CHARS]


def parse_meal_entry(entry: Any) -> MealAssignment:
    if not isinstance(entry, dict):
        raise MalformedResponse("Invalid meal entry: expected an object")

    recipe_id = _text(entry.get("recipeId"))
    raw_date = _text(entry.get("date"))
    meal_type = _text(entry.get("mealType"))
    if not (recipe_id and raw_date and meal_type):
        raise MalformedResponse("Invalid meal entry: missing required fields")

    try:
        day = date.fromisoformat(raw_date[:10])
    except ValueError:
        raise MalformedResponse(f"Invalid meal entry: bad date {raw_date[:20]!r}")

    return MealAssignment(
        date=day,
        meal_type=meal_type,
        recipe_id=recipe_id,
        servings=_servings(entry.get("servings")),
        estimated_cost=_cost(entry.get("estimatedCost")),
        rationale=_reasoning(entry.get("reasoning")),
    )


# ---------- prompt payloads ----------

def member_summary(m: MemberConstraintProfile) -> Dict[str, Any]:
    return {
        "name": m.name,
        "age": m.age,
        "allergens": list(m.allergens),
        "diets": list(m.diets),
        "conditions": list(m.conditions),
        "calorieTarget": m.calorie_target,
        "proteinTargetG": m.protein_target_g,
        "carbsTargetG": m.carbs_target_g,
        "fatTargetG": m.fat_target_g,
    }


def recipe_summary(r: RecipeCandidate, include_tags: bool = True) -> Dict[str, Any]:
    out = {
        "id": r.id,
        "title": r.title,
        "calories": r.calories,
        "proteinG": r.protein_g,
        "carbsG": r.carbs_g,
        "fatG": r.fat_g,
        "cookTime": r.cook_time_minutes,
        "allergens": list(r.allergens),
    }
    if include_tags:
        out.update({"mealType": r.meal_type, "cuisine": r.cuisine, "diets": list(r.diets)})
    return out


class GroundedPlanner:
    """Builds provider requests for plans and swaps and normalises what comes back."""

    def __init__(
        self,
        gateway: ProviderGateway,
        swap_cache: ResponseCache,
        max_recipes: int = 150,
        plan_timeout_s: float = 30.0,
        swap_timeout_s: float = 15.0,
    ):
        self.gateway = gateway
        self.swap_cache = swap_cache
        self.max_recipes = max_recipes
        self.plan_timeout_s = plan_timeout_s
        self.swap_timeout_s = swap_timeout_s

    @property
    def model(self) -> str:
        return self.gateway.model

    # ---------- plan ----------

    def build_plan_prompt(self, request: PlanGenerationRequest) -> str:
        recipes = request.recipes[: self.max_recipes]
        prompt = {
            "task": "Create a meal plan grounded ONLY in provided_recipes.",
            "members": [member_summary(m) for m in request.members],
            "date_range": {"start": request.start_date.isoformat(), "end": request.end_date.isoformat()},
            "meals_per_day": list(request.meals_per_day),
            "budget": (
                {"amount": request.budget_amount, "currency": request.budget_currency or "USD", "scope": "entire plan"}
                if request.budget_amount else None
            ),
            "max_cook_time_minutes": request.max_cook_time,
            "preferred_cuisines": list(request.preferred_cuisines),
            "excluded_recipe_ids": list(request.exclude_recipe_ids),
            "provided_recipes": [recipe_summary(r) for r in recipes],
            "rules": [
                "Fill every date in date_range with exactly the meals in meals_per_day.",
                "Every meal MUST use a recipeId from provided_recipes.",
                "Never use excluded_recipe_ids.",
                "Return valid JSON only.",
            ],
        }
        return json.dumps(prompt)

    def generate(self, request: PlanGenerationRequest) -> PlanResult:
        logger.info(
            "Generating plan: members=%d recipes=%d range=%s..%s meals=%s model=%s",
            len(request.members), min(len(request.recipes), self.max_recipes),
            request.start_date, request.end_date, request.meals_per_day, self.model,
        )
        try:
            content = self.gateway.complete_json(
                PLAN_SYSTEM_PROMPT,
                self.build_plan_prompt(request),
                self.plan_timeout_s,
                "meal plan generation",
            )
            return self.parse_plan(content, request)
        except MealPlanError as e:
            logger.error("Meal plan generation failed: %s", e)
            raise PlannerCallFailed("Meal plan generation failed", e) from e

    def parse_plan(self, content: str, request: PlanGenerationRequest) -> PlanResult:
        data = parse_json_object(content)

        meals = data.get("meals")
        if not isinstance(meals, list) or not meals:
            raise MalformedResponse("LLM returned empty meals array")

        max_entries = max(1, request.slot_count()) * 2
        if len(meals) > max_entries:
            logger.warning("LLM returned %d meals for %d slots, reading the first %d",
                           len(meals), request.slot_count(), max_entries)
            meals = meals[:max_entries]

        assignments = [parse_meal_entry(m) for m in meals]
        summary = _reasoning(data.get("planSummary"), default=f"{len(assignments)}-meal plan generated")

        return PlanResult(
            assignments=assignments,
            total_estimated_cost=_cost(data.get("totalEstimatedCost")),
            summary=summary,
            model=self.model,
        )

    # ---------- swap ----------

    def build_swap_prompt(
        self,
        current_recipe_id: str,
        current_recipe_title: str,
        meal_date: date,
        meal_type: str,
        members: Sequence[MemberConstraintProfile],
        alternatives: Sequence[RecipeCandidate],
        reason: Optional[str] = None,
    ) -> str:
        prompt = {
            "task": "Suggest a replacement for this meal.",
            "current_meal": {"id": current_recipe_id, "title": current_recipe_title},
            "date": meal_date.isoformat(),
            "meal_type": meal_type,
            "reason_for_swap": reason,
            "members": [member_summary(m) for m in members],
            "alternatives": [recipe_summary(a, include_tags=False) for a in alternatives],
        }
        return json.dumps(prompt)

    def swap(
        self,
        current_recipe_id: str,
        current_recipe_title: str,
        meal_date: date,
        meal_type: str,
        members: Sequence[MemberConstraintProfile],
        alternatives: Sequence[RecipeCandidate],
        reason: Optional[str] = None,
    ) -> SwapSuggestion:
        key = cache_key("swap", {
            "currentRecipeId": current_recipe_id,
            "mealType": meal_type,
            "alternatives": sorted(a.id for a in alternatives),
            "reason": reason,
        })
        cached = self.swap_cache.get(key)
        if cached is not None:
            logger.debug("Swap cache HIT")
            return cached

        try:
            content = self.gateway.complete_json(
                SWAP_SYSTEM_PROMPT,
                self.build_swap_prompt(current_recipe_id, current_recipe_title, meal_date, meal_type,
                                       members, alternatives, reason),
                self.swap_timeout_s,
                "meal swap",
            )
            suggestion = self.parse_swap(content, alternatives)
        except MealPlanError as e:
            logger.error("Meal swap suggestion failed: %s", e)
            raise PlannerCallFailed("Meal swap suggestion failed", e) from e

        self.swap_cache.set(key, suggestion)
        return suggestion

    @staticmethod
    def parse_swap(content: str, alternatives: Sequence[RecipeCandidate]) -> SwapSuggestion:
        data = parse_json_object(content)
        recipe_id = _text(data.get("recipeId"))
        if not recipe_id:
            raise MalformedResponse("LLM swap response missing recipeId")
        if recipe_id not in {a.id for a in alternatives}:
            raise MalformedResponse("LLM swap response is not one of the provided alternatives")

        return SwapSuggestion(
            recipe_id=recipe_id,
            servings=_servings(data.get("servings")),
            estimated_cost=_cost(data.get("estimatedCost")),
            reasoning=_reasoning(data.get("reasoning"), default="Alternative suggestion"),
        )
