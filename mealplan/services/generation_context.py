# mealplan/services/generation_context.py
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from mealplan.logging_utils import get_logger
from mealplan.models.meal import (
    CatalogFilters,
    GeneratePlanInput,
    MemberConstraintProfile,
    PlanGenerationRequest,
    RecipeCandidate,
)
from mealplan.services.errors import CatalogEmpty
from mealplan.services.member_directory import MemberDirectory
from mealplan.services.recipe_catalog import RecipeCatalog

logger = get_logger(__name__)

SWAP_ALTERNATIVES_LIMIT = 30


def _dedupe(ids: Iterable[str]) -> List[str]:
    seen = set()
    out = []
    for i in ids:
        if i and i not in seen:
            seen.add(i)
            out.append(i)
    return out


def household_allergens(members: Sequence[MemberConstraintProfile]) -> set:
    return {a.strip().lower() for m in members for a in m.allergens if a and a.strip()}


def filter_allergen_safe(recipes: Iterable[RecipeCandidate],
                         members: Sequence[MemberConstraintProfile]) -> List[RecipeCandidate]:
    """Drop every recipe containing an allergen of any member."""
    blocked = household_allergens(members)
    if not blocked:
        return list(recipes)
    return [r for r in recipes if not blocked.intersection(a.lower() for a in r.allergens)]


@dataclass(frozen=True)
class GenerationContext:
    request: PlanGenerationRequest
    cuisine_fallback_applied: bool = False


class GenerationContextBuilder:
    """Collects member constraints and the filtered catalog into one planning request."""

    def __init__(self, catalog: RecipeCatalog, directory: MemberDirectory, max_recipes: int = 150):
        self.catalog = catalog
        self.directory = directory
        self.max_recipes = max_recipes

    def build(self, customer_id: str, plan_input: GeneratePlanInput) -> GenerationContext:
        prefs = plan_input.preferences
        members = self.directory.profiles_for(plan_input.member_ids)

        low_rated = self.directory.get_low_rated_recipe_ids(customer_id)
        excluded = _dedupe(list(low_rated) + list(prefs.exclude_recipe_ids))

        preferred = list(prefs.cuisines)
        cuisine_ids = self.catalog.resolve_cuisine_ids(preferred) if preferred else []
        cuisine_fallback_applied = bool(preferred) and not cuisine_ids

        recipes = self._fetch(members, excluded, prefs.max_cook_time, cuisine_ids, self.max_recipes)

        # Preferred cuisines are soft: retry without them before giving up
        if cuisine_ids and not recipes:
            logger.info("No recipes for cuisines %s, retrying without cuisine filter", preferred)
            recipes = self._fetch(members, excluded, prefs.max_cook_time, [], self.max_recipes)
            cuisine_fallback_applied = bool(recipes)

        if not recipes:
            raise CatalogEmpty("No recipes available matching the given constraints. Try relaxing your filters.")

        request = PlanGenerationRequest(
            members=members,
            recipes=recipes,
            start_date=plan_input.start_date,
            end_date=plan_input.end_date,
            meals_per_day=list(plan_input.meals_per_day),
            budget_amount=plan_input.budget_amount,
            budget_currency=plan_input.budget_currency,
            max_cook_time=prefs.max_cook_time,
            preferred_cuisines=preferred,
            exclude_recipe_ids=excluded,
        )
        logger.info(
            "Planning context: members=%d recipes=%d excluded=%d cuisine_fallback=%s",
            len(members), len(recipes), len(excluded), cuisine_fallback_applied,
        )
        return GenerationContext(request=request, cuisine_fallback_applied=cuisine_fallback_applied)

    def swap_alternatives(self, customer_id: str, members: Sequence[MemberConstraintProfile],
                          exclude_ids: Iterable[str], limit: int = SWAP_ALTERNATIVES_LIMIT) -> List[RecipeCandidate]:
        low_rated = self.directory.get_low_rated_recipe_ids(customer_id)
        excluded = _dedupe(list(exclude_ids) + list(low_rated))
        return self._fetch(members, excluded, None, [], limit)

    def _fetch(self, members: Sequence[MemberConstraintProfile], excluded: List[str],
               max_cook_time: Optional[int], cuisine_ids: List[str], limit: int) -> List[RecipeCandidate]:
        fetched = self.catalog.fetch(CatalogFilters(
            exclude_ids=excluded,
            max_cook_time_minutes=max_cook_time,
            cuisine_ids=cuisine_ids,
            exclude_allergens=sorted(household_allergens(members)),
            limit=limit,
        ))
        safe = filter_allergen_safe(fetched, members)
        if len(safe) < len(fetched):
            logger.info("Removed %d recipes conflicting with member allergens", len(fetched) - len(safe))
        return safe
