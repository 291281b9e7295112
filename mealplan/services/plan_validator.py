# mealplan/services/plan_validator.py
from datetime import date
from typing import Collection, Iterable, List, Optional

from mealplan.logging_utils import get_logger
from mealplan.models.meal import ALLOWED_MEAL_TYPES, MealAssignment, RecipeCandidate, normalize_meal_type
from mealplan.services.errors import NoValidAssignments

logger = get_logger(__name__)


def validate_assignments(
    raw: Iterable[MealAssignment],
    catalog: Iterable[RecipeCandidate],
    allowed_meal_types: Collection[str] = ALLOWED_MEAL_TYPES,
    allowed_dates: Optional[Collection[date]] = None,
) -> List[MealAssignment]:
    """
    Keep the assignments that reference a catalog recipe and an allowed meal type.

    Meal types are lower-cased first. When ``allowed_dates`` is given, entries
    outside those dates are dropped too. Only the first assignment of each
    (date, meal type) slot is kept.
    """
    valid_ids = {r.id for r in catalog}
    allowed = {normalize_meal_type(m) for m in allowed_meal_types}
    dates = set(allowed_dates) if allowed_dates is not None else None

    out: List[MealAssignment] = []
    filled = set()
    dropped = 0
    for a in raw:
        meal_type = normalize_meal_type(a.meal_type)
        slot = (a.date, meal_type)
        if (
            a.recipe_id not in valid_ids
            or meal_type not in allowed
            or (dates is not None and a.date not in dates)
            or slot in filled
        ):
            dropped += 1
            continue
        filled.add(slot)
        out.append(a if meal_type == a.meal_type else a.model_copy(update={"meal_type": meal_type}))

    if dropped:
        logger.warning("Validator dropped %d of %d proposed assignments", dropped, dropped + len(out))
    return out


def require_valid_assignments(
    raw: Iterable[MealAssignment],
    catalog: Iterable[RecipeCandidate],
    allowed_meal_types: Collection[str] = ALLOWED_MEAL_TYPES,
    allowed_dates: Optional[Collection[date]] = None,
) -> List[MealAssignment]:
    valid = validate_assignments(raw, catalog, allowed_meal_types, allowed_dates)
    if not valid:
        raise NoValidAssignments("LLM returned invalid recipe or meal type selections")
    return valid
