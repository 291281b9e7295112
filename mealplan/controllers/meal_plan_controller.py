from fastapi import HTTPException

from mealplan.models.meal import GeneratePlanInput, SwapMealInput
from mealplan.services.errors import MealPlanError
from mealplan.services.meal_plan_engine import MealPlanEngine
from mealplan.services.recipe_analyzer import RecipeAnalyzer


def to_http_exception(error: MealPlanError) -> HTTPException:
    headers = None
    if error.retry_after:
        headers = {"Retry-After": str(error.retry_after)}
    return HTTPException(status_code=error.status_code, detail=error.message, headers=headers)


class MealPlanController:

    @staticmethod
    def generate_plan(engine: MealPlanEngine, customer_id: str, plan_input: GeneratePlanInput):
        """ Generate a plan; the rule-based planner covers for an unavailable AI path """
        try:
            result = engine.generate(customer_id, plan_input)
        except MealPlanError as e:
            raise to_http_exception(e)
        return result.model_dump(mode="json")

    @staticmethod
    def swap_meal(engine: MealPlanEngine, customer_id: str, swap_input: SwapMealInput):
        try:
            assignment = engine.swap(customer_id, swap_input)
        except MealPlanError as e:
            raise to_http_exception(e)
        return {"item": assignment.model_dump(mode="json"), "reasoning": assignment.rationale}


class AnalyzerController:

    @staticmethod
    def analyze_recipe(analyzer: RecipeAnalyzer, payload: dict):
        text = payload.get("text")
        if not isinstance(text, str) or not text.strip():
            raise HTTPException(status_code=400, detail="Missing recipe text")
        try:
            analysis = analyzer.analyze(text)
        except MealPlanError as e:
            raise to_http_exception(e)
        return {"analysis": analysis.model_dump(mode="json")}
