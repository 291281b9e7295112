# mealplan/routes/meal_plan_routes.py
from fastapi import APIRouter, Depends, Query

from mealplan.controllers.meal_plan_controller import MealPlanController
from mealplan.dependencies import get_engine
from mealplan.models.meal import GeneratePlanInput, SwapMealInput
from mealplan.services.meal_plan_engine import MealPlanEngine

router = APIRouter()

@router.post("/generate", status_code=201)
def generate_plan(
    plan_input: GeneratePlanInput,
    customer_id: str = Query(..., min_length=1),
    engine: MealPlanEngine = Depends(get_engine),
):
    """ Generate a meal plan for the given household members """
    return MealPlanController.generate_plan(engine, customer_id, plan_input)

@router.post("/swap")
def swap_meal(
    swap_input: SwapMealInput,
    customer_id: str = Query(..., min_length=1),
    engine: MealPlanEngine = Depends(get_engine),
):
    """ Replace one meal of a plan """
    return MealPlanController.swap_meal(engine, customer_id, swap_input)
