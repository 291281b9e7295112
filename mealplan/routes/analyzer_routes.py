# mealplan/routes/analyzer_routes.py
from fastapi import APIRouter, Depends

from mealplan.controllers.meal_plan_controller import AnalyzerController
from mealplan.dependencies import get_analyzer
from mealplan.services.recipe_analyzer import RecipeAnalyzer

router = APIRouter()

@router.post("/analyze")
def analyze_recipe(payload: dict, analyzer: RecipeAnalyzer = Depends(get_analyzer)):
    """ Extract nutrition, allergens and diets from free recipe text """
    return AnalyzerController.analyze_recipe(analyzer, payload)
