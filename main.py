from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mealplan.logging_utils import setup_logging
from mealplan.routes import analyzer_routes, meal_plan_routes

setup_logging()

app = FastAPI(title="Meal Plan Engine")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000"],  # frontend origin(s)
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include Routers
app.include_router(meal_plan_routes.router, prefix="/meal-plans", tags=["Meal Plans"])
app.include_router(analyzer_routes.router, prefix="/recipes", tags=["Recipes"])


@app.get("/")
def read_root():
    return {"message": "Meal Plan Engine Running!"}
