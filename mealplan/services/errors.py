# mealplan/services/errors.py
from typing import Optional


class MealPlanError(Exception):
    """Base error for the planning engine. ``status_code`` maps onto HTTP."""

    status_code = 500
    retry_after: Optional[int] = None

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def __str__(self) -> str:
        return self.message


class CircuitOpen(MealPlanError):
    status_code = 503

    def __init__(self, message: str, retry_after: int):
        super().__init__(message)
        self.retry_after = retry_after


class ProviderTimeout(MealPlanError):
    status_code = 504


class RateLimited(MealPlanError):
    status_code = 429


class ProviderError(MealPlanError):
    status_code = 502


class ProviderNotConfigured(ProviderError):
    status_code = 503


class MalformedResponse(MealPlanError):
    status_code = 502


class NoValidAssignments(MealPlanError):
    status_code = 502


class PlannerCallFailed(MealPlanError):
    """A provider-side failure re-raised with a human-readable prefix."""

    def __init__(self, prefix: str, cause: MealPlanError):
        super().__init__(f"{prefix}: {cause.message}", status_code=cause.status_code)
        self.cause = cause

    @property
    def retry_after(self) -> Optional[int]:
        return getattr(self.cause, "retry_after", None)


class CatalogEmpty(MealPlanError):
    status_code = 422


class PlanGenerationFailed(MealPlanError):
    status_code = 422


class AnalysisFailed(MealPlanError):
    status_code = 502

    def __init__(self, message: str, status_code: Optional[int] = None, retry_after: Optional[int] = None):
        super().__init__(message, status_code)
        self.retry_after = retry_after
