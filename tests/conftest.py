"""
Pytest Configuration and Fixtures
=================================

Shared fixtures for the engine tests:
- fake clock for cooldown / cache expiry
- mocked OpenAI client wired into a real ProviderGateway
- recipe / member factories

No test talks to a real provider, Redis or Pinecone.
"""

import json
from datetime import date
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from mealplan.models.meal import MemberConstraintProfile, PlanGenerationRequest, RecipeCandidate
from mealplan.services.circuit_breaker import CircuitBreakerState
from mealplan.services.grounded_planner import GroundedPlanner
from mealplan.services.provider_gateway import ProviderGateway
from mealplan.services.response_cache import ResponseCache


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def chat_response(content, model: str = "test-model"):
    """Shape of an OpenAI chat completion, enough for the gateway."""
    if not isinstance(content, str) and content is not None:
        content = json.dumps(content)
    return SimpleNamespace(
        model=model,
        choices=[SimpleNamespace(message=SimpleNamespace(content=content), finish_reason="stop")],
    )


class FakeStatusError(Exception):
    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def breaker(fake_clock):
    return CircuitBreakerState(cooldown_seconds=120, clock=fake_clock)


@pytest.fixture
def llm_client():
    return MagicMock()


@pytest.fixture
def gateway(llm_client, breaker):
    gw = ProviderGateway(llm_client, breaker, model="test-model", max_workers=2, grace_seconds=0.2)
    yield gw
    gw.shutdown()


@pytest.fixture
def swap_cache(fake_clock):
    return ResponseCache(max_size=50, ttl_seconds=1800, clock=fake_clock)


@pytest.fixture
def planner(gateway, swap_cache):
    return GroundedPlanner(gateway, swap_cache, max_recipes=150, plan_timeout_s=2, swap_timeout_s=2)


@pytest.fixture
def make_recipe():
    def _make(rid: str, meal_type=None, **kwargs) -> RecipeCandidate:
        kwargs.setdefault("title", f"Recipe {rid}")
        return RecipeCandidate(id=rid, meal_type=meal_type, **kwargs)
    return _make


@pytest.fixture
def make_member():
    def _make(mid: str = "m1", **kwargs) -> MemberConstraintProfile:
        return MemberConstraintProfile(member_id=mid, **kwargs)
    return _make


@pytest.fixture
def make_request(make_member):
    def _make(recipes, start=date(2026, 3, 2), end=date(2026, 3, 4), meals=("breakfast",), **kwargs):
        kwargs.setdefault("members", [make_member()])
        return PlanGenerationRequest(
            recipes=list(recipes),
            start_date=start,
            end_date=end,
            meals_per_day=list(meals),
            **kwargs,
        )
    return _make


@pytest.fixture
def respond():
    """Build a chat completion payload (dict -> JSON string)."""
    return chat_response
