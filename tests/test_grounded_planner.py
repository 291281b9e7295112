"""Generative planner client: prompt payloads and parsing of untrusted output."""

import json
from datetime import date

import pytest

from conftest import FakeStatusError
from mealplan.services.errors import CircuitOpen, MalformedResponse, PlannerCallFailed, RateLimited
from mealplan.services.grounded_planner import parse_json_object, parse_meal_entry


def _meal(recipe_id="A", day="2026-03-02", meal_type="breakfast", **extra):
    entry = {"date": day, "mealType": meal_type, "recipeId": recipe_id}
    entry.update(extra)
    return entry


class TestParseJsonObject:

    @pytest.mark.readonly
    def test_strips_code_fence(self):
        assert parse_json_object('```json\n{"meals": []}\n```') == {"meals": []}

    @pytest.mark.readonly
    def test_rejects_garbage(self):
        with pytest.raises(MalformedResponse):
            parse_json_object("Sure! Here is your plan: {")

    @pytest.mark.readonly
    def test_rejects_excessive_nesting(self):
        depth = 100000
        with pytest.raises(MalformedResponse) as exc_info:
            parse_json_object('{"meals": ' + "[" * depth + "]" * depth + "}")
        assert exc_info.value.message.startswith("Failed to parse LLM response as JSON")

    @pytest.mark.readonly
    def test_rejects_non_object(self):
        with pytest.raises(MalformedResponse):
            parse_json_object("[1, 2, 3]")


class TestParseMealEntry:

    @pytest.mark.readonly
    def test_defaults_optional_fields(self):
        a = parse_meal_entry(_meal())
        assert a.servings == 1
        assert a.estimated_cost is None
        assert a.rationale == ""
        assert a.date == date(2026, 3, 2)

    @pytest.mark.readonly
    def test_repairs_bad_servings_and_cost(self):
        a = parse_meal_entry(_meal(servings=0, estimatedCost="abc"))
        assert a.servings == 1
        assert a.estimated_cost is None

        b = parse_meal_entry(_meal(servings="3", estimatedCost=4.567))
        assert b.servings == 3
        assert b.estimated_cost == 4.57

    @pytest.mark.readonly
    @pytest.mark.parametrize("missing", ["recipeId", "date", "mealType"])
    def test_missing_required_field(self, missing):
        entry = _meal()
        del entry[missing]
        with pytest.raises(MalformedResponse) as exc_info:
            parse_meal_entry(entry)
        assert exc_info.value.message.startswith("Invalid meal entry")

    @pytest.mark.readonly
    def test_non_dict_entry(self):
        with pytest.raises(MalformedResponse):
            parse_meal_entry("A")

    @pytest.mark.readonly
    def test_bad_date(self):
        with pytest.raises(MalformedResponse):
            parse_meal_entry(_meal(day="next tuesday"))

    @pytest.mark.readonly
    def test_long_reasoning_is_trimmed(self):
        a = parse_meal_entry(_meal(reasoning="x" * 5000))
        assert len(a.rationale) == 500


class TestGenerate:

    def test_parses_plan(self, planner, llm_client, respond, make_recipe, make_request):
        request = make_request([make_recipe("A", "breakfast"), make_recipe("B", "breakfast")])
        llm_client.chat.completions.create.return_value = respond({
            "meals": [_meal("A", servings=2, estimatedCost=3.5), _meal("B", day="2026-03-03")],
            "totalEstimatedCost": 7,
            "planSummary": "Two easy breakfasts",
        })

        result = planner.generate(request)

        assert [a.recipe_id for a in result.assignments] == ["A", "B"]
        assert result.assignments[0].servings == 2
        assert result.total_estimated_cost == 7
        assert result.summary == "Two easy breakfasts"
        assert result.model == "test-model"

    def test_default_summary(self, planner, llm_client, respond, make_recipe, make_request):
        llm_client.chat.completions.create.return_value = respond({"meals": [_meal()]})
        result = planner.generate(make_request([make_recipe("A")]))
        assert result.summary == "1-meal plan generated"

    def test_prompt_embeds_constraints(self, planner, llm_client, respond, make_recipe, make_request, make_member):
        request = make_request(
            [make_recipe("A", "breakfast", cuisine="thai", allergens=["soy"])],
            members=[make_member("m1", name="Ana", allergens=["peanuts"], calorie_target=1800)],
            budget_amount=80,
            budget_currency="EUR",
            max_cook_time=30,
            preferred_cuisines=["thai"],
            exclude_recipe_ids=["X"],
        )
        llm_client.chat.completions.create.return_value = respond({"meals": [_meal()]})
        planner.generate(request)

        user_prompt = llm_client.chat.completions.create.call_args.kwargs["messages"][1]["content"]
        payload = json.loads(user_prompt)
        assert payload["members"][0]["allergens"] == ["peanuts"]
        assert payload["members"][0]["calorieTarget"] == 1800
        assert payload["budget"]["currency"] == "EUR"
        assert payload["max_cook_time_minutes"] == 30
        assert payload["excluded_recipe_ids"] == ["X"]
        assert payload["provided_recipes"][0]["id"] == "A"
        assert payload["date_range"] == {"start": "2026-03-02", "end": "2026-03-04"}

    def test_candidate_list_is_capped(self, planner, llm_client, respond, make_recipe, make_request):
        planner.max_recipes = 2
        request = make_request([make_recipe(f"r{i}") for i in range(5)])
        llm_client.chat.completions.create.return_value = respond({"meals": [_meal("r0")]})
        planner.generate(request)

        payload = json.loads(llm_client.chat.completions.create.call_args.kwargs["messages"][1]["content"])
        assert len(payload["provided_recipes"]) == 2

    @pytest.mark.parametrize("content", [
        "not json",
        '{"meals": []}',
        '{"meals": "A,B"}',
        '{"plan": []}',
    ])
    def test_malformed_output_discards_whole_response(self, planner, llm_client, respond, make_recipe,
                                                       make_request, content):
        llm_client.chat.completions.create.return_value = respond(content)
        with pytest.raises(PlannerCallFailed) as exc_info:
            planner.generate(make_request([make_recipe("A")]))

        assert isinstance(exc_info.value.cause, MalformedResponse)
        assert exc_info.value.message.startswith("Meal plan generation failed: ")

    def test_one_bad_entry_fails_everything(self, planner, llm_client, respond, make_recipe, make_request):
        llm_client.chat.completions.create.return_value = respond({"meals": [_meal("A"), {"recipeId": "B"}]})
        with pytest.raises(PlannerCallFailed) as exc_info:
            planner.generate(make_request([make_recipe("A"), make_recipe("B")]))
        assert "Invalid meal entry" in exc_info.value.message

    def test_entry_count_is_bounded(self, planner, llm_client, respond, make_recipe, make_request):
        request = make_request([make_recipe("A")])  # 3 slots
        llm_client.chat.completions.create.return_value = respond({"meals": [_meal("A")] * 100})
        result = planner.generate(request)
        assert len(result.assignments) == 6

    def test_provider_error_is_wrapped_with_status(self, planner, llm_client, make_recipe, make_request):
        llm_client.chat.completions.create.side_effect = FakeStatusError("Too many requests", 429)
        with pytest.raises(PlannerCallFailed) as exc_info:
            planner.generate(make_request([make_recipe("A")]))

        assert isinstance(exc_info.value.cause, RateLimited)
        assert exc_info.value.status_code == 429

    def test_circuit_open_carries_retry_after(self, planner, breaker, make_recipe, make_request):
        breaker.trip("429")
        with pytest.raises(PlannerCallFailed) as exc_info:
            planner.generate(make_request([make_recipe("A")]))
        assert isinstance(exc_info.value.cause, CircuitOpen)
        assert exc_info.value.retry_after == 120


class TestSwap:

    def _swap(self, planner, alternatives, reason=None):
        return planner.swap("cur", "Current", date(2026, 3, 2), "dinner", [], alternatives, reason)

    def test_returns_suggestion(self, planner, llm_client, respond, make_recipe):
        llm_client.chat.completions.create.return_value = respond({"recipeId": "alt2", "reasoning": "lighter"})
        suggestion = self._swap(planner, [make_recipe("alt1"), make_recipe("alt2")])

        assert suggestion.recipe_id == "alt2"
        assert suggestion.servings == 1
        assert suggestion.reasoning == "lighter"

    def test_cached_by_request_fields(self, planner, llm_client, respond, make_recipe):
        llm_client.chat.completions.create.return_value = respond({"recipeId": "alt1"})
        first = self._swap(planner, [make_recipe("alt1"), make_recipe("alt2")], "too spicy")
        second = self._swap(planner, [make_recipe("alt2"), make_recipe("alt1")], "too spicy")

        assert first == second
        assert llm_client.chat.completions.create.call_count == 1

    def test_different_reason_is_a_cache_miss(self, planner, llm_client, respond, make_recipe):
        llm_client.chat.completions.create.return_value = respond({"recipeId": "alt1"})
        self._swap(planner, [make_recipe("alt1")], "too spicy")
        self._swap(planner, [make_recipe("alt1")], "too heavy")
        assert llm_client.chat.completions.create.call_count == 2

    def test_cache_served_during_cooldown(self, planner, llm_client, respond, make_recipe, breaker):
        llm_client.chat.completions.create.return_value = respond({"recipeId": "alt1"})
        self._swap(planner, [make_recipe("alt1")])
        breaker.trip("429")
        assert self._swap(planner, [make_recipe("alt1")]).recipe_id == "alt1"

    def test_missing_recipe_id(self, planner, llm_client, respond, make_recipe):
        llm_client.chat.completions.create.return_value = respond({"reasoning": "hmm"})
        with pytest.raises(PlannerCallFailed) as exc_info:
            self._swap(planner, [make_recipe("alt1")])
        assert "missing recipeId" in exc_info.value.message
        assert exc_info.value.message.startswith("Meal swap suggestion failed")

    def test_suggestion_outside_alternatives_is_rejected_and_not_cached(
            self, planner, llm_client, respond, make_recipe, swap_cache):
        llm_client.chat.completions.create.return_value = respond({"recipeId": "invented"})
        with pytest.raises(PlannerCallFailed):
            self._swap(planner, [make_recipe("alt1")])
        assert len(swap_cache) == 0
