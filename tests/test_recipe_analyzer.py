"""Recipe analysis: caching on normalised text and failure mapping."""

import pytest

from conftest import FakeStatusError
from mealplan.services.errors import AnalysisFailed
from mealplan.services.recipe_analyzer import RecipeAnalyzer, normalize_recipe_text
from mealplan.services.response_cache import ResponseCache

ANALYSIS = {
    "title": "Pancakes",
    "servings": 4,
    "ingredients": [
        {"qty": 2, "unit": "cup", "item": "flour", "calories_per_unit": 455},
        {"qty": None, "unit": None, "item": ""},
    ],
    "steps": ["Mix", "Fry"],
    "nutrition_per_serving": {"calories": 320, "protein_g": 9, "carbs_g": 50, "fat_g": 8},
    "allergens": ["gluten", "eggs", "dairy"],
    "cuisine": "American",
    "difficulty": "easy",
}


@pytest.fixture
def analysis_cache(fake_clock):
    return ResponseCache(max_size=200, ttl_seconds=3600, clock=fake_clock)


@pytest.fixture
def analyzer(gateway, analysis_cache):
    return RecipeAnalyzer(gateway, analysis_cache, timeout_s=2)


class TestNormalizeRecipeText:

    @pytest.mark.readonly
    def test_case_and_whitespace(self):
        assert normalize_recipe_text("  Two  EGGS\n\tflour ") == "two eggs flour"


class TestRecipeAnalyzer:

    def test_parses_analysis(self, analyzer, llm_client, respond):
        llm_client.chat.completions.create.return_value = respond(ANALYSIS)
        result = analyzer.analyze("2 cups flour, 2 eggs, milk")

        assert result.title == "Pancakes"
        assert result.servings == 4
        assert [i.item for i in result.ingredients] == ["flour"]
        assert result.nutrition_per_serving.calories == 320
        assert "gluten" in result.allergens
        assert llm_client.chat.completions.create.call_args.kwargs["temperature"] == 0.1

    def test_missing_fields_get_defaults(self, analyzer, llm_client, respond):
        llm_client.chat.completions.create.return_value = respond({"title": None, "servings": 0, "steps": []})
        result = analyzer.analyze("water")

        assert result.title == "Untitled Recipe"
        assert result.servings == 1
        assert result.ingredients == []
        assert result.nutrition_per_serving.calories == 0

    def test_equivalent_text_hits_cache(self, analyzer, llm_client, respond):
        llm_client.chat.completions.create.return_value = respond(ANALYSIS)
        first = analyzer.analyze("2 cups Flour,  2 eggs")
        second = analyzer.analyze("2 CUPS flour, 2 eggs\n")

        assert first is second
        assert llm_client.chat.completions.create.call_count == 1

    def test_cache_expires(self, analyzer, llm_client, respond, fake_clock):
        llm_client.chat.completions.create.return_value = respond(ANALYSIS)
        analyzer.analyze("toast")
        fake_clock.advance(3601)
        analyzer.analyze("toast")
        assert llm_client.chat.completions.create.call_count == 2

    def test_long_text_is_truncated_in_prompt(self, analyzer, llm_client, respond):
        llm_client.chat.completions.create.return_value = respond(ANALYSIS)
        analyzer.analyze("a" * 50000)
        user_prompt = llm_client.chat.completions.create.call_args.kwargs["messages"][1]["content"]
        assert len(user_prompt) < 20100

    @pytest.mark.parametrize("text", ["", "   \n"])
    def test_empty_text(self, analyzer, llm_client, text):
        with pytest.raises(AnalysisFailed) as exc_info:
            analyzer.analyze(text)
        assert exc_info.value.status_code == 400
        llm_client.chat.completions.create.assert_not_called()

    def test_bad_json(self, analyzer, llm_client, respond, analysis_cache):
        llm_client.chat.completions.create.return_value = respond("definitely not json")
        with pytest.raises(AnalysisFailed) as exc_info:
            analyzer.analyze("toast")
        assert exc_info.value.message.startswith("LLM analysis failed")
        assert exc_info.value.status_code == 502
        assert len(analysis_cache) == 0

    def test_deeply_nested_json(self, analyzer, llm_client, respond):
        depth = 100000
        llm_client.chat.completions.create.return_value = respond('{"steps": ' + "[" * depth + "]" * depth + "}")
        with pytest.raises(AnalysisFailed) as exc_info:
            analyzer.analyze("toast")
        assert exc_info.value.status_code == 502

    def test_schema_mismatch(self, analyzer, llm_client, respond):
        llm_client.chat.completions.create.return_value = respond({"ingredients": "flour and eggs"})
        with pytest.raises(AnalysisFailed) as exc_info:
            analyzer.analyze("toast")
        assert "schema" in exc_info.value.message

    def test_rate_limit_status_is_kept(self, analyzer, llm_client, breaker):
        llm_client.chat.completions.create.side_effect = FakeStatusError("Too Many Requests", 429)
        with pytest.raises(AnalysisFailed) as exc_info:
            analyzer.analyze("toast")
        assert exc_info.value.status_code == 429
        assert breaker.is_open()
