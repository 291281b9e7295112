# mealplan/services/recipe_catalog.py
import json
import random
from typing import Any, Callable, Dict, Iterable, List, Optional

from mealplan.logging_utils import get_logger
from mealplan.models.meal import CatalogFilters, RecipeCandidate

logger = get_logger(__name__)

RECIPES_NS = "recipes"
EMBEDDING_MODEL = "text-embedding-3-large"


def _as_list(x) -> List[str]:
    if x is None:
        return []
    if isinstance(x, list):
        return [str(i).strip() for i in x if str(i).strip()]
    if isinstance(x, str):
        return [s.strip() for s in x.split(",") if s.strip()]
    return []


def _cuisine_code(name: str) -> str:
    return " ".join(str(name or "").lower().split())


def _field(obj: Any, name: str, default=None):
    # Pinecone responses are dict-like in some SDK versions and attribute objects in others
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


class RecipeCatalog:
    """
    Source of recipe candidates for a planning request.

    ``fetch`` returns at most ``filters.limit`` recipes in no particular order;
    callers must not depend on the ordering.
    """

    def fetch(self, filters: CatalogFilters) -> List[RecipeCandidate]:
        raise NotImplementedError

    def resolve_cuisine_ids(self, names: Iterable[str]) -> List[str]:
        raise NotImplementedError


class InMemoryRecipeCatalog(RecipeCatalog):
    def __init__(self, recipes: Iterable[RecipeCandidate], rng: Optional[random.Random] = None):
        self._recipes = list(recipes)
        self._rng = rng or random.Random()

    @classmethod
    def from_json_file(cls, path: str) -> "InMemoryRecipeCatalog":
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        recipes = data.get("recipes", data) if isinstance(data, dict) else data
        return cls(RecipeCandidate.model_validate(r) for r in recipes)

    def fetch(self, filters: CatalogFilters) -> List[RecipeCandidate]:
        excluded = set(filters.exclude_ids)
        cuisines = {_cuisine_code(c) for c in filters.cuisine_ids}
        blocked = {a.lower() for a in filters.exclude_allergens}
        max_cook = filters.max_cook_time_minutes

        out = []
        for r in self._recipes:
            if r.id in excluded:
                continue
            if max_cook and r.cook_time_minutes is not None and r.cook_time_minutes > max_cook:
                continue
            if cuisines and _cuisine_code(r.cuisine) not in cuisines:
                continue
            if blocked and blocked.intersection(a.lower() for a in r.allergens):
                continue
            out.append(r)

        self._rng.shuffle(out)
        return out[: filters.limit]

    def resolve_cuisine_ids(self, names: Iterable[str]) -> List[str]:
        known = {_cuisine_code(r.cuisine) for r in self._recipes if r.cuisine}
        resolved: List[str] = []
        for name in names:
            code = _cuisine_code(name)
            if code in known and code not in resolved:
                resolved.append(code)
        return resolved


def openai_embedder(client, model: str = EMBEDDING_MODEL) -> Callable[[List[str]], List[List[float]]]:
    def _embed_texts(texts: List[str]) -> List[List[float]]:
        resp = client.embeddings.create(model=model, input=texts)
        return [d.embedding for d in resp.data]

    return _embed_texts


def _recipe_to_search_text(r: RecipeCandidate) -> str:
    tags = ", ".join(r.diets)
    return (
        f"{r.title}. Meal: {r.meal_type or 'any'}. Cuisine: {r.cuisine or 'any'}. "
        f"Diets: {tags or 'none'}. Time: {r.cook_time_minutes or '?'} minutes."
    )


class PineconeRecipeCatalog(RecipeCatalog):
    """Recipe candidates stored as vectors with a flat metadata projection."""

    def __init__(self, index, embed_texts: Callable[[List[str]], List[List[float]]], namespace: str = RECIPES_NS,
                 rng: Optional[random.Random] = None):
        self.index = index
        self._embed = embed_texts
        self.namespace = namespace
        self._rng = rng or random.Random()

    def upsert(self, recipes: List[RecipeCandidate]) -> Dict[str, Any]:
        if not recipes:
            return {"ok": True, "count": 0}

        embs = self._embed([_recipe_to_search_text(r) for r in recipes])
        vectors = []
        for r, e in zip(recipes, embs):
            meta = {
                "recipe_id": r.id,
                "title": r.title[:500],
                "meal_type": r.meal_type,
                "cuisine": r.cuisine,
                "cuisine_id": _cuisine_code(r.cuisine) if r.cuisine else None,
                "calories": float(r.calories),
                "protein_g": float(r.protein_g),
                "carbs_g": float(r.carbs_g),
                "fat_g": float(r.fat_g),
                "cook_time_minutes": r.cook_time_minutes,
                "allergens": [a.lower() for a in r.allergens][:50],
                "diets": list(r.diets)[:50],
            }
            # Pinecone rejects null metadata values
            meta = {k: v for k, v in meta.items() if v is not None}
            vectors.append((r.id, e, meta))

        self.index.upsert(vectors=vectors, namespace=self.namespace)
        return {"ok": True, "count": len(vectors)}

    def fetch(self, filters: CatalogFilters) -> List[RecipeCandidate]:
        if filters.limit <= 0:
            return []

        query = (
            f"Practical home-cooked recipes. Cuisines: {', '.join(filters.cuisine_ids) or 'any'}. "
            f"Max cook time: {filters.max_cook_time_minutes or 'any'} minutes."
        )
        q_emb = self._embed([query])[0]
        res = self.index.query(
            vector=q_emb,
            top_k=filters.limit,
            include_metadata=True,
            namespace=self.namespace,
            filter=self.metadata_filter(filters),
        )

        out: List[RecipeCandidate] = []
        for m in _field(res, "matches") or []:
            candidate = self._candidate_from_match(m)
            if candidate is not None:
                out.append(candidate)

        self._rng.shuffle(out)
        logger.debug("Catalog fetch returned %d candidates", len(out))
        return out[: filters.limit]

    def resolve_cuisine_ids(self, names: Iterable[str]) -> List[str]:
        resolved: List[str] = []
        for name in names:
            code = _cuisine_code(name)
            if code and code not in resolved:
                resolved.append(code)
        return resolved

    @staticmethod
    def metadata_filter(filters: CatalogFilters) -> Optional[Dict[str, Any]]:
        clauses: List[Dict[str, Any]] = []
        if filters.exclude_ids:
            clauses.append({"recipe_id": {"$nin": list(filters.exclude_ids)}})
        if filters.max_cook_time_minutes:
            clauses.append({"$or": [
                {"cook_time_minutes": {"$lte": filters.max_cook_time_minutes}},
                {"cook_time_minutes": {"$exists": False}},
            ]})
        if filters.cuisine_ids:
            clauses.append({"cuisine_id": {"$in": [_cuisine_code(c) for c in filters.cuisine_ids]}})
        if filters.exclude_allergens:
            clauses.append({"allergens": {"$nin": [a.lower() for a in filters.exclude_allergens]}})

        if not clauses:
            return None
        if len(clauses) == 1:
            return clauses[0]
        return {"$and": clauses}

    @staticmethod
    def _candidate_from_match(m: Any) -> Optional[RecipeCandidate]:
        md = _field(m, "metadata") or {}
        rid = _field(m, "id") or md.get("recipe_id")
        if not rid or not md.get("title"):
            return None

        cook_time = md.get("cook_time_minutes")
        return RecipeCandidate(
            id=str(rid),
            title=str(md.get("title")),
            meal_type=md.get("meal_type"),
            cuisine=md.get("cuisine"),
            calories=float(md.get("calories") or 0),
            protein_g=float(md.get("protein_g") or 0),
            carbs_g=float(md.get("carbs_g") or 0),
            fat_g=float(md.get("fat_g") or 0),
            cook_time_minutes=int(cook_time) if cook_time is not None else None,
            allergens=_as_list(md.get("allergens")),
            diets=_as_list(md.get("diets")),
        )
