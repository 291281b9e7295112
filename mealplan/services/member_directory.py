# mealplan/services/member_directory.py
import json
from typing import Dict, Iterable, List, Optional

from mealplan.logging_utils import get_logger
from mealplan.models.meal import MemberConstraintProfile

logger = get_logger(__name__)

LOW_RATING_THRESHOLD = 2


def _profile_key(member_id: str) -> str:
    return f"member:{member_id}:profile"


def _ratings_key(customer_id: str) -> str:
    return f"customer:{customer_id}:recipe_ratings"


class MemberDirectory:
    """Lookup of household member constraints and a customer's recipe ratings."""

    def get_constraint_profiles(self, member_ids: Iterable[str]) -> Dict[str, MemberConstraintProfile]:
        raise NotImplementedError

    def get_low_rated_recipe_ids(self, customer_id: str, threshold: int = LOW_RATING_THRESHOLD) -> List[str]:
        raise NotImplementedError

    def profiles_for(self, member_ids: Iterable[str]) -> List[MemberConstraintProfile]:
        """Profiles in ``member_ids`` order; unknown members get an unconstrained profile."""
        member_ids = list(member_ids)
        found = self.get_constraint_profiles(member_ids)
        return [found.get(mid) or MemberConstraintProfile(member_id=mid) for mid in member_ids]


class InMemoryMemberDirectory(MemberDirectory):
    def __init__(self, profiles: Iterable[MemberConstraintProfile] = (),
                 ratings: Optional[Dict[str, Dict[str, int]]] = None):
        self._profiles = {p.member_id: p for p in profiles}
        self._ratings = {cid: dict(r) for cid, r in (ratings or {}).items()}

    def get_constraint_profiles(self, member_ids: Iterable[str]) -> Dict[str, MemberConstraintProfile]:
        return {mid: self._profiles[mid] for mid in member_ids if mid in self._profiles}

    def get_low_rated_recipe_ids(self, customer_id: str, threshold: int = LOW_RATING_THRESHOLD) -> List[str]:
        ratings = self._ratings.get(customer_id, {})
        return [rid for rid, rating in ratings.items() if rating <= threshold]

    def rate_recipe(self, customer_id: str, recipe_id: str, rating: int) -> None:
        self._ratings.setdefault(customer_id, {})[recipe_id] = rating


class RedisMemberDirectory(MemberDirectory):
    """
    Profiles are JSON documents at ``member:{id}:profile``.
    Ratings live in the hash ``customer:{id}:recipe_ratings`` (recipe id -> 1..5).
    """

    def __init__(self, redis_client):
        self.redis = redis_client

    def save_profile(self, profile: MemberConstraintProfile) -> None:
        self.redis.set(_profile_key(profile.member_id), profile.model_dump_json())

    def get_constraint_profiles(self, member_ids: Iterable[str]) -> Dict[str, MemberConstraintProfile]:
        member_ids = list(member_ids)
        if not member_ids:
            return {}

        raw_values = self.redis.mget([_profile_key(mid) for mid in member_ids])
        out: Dict[str, MemberConstraintProfile] = {}
        for mid, raw in zip(member_ids, raw_values):
            if not raw:
                continue
            try:
                data = json.loads(raw)
                if not isinstance(data, dict):
                    raise ValueError("profile is not a JSON object")
                data["member_id"] = mid
                out[mid] = MemberConstraintProfile.model_validate(data)
            except ValueError as e:
                logger.warning("Ignoring unreadable profile for member %s: %s", mid, e)
        return out

    def rate_recipe(self, customer_id: str, recipe_id: str, rating: int) -> None:
        if not 1 <= int(rating) <= 5:
            raise ValueError("rating must be between 1 and 5")
        self.redis.hset(_ratings_key(customer_id), recipe_id, int(rating))

    def get_low_rated_recipe_ids(self, customer_id: str, threshold: int = LOW_RATING_THRESHOLD) -> List[str]:
        ratings = self.redis.hgetall(_ratings_key(customer_id)) or {}
        out = []
        for rid, value in ratings.items():
            try:
                if int(value) <= threshold:
                    out.append(rid)
            except (TypeError, ValueError):
                continue
        return out
