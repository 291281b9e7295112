# mealplan/database.py
from typing import Optional

import redis
from openai import OpenAI
from pinecone import Pinecone

from mealplan.config import Settings, get_settings


def get_redis_client(settings: Settings = None) -> redis.Redis:
    settings = settings or get_settings()
    return redis.Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        decode_responses=True,  # values come back as str
    )


def get_pinecone_index(settings: Settings = None):
    settings = settings or get_settings()
    if not settings.pinecone_configured:
        return None

    pc = Pinecone(api_key=settings.pinecone_api_key)
    if settings.pinecone_host:
        return pc.Index(host=settings.pinecone_host)
    return pc.Index(settings.pinecone_index)


def get_openai_client(settings: Settings = None) -> Optional[OpenAI]:
    """OpenAI-compatible client (also used against a LiteLLM proxy). None when no key is set."""
    settings = settings or get_settings()
    if not settings.api_key:
        return None
    # The gateway enforces its own timeout and never retries.
    return OpenAI(api_key=settings.api_key, base_url=settings.base_url, max_retries=0)
