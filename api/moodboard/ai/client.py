"""OpenAI client dependency."""

from typing import Optional
from fastapi import Depends, HTTPException, status
from openai import AsyncOpenAI
from moodboard.config import settings
from moodboard.logging_config import logger

_client: Optional[AsyncOpenAI] = None


def get_openai_optional() -> Optional[AsyncOpenAI]:
    """Shared AsyncOpenAI client, or None when OPENAI_API_KEY is not set."""
    global _client
    if not settings.openai_api_key:
        return None
    if _client is None:
        _client = AsyncOpenAI(
            api_key=settings.openai_api_key,
            timeout=settings.http_timeout_seconds,
        )
        logger.info("OpenAI client initialized", chat_model=settings.openai_chat_model)
    return _client


def get_openai(client: Optional[AsyncOpenAI] = Depends(get_openai_optional)) -> AsyncOpenAI:
    """Dependency that fails with 503 when OpenAI is not configured."""
    if client is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="OpenAI API key not configured. Please set OPENAI_API_KEY environment variable.",
        )
    return client
