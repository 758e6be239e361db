"""Supabase client for the auth proxy routes."""

from typing import Optional
from fastapi import HTTPException, status
from supabase import create_client, Client
from moodboard.config import settings
from moodboard.logging_config import logger


class SupabaseClient:
    """Process-wide Supabase client."""

    _instance: Optional[Client] = None

    @classmethod
    def get_client(cls) -> Client:
        """Get or create Supabase client instance.

        Raises:
            ValueError: If SUPABASE_URL or SUPABASE_KEY are not configured
        """
        if cls._instance is None:
            if not settings.supabase_url or not settings.supabase_key:
                raise ValueError("SUPABASE_URL and SUPABASE_KEY must be configured")
            try:
                cls._instance = create_client(
                    supabase_url=settings.supabase_url,
                    supabase_key=settings.supabase_key,
                )
                logger.info("Supabase client initialized", supabase_url=settings.supabase_url)
            except Exception as e:
                logger.error("Failed to initialize Supabase client", error=str(e))
                raise

        return cls._instance


def get_supabase() -> Client:
    """Dependency injection helper for FastAPI routes."""
    try:
        return SupabaseClient.get_client()
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e),
        )
