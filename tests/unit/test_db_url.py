"""Tests for database URL normalization."""

import pytest

from moodboard.db import async_database_url


@pytest.mark.parametrize("url,expected", [
    ("postgresql://u:p@db:5432/app", "postgresql+asyncpg://u:p@db:5432/app"),
    ("postgres://u:p@db.supabase.co:6543/postgres", "postgresql+asyncpg://u:p@db.supabase.co:6543/postgres"),
    ("postgresql+asyncpg://u:p@db/app", "postgresql+asyncpg://u:p@db/app"),
    ("sqlite+aiosqlite://", "sqlite+aiosqlite://"),
])
def test_async_database_url(url, expected):
    assert async_database_url(url) == expected
