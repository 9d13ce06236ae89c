"""
Tests for key_store.py.

Covers:
  - get(): DB first → env var fallback → None
  - set(): saves to DB, overrides env
  - delete(): removes from DB, falls back to env
  - get_all_keys(): returns all known key names
  - mask(): various masking scenarios
"""
from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio

import database as db
import key_store


@pytest_asyncio.fixture(autouse=True)
async def init_db(tmp_data_dir):
    await db.init_db()


# ── get() ─────────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestGet:
    async def test_db_value_wins_over_env(self, monkeypatch):
        monkeypatch.setenv("EBAY_CLIENT_ID", "id-env")
        await db.set_api_key("ebay_client_id", "id-db")
        result = await key_store.get("ebay_client_id")
        assert result == "id-db"

    async def test_env_var_used_as_fallback(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_VISION_API_KEY", "vision-from-env")
        result = await key_store.get("google_vision_api_key")
        assert result == "vision-from-env"

    async def test_returns_none_when_not_set(self, monkeypatch):
        monkeypatch.delenv("ETSY_API_KEY", raising=False)
        result = await key_store.get("etsy_api_key")
        assert result is None

    async def test_empty_env_value_is_none(self, monkeypatch):
        monkeypatch.setenv("ETSY_API_KEY", "")
        assert await key_store.get("etsy_api_key") is None

    async def test_env_var_name_is_uppercased(self, monkeypatch):
        monkeypatch.setenv("RAPIDAPI_KEY", "rapid-key-value")
        result = await key_store.get("rapidapi_key")
        assert result == "rapid-key-value"

    async def test_db_failure_falls_back_to_env(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        with patch("database.get_api_key", AsyncMock(side_effect=RuntimeError("locked"))):
            assert await key_store.get("openai_api_key") == "sk-env"


# ── set() ─────────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestSetKey:
    async def test_saves_to_db(self):
        await key_store.set("openai_api_key", "sk-test")
        db_val = await db.get_api_key("openai_api_key")
        assert db_val == "sk-test"

    async def test_overrides_env_value(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        await key_store.set("openai_api_key", "sk-db")
        result = await key_store.get("openai_api_key")
        assert result == "sk-db"


# ── delete() ─────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestDeleteKey:
    async def test_removes_from_db(self):
        await key_store.set("etsy_api_key", "etsy-test")
        await key_store.delete("etsy_api_key")
        db_val = await db.get_api_key("etsy_api_key")
        assert db_val is None

    async def test_falls_back_to_env_after_delete(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env-fallback")
        await key_store.set("openai_api_key", "sk-db")
        await key_store.delete("openai_api_key")
        result = await key_store.get("openai_api_key")
        assert result == "sk-env-fallback"


# ── get_all_keys() ────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestGetAllKeys:
    async def test_returns_all_known_keys(self):
        keys = await key_store.get_all_keys()
        expected = [
            "google_vision_api_key",
            "openai_api_key",
            "ebay_client_id",
            "ebay_client_secret",
            "etsy_api_key",
            "rapidapi_key",
        ]
        assert sorted(keys) == sorted(expected)

    async def test_set_key_appears_in_get_all(self):
        await key_store.set("ebay_client_secret", "secret-all-test")
        keys = await key_store.get_all_keys()
        assert keys["ebay_client_secret"] == "secret-all-test"


# ── mask() ────────────────────────────────────────────────────────────────────

class TestMask:
    def test_none_shows_not_set(self):
        assert key_store.mask(None) == "not set"

    def test_empty_shows_not_set(self):
        assert key_store.mask("") == "not set"

    def test_short_key_shows_stars(self):
        assert key_store.mask("sk-ab") == "****"

    def test_exactly_8_chars_shows_stars(self):
        assert key_store.mask("abcdefgh") == "****"

    def test_long_key_shows_partial(self):
        result = key_store.mask("sk-1234567890abcdef")
        # First 4 chars visible
        assert result.startswith("sk-1")
        # Last 4 chars visible
        assert result.endswith("cdef")
        # Middle is masked
        assert "***" in result
        assert len(result) == len("sk-1234567890abcdef")
