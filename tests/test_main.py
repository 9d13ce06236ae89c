"""
Tests for main.py — argument parsing and the JSON-printing commands.
"""
from __future__ import annotations

import json
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

import database as db
import main
from errors import InvalidInput
from marketplaces.base import MarketplaceListing
from pricing import summarize_prices


class TestParser:
    def test_appraise_args(self):
        args = main.build_parser().parse_args([
            "appraise", "photo.jpg", "--name", "Pocket watch", "--category", "Watches",
            "--item-id", "42", "--deadline", "10", "--no-save",
        ])
        assert args.image == "photo.jpg"
        assert args.name == "Pocket watch"
        assert args.category == "Watches"
        assert args.item_id == "42"
        assert args.deadline == 10.0
        assert args.no_save is True
        assert args.handler is main.cmd_appraise

    def test_cleanup_default_days(self):
        import config
        args = main.build_parser().parse_args(["cleanup-logs"])
        assert args.days == config.API_LOG_RETENTION_DAYS

    def test_command_required(self):
        with pytest.raises(SystemExit):
            main.build_parser().parse_args([])

    def test_appraise_keywords_flag(self):
        args = main.build_parser().parse_args(["appraise", "--keywords", "art deco lamp"])
        assert args.image is None
        assert args.keywords == "art deco lamp"

    def test_delete_prediction_id_is_int(self):
        args = main.build_parser().parse_args(["delete-prediction", "7"])
        assert args.prediction_id == 7
        assert args.handler is main.cmd_delete_prediction

    def test_keys_subcommand_required(self):
        with pytest.raises(SystemExit):
            main.build_parser().parse_args(["keys"])

    def test_keys_set_args(self):
        args = main.build_parser().parse_args(["keys", "set", "rapidapi_key", "abc"])
        assert (args.key_name, args.value) == ("rapidapi_key", "abc")
        assert args.handler is main.cmd_keys_set


@pytest.mark.asyncio
class TestCommands:
    async def test_api_stats(self, capsys):
        await db.init_db()
        await db.log_api_call("eBay API", "u", "200")

        assert await main.run(["api-stats"]) == 0
        out = json.loads(capsys.readouterr().out)
        assert out["summary"][0]["api_name"] == "eBay API"

    async def test_api_logs_filter(self, capsys):
        await db.init_db()
        await db.log_api_call("eBay API", "u", "200")
        await db.log_api_call("Etsy API", "u", "500")

        assert await main.run(["api-logs", "--api", "Etsy API"]) == 0
        out = json.loads(capsys.readouterr().out)
        assert out["count"] == 1
        assert out["logs"][0]["response_status"] == "500"

    async def test_cleanup_logs(self, capsys):
        assert await main.run(["cleanup-logs", "--days", "7"]) == 0
        out = json.loads(capsys.readouterr().out)
        assert out["deletedCount"] == 0

    async def test_history(self, capsys):
        await db.init_db()
        evidence = [MarketplaceListing("eBay", "Watch", Decimal(100), "https://ebay/1")]
        await db.save_estimate("42", summarize_prices(evidence), evidence)

        assert await main.run(["history", "42"]) == 0
        out = json.loads(capsys.readouterr().out)
        assert out["itemId"] == "42"
        assert out["totalListings"] == 1
        assert out["byPlatform"] == {"eBay": 1}
        assert out["predictions"][0]["predicted_price"] == 100.0

    async def test_appraise_invalid_input_exit_code(self, capsys):
        with patch("appraisal.appraise_item", AsyncMock(side_effect=InvalidInput("nothing to search"))):
            assert await main.run(["appraise"]) == 2
        assert json.loads(capsys.readouterr().out) == {"error": "nothing to search"}

    async def test_appraise_passes_keywords(self, capsys):
        result = MagicMock()
        result.to_dict.return_value = {"keywordsUsed": "art deco"}
        with patch("appraisal.appraise_item", AsyncMock(return_value=result)) as appraise:
            assert await main.run(["appraise", "--keywords", "art deco", "--no-save"]) == 0
        assert appraise.call_args.kwargs["keywords"] == "art deco"
        assert appraise.call_args.kwargs["persist"] is False

    async def test_delete_prediction(self, capsys):
        await db.init_db()
        evidence = [MarketplaceListing("eBay", "Watch", Decimal(100), "https://ebay/1")]
        prediction_id = await db.save_estimate("42", summarize_prices(evidence), evidence)

        assert await main.run(["delete-prediction", str(prediction_id)]) == 0
        assert json.loads(capsys.readouterr().out) == {"predictionId": prediction_id, "deleted": True}
        assert await db.get_predictions("42") == []

    async def test_delete_missing_prediction(self, capsys):
        assert await main.run(["delete-prediction", "999"]) == 1
        assert json.loads(capsys.readouterr().out)["deleted"] is False


# ── API keys ──────────────────────────────────────────────────────────────────

@pytest.fixture
def no_env_keys(monkeypatch):
    import key_store
    for name in key_store.KNOWN_KEYS:
        monkeypatch.delenv(name.upper(), raising=False)


@pytest.mark.asyncio
@pytest.mark.usefixtures("no_env_keys")
class TestKeyCommands:
    async def test_set_then_list(self, capsys, monkeypatch):
        monkeypatch.setenv("ETSY_API_KEY", "etsy-env-value-123")

        assert await main.run(["keys", "set", "ebay_client_id", "MyApp-1234567890"]) == 0
        assert json.loads(capsys.readouterr().out) == {
            "keyName": "ebay_client_id", "value": "MyAp********7890",
        }
        assert await db.get_api_key("ebay_client_id") == "MyApp-1234567890"

        assert await main.run(["keys", "list"]) == 0
        out = json.loads(capsys.readouterr().out)
        assert out["ebay_client_id"] == {"value": "MyAp********7890", "source": "db"}
        assert out["etsy_api_key"]["source"] == "env"
        assert out["rapidapi_key"] == {"value": "not set", "source": "unset"}
        assert "MyApp-1234567890" not in json.dumps(out)

    async def test_set_unknown_key_rejected(self, capsys):
        assert await main.run(["keys", "set", "telegram_token", "abc"]) == 2
        assert "error" in json.loads(capsys.readouterr().out)
        assert await db.get_all_api_keys() == {}

    async def test_set_blank_value_rejected(self, capsys):
        assert await main.run(["keys", "set", "rapidapi_key", "   "]) == 2
        assert await db.get_api_key("rapidapi_key") is None

    async def test_delete_falls_back_to_env(self, capsys, monkeypatch):
        monkeypatch.setenv("RAPIDAPI_KEY", "env-rapid-key-0001")
        await db.init_db()
        await db.set_api_key("rapidapi_key", "db-rapid-key-9999")

        assert await main.run(["keys", "delete", "rapidapi_key"]) == 0
        assert json.loads(capsys.readouterr().out) == {
            "keyName": "rapidapi_key", "value": "env-**********0001",
        }
        assert await db.get_api_key("rapidapi_key") is None
