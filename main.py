"""
main.py — command-line entry point.

  python main.py appraise photo.jpg --name "Pocket watch" --category Watches --item-id 42
  python main.py history 42
  python main.py api-logs --api "eBay API" --limit 20
  python main.py api-stats
  python main.py cleanup-logs --days 30
  python main.py delete-prediction 7
  python main.py keys set ebay_client_id MyApp-1234
  python main.py keys list

Every command prints JSON on stdout; logs go to stderr and DATA_DIR/appraisal.log.
"""
import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path

import config

# Log file lives in the same data/ directory as the database so that a single
# Docker volume mount (./data:/app/data) captures both.
_data_dir = Path(config.DATA_DIR)
_data_dir.mkdir(parents=True, exist_ok=True)

logger = logging.getLogger(__name__)


def _setup_logging() -> None:
    logging.basicConfig(
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        level=logging.INFO,
        handlers=[
            logging.StreamHandler(sys.stderr),
            logging.FileHandler(str(_data_dir / "appraisal.log"), encoding="utf-8"),
        ],
    )
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
    logging.getLogger("aiohttp.client").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)


def _print(data) -> None:
    print(json.dumps(data, indent=2, default=str))


# ── Commands ──────────────────────────────────────────────────────────────────

async def cmd_appraise(args: argparse.Namespace) -> int:
    from appraisal import appraise_item
    from errors import InvalidInput

    try:
        result = await appraise_item(
            args.image,
            args.name,
            args.category,
            item_id=args.item_id,
            deadline=args.deadline,
            persist=not args.no_save,
            keywords=args.keywords,
        )
    except InvalidInput as exc:
        logger.error("Cannot appraise: %s", exc)
        _print({"error": str(exc)})
        return 2

    _print(result.to_dict())
    return 0


async def cmd_history(args: argparse.Namespace) -> int:
    import database as db

    history = await db.get_price_history(args.item_id)
    _print({
        "itemId": history["item_id"],
        "predictions": [asdict(p) for p in history["predictions"]],
        "priceHistory": [asdict(c) for c in history["price_history"]],
        "totalListings": history["total_listings"],
        "byPlatform": {k: len(v) for k, v in history["by_platform"].items()},
    })
    return 0


async def cmd_api_logs(args: argparse.Namespace) -> int:
    import database as db

    logs = await db.get_api_logs(api_name=args.api, limit=args.limit)
    _print({"count": len(logs), "logs": logs})
    return 0


async def cmd_api_stats(args: argparse.Namespace) -> int:
    import database as db

    _print(await db.get_api_stats())
    return 0


async def cmd_cleanup_logs(args: argparse.Namespace) -> int:
    import database as db

    deleted = await db.cleanup_old_logs(args.days)
    _print({"message": f"Cleaned up {deleted} old API logs", "deletedCount": deleted})
    return 0


async def cmd_delete_prediction(args: argparse.Namespace) -> int:
    import database as db

    deleted = await db.delete_prediction(args.prediction_id)
    if not deleted:
        logger.warning("Prediction %s not found", args.prediction_id)
    _print({"predictionId": args.prediction_id, "deleted": deleted})
    return 0 if deleted else 1


# ── API keys (DB values override .env) ───────────────────────────────────────

async def cmd_keys_list(args: argparse.Namespace) -> int:
    import database as db
    import key_store

    stored = await db.get_all_api_keys()
    all_keys = await key_store.get_all_keys()
    _print({
        name: {
            "value": key_store.mask(value),
            "source": "db" if name in stored else ("env" if value else "unset"),
        }
        for name, value in all_keys.items()
    })
    return 0


async def cmd_keys_set(args: argparse.Namespace) -> int:
    import key_store

    value = args.value.strip()
    if args.key_name not in key_store.KNOWN_KEYS:
        _print({"error": f"Unknown key '{args.key_name}'", "knownKeys": key_store.KNOWN_KEYS})
        return 2
    if not value:
        _print({"error": "Empty value, not saved"})
        return 2

    await key_store.set(args.key_name, value)
    logger.info("API key %s updated", args.key_name)
    _print({"keyName": args.key_name, "value": key_store.mask(value)})
    return 0


async def cmd_keys_delete(args: argparse.Namespace) -> int:
    import key_store

    if args.key_name not in key_store.KNOWN_KEYS:
        _print({"error": f"Unknown key '{args.key_name}'", "knownKeys": key_store.KNOWN_KEYS})
        return 2

    await key_store.delete(args.key_name)
    logger.info("API key %s removed from the database", args.key_name)
    # Whatever is left comes from the environment
    _print({"keyName": args.key_name, "value": key_store.mask(await key_store.get(args.key_name))})
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="appraise", description="Photo-based price estimates")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("appraise", help="estimate a price from a photo")
    p.add_argument("image", nargs="?", default=None, help="image URL or local path")
    p.add_argument("--name", default=None, help="item name (used only if recognition fails)")
    p.add_argument("--category", default=None, help="item category (used only if recognition fails)")
    p.add_argument("--item-id", default=None, help="store the estimate under this item id")
    p.add_argument("--deadline", type=float, default=None, help="seconds for the whole analysis")
    p.add_argument("--keywords", default=None, help="search terms (used only if recognition fails)")
    p.add_argument("--no-save", action="store_true", help="do not store the estimate")
    p.set_defaults(handler=cmd_appraise)

    p = sub.add_parser("history", help="stored estimates and listings for an item")
    p.add_argument("item_id")
    p.set_defaults(handler=cmd_history)

    p = sub.add_parser("api-logs", help="recent external API calls")
    p.add_argument("--api", default=None, help="filter by API name, e.g. 'eBay API'")
    p.add_argument("--limit", type=int, default=100)
    p.set_defaults(handler=cmd_api_logs)

    p = sub.add_parser("api-stats", help="per-API success/failure counts")
    p.set_defaults(handler=cmd_api_stats)

    p = sub.add_parser("cleanup-logs", help="delete old API call logs")
    p.add_argument("--days", type=int, default=config.API_LOG_RETENTION_DAYS)
    p.set_defaults(handler=cmd_cleanup_logs)

    p = sub.add_parser("delete-prediction", help="delete a stored estimate and its listings")
    p.add_argument("prediction_id", type=int)
    p.set_defaults(handler=cmd_delete_prediction)

    p = sub.add_parser("keys", help="manage API keys stored in the database")
    keys = p.add_subparsers(dest="keys_command", required=True)
    k = keys.add_parser("list", help="show every known key, masked")
    k.set_defaults(handler=cmd_keys_list)
    k = keys.add_parser("set", help="store a key (overrides .env)")
    k.add_argument("key_name")
    k.add_argument("value")
    k.set_defaults(handler=cmd_keys_set)
    k = keys.add_parser("delete", help="remove a stored key (falls back to .env)")
    k.add_argument("key_name")
    k.set_defaults(handler=cmd_keys_delete)

    return parser


async def run(argv=None) -> int:
    args = build_parser().parse_args(argv)

    import call_logger
    import database as db
    try:
        await db.init_db()
    except Exception as exc:
        logger.critical("FATAL: database init failed: %s", exc, exc_info=True)
        raise

    try:
        return await args.handler(args)
    finally:
        # Let queued API call records reach the DB before the loop closes
        await call_logger.stop()


def main() -> None:
    _setup_logging()
    try:
        sys.exit(asyncio.run(run()))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
