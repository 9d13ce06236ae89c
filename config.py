"""
Central configuration — reads from .env file.

API keys are NOT read here: they go through key_store.py, which checks the
database first and falls back to the environment.

Every value below is a plain module attribute so tests (and the CLI) can
monkeypatch config.X and all code reading config.X sees the change.
"""
import os
from dotenv import load_dotenv

load_dotenv()

# ── Storage ───────────────────────────────────────────────────────────────────
# SQLite DB and the log file both live here (mount ./data:/app/data in Docker)
DATA_DIR: str = os.getenv("DATA_DIR", "data")

# ── Recognition ───────────────────────────────────────────────────────────────
# auto          → Google Vision if its key is present, otherwise OpenAI, otherwise fallback
# google_vision → Google Cloud Vision REST API only
# openai        → OpenAI vision model only
RECOGNITION_PROVIDER: str = os.getenv("RECOGNITION_PROVIDER", "auto")
OPENAI_VISION_MODEL: str  = os.getenv("OPENAI_VISION_MODEL", "gpt-4o-mini")

# Seconds allowed for the whole recognition step (image download + provider call)
RECOGNITION_TIMEOUT: float = float(os.getenv("RECOGNITION_TIMEOUT", "20"))

# ── Marketplaces ──────────────────────────────────────────────────────────────
# Comma-separated, ORDER MATTERS: results are always reported in this order.
# Known sources: ebay, etsy, amazon
MARKETPLACE_SOURCES: list[str] = [
    s.strip().lower()
    for s in os.getenv("MARKETPLACE_SOURCES", "ebay,etsy,amazon").split(",")
    if s.strip()
]

# Per-source time budget in seconds (a slower source counts as failed)
MARKETPLACE_TIMEOUT: float   = float(os.getenv("MARKETPLACE_TIMEOUT", "15"))
MARKETPLACE_MAX_RESULTS: int = int(os.getenv("MARKETPLACE_MAX_RESULTS", "10"))

# sandbox → api.sandbox.ebay.com, production → api.ebay.com
EBAY_ENVIRONMENT: str = os.getenv("EBAY_ENVIRONMENT", "sandbox").lower()
EBAY_MARKETPLACE_ID: str = os.getenv("EBAY_MARKETPLACE_ID", "EBAY_US")

# ── Pipeline ──────────────────────────────────────────────────────────────────
# Upper bound in seconds for one complete analysis (recognition + fan-out)
ANALYSIS_DEADLINE: float = float(os.getenv("ANALYSIS_DEADLINE", "45"))

# How many priced listings are stored as price-comparison evidence
EVIDENCE_LIMIT: int = int(os.getenv("EVIDENCE_LIMIT", "20"))

# ── API call log ──────────────────────────────────────────────────────────────
CALL_LOG_QUEUE_SIZE: int    = int(os.getenv("CALL_LOG_QUEUE_SIZE", "1000"))
API_LOG_RETENTION_DAYS: int = int(os.getenv("API_LOG_RETENTION_DAYS", "30"))
