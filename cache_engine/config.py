"""
Market Mage — Configuration
────────────────────────────
Environment-driven settings. A local .env file is honoured.

Environment variables:
  REDIS_URL              — redis://localhost:6379 (remote shared cache)
  CACHE_DIR              — .market_mage_cache (local durable tier)
  NEWS_API_KEY           — newsapi.org key
  ALPHA_VANTAGE_KEY      — Alpha Vantage key (stock quotes)
  ANTHROPIC_API_KEY      — enables the AI insight category
  ANTHROPIC_MODEL        — model used for the daily insight
  REQUEST_TIMEOUT        — per-request timeout for producers (seconds)
  STOCK_SYMBOLS          — comma-separated watchlist for the market snapshot
  CRYPTO_IDS             — comma-separated CoinGecko ids
  SWEEP_INTERVAL_MINUTES — expired-row sweep interval, 0 disables
  PORT                   — HTTP port for app.py
"""

import os

from dotenv import load_dotenv

load_dotenv()


def _csv(value: str) -> list:
    return [v.strip() for v in value.split(",") if v.strip()]


REDIS_URL         = os.environ.get("REDIS_URL", "redis://localhost:6379")
CACHE_DIR         = os.environ.get("CACHE_DIR", ".market_mage_cache")

NEWS_API_KEY      = os.environ.get("NEWS_API_KEY", "")
ALPHA_VANTAGE_KEY = os.environ.get("ALPHA_VANTAGE_KEY", "demo")
ANTHROPIC_API_KEY = os.environ.get("ANTHROPIC_API_KEY", "")
ANTHROPIC_MODEL   = os.environ.get("ANTHROPIC_MODEL", "claude-sonnet-4-20250514")

REQUEST_TIMEOUT   = float(os.environ.get("REQUEST_TIMEOUT", "8"))

STOCK_SYMBOLS     = _csv(os.environ.get("STOCK_SYMBOLS", "AAPL,MSFT,NVDA,TSLA,AMZN"))
CRYPTO_IDS        = _csv(os.environ.get("CRYPTO_IDS", "bitcoin,ethereum,solana,cardano"))

SWEEP_INTERVAL_MINUTES = int(os.environ.get("SWEEP_INTERVAL_MINUTES", "0"))

PORT              = int(os.environ.get("PORT", "8000"))
