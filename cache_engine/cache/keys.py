"""
Market Mage — Cache Keys
─────────────────────────
Deterministic key construction. The same base name and the same parameter
values produce the same key whatever order the parameters were given in.

    build_key("stock_data", {"symbol": "AAPL", "page": 1})
      -> "stock_data?page=1&symbol=AAPL"          (local store)

    endpoint_key("stock_prices", {"symbol": "AAPL"})
      -> "api:stock_prices:symbol=AAPL"           (remote shared cache)

Only %, & and = are escaped, so ordinary keys read exactly as the
dashboard's own keys do and the pairs still split unambiguously.
"""

from typing import Any, Mapping, Optional

KEY_SEPARATOR      = "?"
ENDPOINT_SEPARATOR = ":"
ENDPOINT_PREFIX    = "api:"

_ESCAPES = {"%": "%25", "&": "%26", "=": "%3D"}

# ── Well-known base keys ──────────────────────────────────────
CACHE_KEYS = {
    "news":          "global_news",
    "market":        "global_market_data",
    "user_metrics":  "api:user_metrics",
    "ai_insight":    "ai_insight",
    "stock_prices":  "stock_data",
    "crypto_prices": "crypto_data",
}


def _escape(text: str) -> str:
    return "".join(_ESCAPES.get(c, c) for c in text)


def _render(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _query(params: Mapping[str, Any]) -> str:
    return "&".join(
        f"{_escape(str(name))}={_escape(_render(params[name]))}"
        for name in sorted(params, key=str)
    )


def build_key(base_name: str, params: Optional[Mapping[str, Any]] = None) -> str:
    """Return the canonical key for base_name plus params."""
    if not params:
        return base_name
    return f"{base_name}{KEY_SEPARATOR}{_query(params)}"


def endpoint_key(endpoint: str, params: Optional[Mapping[str, Any]] = None) -> str:
    """Key for a remote-cached endpoint, namespaced under ``api:``."""
    base = f"{ENDPOINT_PREFIX}{endpoint}"
    if not params:
        return base
    return f"{base}{ENDPOINT_SEPARATOR}{_query(params)}"
