import logging
import time
from collections import deque
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware

from cache_engine import config
from cache_engine.coordinator import Notice
from cache_engine.errors import UnknownCategoryError
from cache_engine.session import MarketSession

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
log = logging.getLogger(__name__)

MAX_NOTICES = 50

SessionFactory = Callable[[], Awaitable[MarketSession]]


def _session(request: Request) -> MarketSession:
    return request.app.state.session


def create_app(session_factory: Optional[SessionFactory] = None) -> FastAPI:
    factory = session_factory or MarketSession.create

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        session = await factory()
        notices = deque(maxlen=MAX_NOTICES)
        session.coordinator.on_notice(notices.append)
        app.state.session = session
        app.state.notices = notices
        await session.start()
        yield
        await session.aclose()

    app = FastAPI(
        title="Market Mage Data API",
        description="Cached market, news and insight data for the Market Mage dashboard.",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    async def root():
        return {"status": "ok", "docs": "/docs", "api": "/api/data/news"}

    @app.get("/health")
    async def health(request: Request):
        session = _session(request)
        remote_ok = await session.remote.backend.ping()
        return {
            "status":     "healthy",
            "remote":     session.remote.backend.name if remote_ok else "unavailable",
            "categories": session.coordinator.snapshot(),
            "timestamp":  int(time.time()),
        }

    @app.get("/api/data/{category}", tags=["Data"])
    async def get_category(category: str, request: Request):
        coordinator = _session(request).coordinator
        try:
            value = await coordinator.ensure_fresh(category)
        except UnknownCategoryError as e:
            raise HTTPException(404, str(e))
        except Exception as e:
            status = coordinator.status(category)
            if not status["has_value"]:
                raise HTTPException(503, f"{category} temporarily unavailable: {e}")
            return {
                "category": category,
                "data":     coordinator.value(category),
                "stale":    True,
                "warning":  "Using last known data - live fetch failed",
                "status":   status,
            }
        return {
            "category": category,
            "data":     value,
            "stale":    False,
            "status":   coordinator.status(category),
        }

    @app.post("/api/data/{category}/refresh", tags=["Data"])
    async def refresh_category(category: str, request: Request):
        coordinator = _session(request).coordinator
        try:
            value = await coordinator.refresh(category)
        except UnknownCategoryError as e:
            raise HTTPException(404, str(e))
        except Exception as e:
            raise HTTPException(502, f"Refresh of {category} failed: {e}")
        return {"category": category, "data": value, "status": coordinator.status(category)}

    @app.get("/api/prices", tags=["Prices"])
    async def get_prices(
        request: Request,
        symbols: str = Query("", description="Comma-separated stock symbols, e.g. AAPL,MSFT"),
        crypto:  str = Query("", description="Comma-separated CoinGecko ids, e.g. bitcoin,ethereum"),
    ):
        stock_list  = [s for s in symbols.split(",") if s.strip()]
        crypto_list = [c for c in crypto.split(",") if c.strip()]
        if not stock_list and not crypto_list:
            raise HTTPException(422, "Pass symbols and/or crypto")

        prices = _session(request).prices
        quotes = await prices.stock_quotes(stock_list)
        try:
            coins = await prices.crypto_prices(crypto_list)
        except Exception as e:
            raise HTTPException(502, f"Crypto prices unavailable: {e}")
        return {**quotes, "crypto": coins}

    @app.delete("/api/cache/{category}", tags=["Cache"])
    async def invalidate_category(category: str, request: Request):
        try:
            await _session(request).coordinator.invalidate(category)
        except UnknownCategoryError as e:
            raise HTTPException(404, str(e))
        return {"invalidated": category}

    @app.delete("/api/cache", tags=["Cache"])
    async def invalidate_prefix(
        request: Request,
        prefix: str = Query(..., min_length=1, description="Key prefix, e.g. api:stock"),
    ):
        session = _session(request)
        remote = await session.remote.invalidate_prefix(prefix)
        local = session.local.invalidate_prefix(prefix)
        return {"prefix": prefix, "remote_removed": remote, "local_removed": local}

    @app.post("/api/cache/sweep", tags=["Cache"])
    async def sweep(request: Request):
        removed = await _session(request).remote.sweep_expired()
        return {"removed": removed}

    @app.get("/api/cache/stats", tags=["Cache"])
    async def stats(request: Request):
        session = _session(request)
        return {
            "local":   session.local.get_stats(),
            "remote":  await session.remote.get_metrics(),
            "backend": session.remote.backend.name,
        }

    @app.get("/api/notices", tags=["Data"])
    async def notices(request: Request):
        items = list(request.app.state.notices)
        return {"count": len(items), "notices": [_notice_dict(n) for n in reversed(items)]}

    return app


def _notice_dict(notice: Notice) -> dict:
    return {
        "severity": notice.severity,
        "summary":  notice.summary,
        "detail":   notice.detail,
        "category": notice.category,
    }


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app:app", host="0.0.0.0", port=config.PORT, reload=False, log_level="info")
