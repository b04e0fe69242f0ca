"""
Market Mage — AI Insight Producer
──────────────────────────────────
Asks Claude for a short daily market insight grounded in the headlines the
news category currently holds. One insight per day: the category stores it
in the local tier until the next UTC midnight.

Produces:
  { "id", "content", "generated_at", "expires_at" }
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, List, Optional

from anthropic import APIError, AsyncAnthropic

from cache_engine.cache.ttl_config import next_utc_midnight
from cache_engine.errors import ProducerError
from cache_engine.producers.base import Producer

log = logging.getLogger("mc.producers.insight")

MAX_HEADLINES = 8
MAX_TOKENS    = 400


def build_prompt(headlines: List[str]) -> str:
    if headlines:
        news = "\n".join(f"- {h}" for h in headlines[:MAX_HEADLINES])
    else:
        news = "- (no headlines available)"
    return f"""You are a market analyst writing the daily insight for a trading dashboard.

Today's headlines:
{news}

In 3-4 sentences, give one actionable observation about today's market,
name the main risk, and keep a neutral, non-promotional tone."""


class InsightProducer(Producer):

    def __init__(
        self,
        api_key: str,
        model: str,
        headlines: Callable[[], List[str]],
        client: Optional[AsyncAnthropic] = None,
        timeout: float = 30.0,
        on_call=None,
    ):
        super().__init__(on_call=on_call)
        self.model = model
        self.headlines = headlines
        self._client = client
        if self._client is None and api_key:
            self._client = AsyncAnthropic(api_key=api_key, timeout=timeout)

    @property
    def name(self) -> str:
        return "ai_insight"

    async def _fetch(self) -> dict:
        if self._client is None:
            raise ProducerError("anthropic", "ANTHROPIC_API_KEY not set")
        try:
            response = await self._client.messages.create(
                model=self.model,
                max_tokens=MAX_TOKENS,
                messages=[{"role": "user", "content": build_prompt(self.headlines())}],
            )
        except APIError as e:
            raise ProducerError("anthropic", str(e)) from e

        text = "".join(
            getattr(block, "text", "") for block in response.content
        ).strip()
        if not text:
            raise ProducerError("anthropic", "empty completion")

        now = datetime.now(timezone.utc)
        return {
            "id":           str(uuid.uuid4()),
            "content":      text,
            "generated_at": now.isoformat(),
            "expires_at":   next_utc_midnight(now).isoformat(),
        }
