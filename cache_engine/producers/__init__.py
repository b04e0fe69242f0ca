"""
Market Mage producers — zero-argument coroutines that fetch one fresh value.

    producer = NewsProducer(client, api_key)
    news = await producer()
"""

from .base import HttpProducer, Producer
from .insight import InsightProducer
from .market import MarketProducer
from .metrics import UserMetricsProducer
from .news import NewsProducer

__all__ = [
    "HttpProducer", "Producer", "InsightProducer",
    "MarketProducer", "UserMetricsProducer", "NewsProducer",
]
