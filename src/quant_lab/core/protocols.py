"""Structural protocols for pluggable market data sources.

Define the ``MarketDataProvider`` interface that decouples the evaluation
engine from concrete data adapters. Any class whose shape matches the
protocol can be used without explicit inheritance (structural subtyping).
"""

from typing import Protocol, runtime_checkable

from quant_lab.core.models import Candle, MarketSnapshot


@runtime_checkable
class MarketDataProvider(Protocol):
    """Async provider of candles and derivative snapshots for a segment.

    Implementors return rows sorted by timestamp. Empty sequences are a
    legitimate answer for ranges without data.
    """

    async def fetch_candles(
        self,
        segment: str,
        start_ts: int,
        end_ts: int,
        interval_min: int = 1,
    ) -> list[Candle]:
        """Return candles for the segment, interval, and inclusive time range."""
        ...

    async def fetch_snapshots(
        self,
        segment: str,
        start_ts: int,
        end_ts: int,
    ) -> list[MarketSnapshot]:
        """Return snapshots for the segment within the inclusive time range."""
        ...
