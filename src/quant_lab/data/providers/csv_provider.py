"""CSV-based market data provider for offline and testing use.

Read candle and snapshot rows from local CSV files instead of a live
market-data API. This is useful for running evaluations against a fixed
dataset, for deterministic testing, or when no API credentials are
available.
"""

import asyncio
import csv
from decimal import Decimal, InvalidOperation
from pathlib import Path

from quant_lab.core.exceptions import InputDataError
from quant_lab.core.models import Candle, MarketSnapshot

_SNAPSHOT_FIELDS = ("pcr", "buy_qty", "sell_qty", "trade_volume", "max_pain", "ltp")


def _decimal(row: dict[str, str], column: str, line: int) -> Decimal:
    """Parse a required decimal column, raising ``InputDataError`` on bad input."""
    raw = row.get(column)
    if raw is None or raw.strip() == "":
        msg = f"line {line}: column {column!r} is missing"
        raise InputDataError(msg)
    try:
        return Decimal(raw)
    except InvalidOperation as exc:
        msg = f"line {line}: column {column!r} is not numeric: {raw!r}"
        raise InputDataError(msg) from exc


def _optional_decimal(row: dict[str, str], column: str, line: int) -> Decimal | None:
    """Parse an optional decimal column; blank or missing cells become ``None``."""
    raw = row.get(column)
    if raw is None or raw.strip() == "":
        return None
    return _decimal(row, column, line)


def _int(row: dict[str, str], column: str, line: int) -> int:
    """Parse a required integer column, raising ``InputDataError`` on bad input."""
    raw = row.get(column)
    try:
        return int(raw or "")
    except ValueError as exc:
        msg = f"line {line}: column {column!r} is not an integer: {raw!r}"
        raise InputDataError(msg) from exc


class CsvMarketDataProvider:
    """Load candles and snapshots from local CSV files.

    Implement the ``MarketDataProvider`` protocol. The candle file has
    columns ``segment``, ``timestamp``, ``open``, ``high``, ``low``,
    ``close``, ``volume`` and an optional ``interval`` (minutes, default
    ``1``). The optional snapshot file has ``segment``, ``timestamp`` and
    any of ``pcr``, ``buy_qty``, ``sell_qty``, ``trade_volume``,
    ``max_pain``, ``ltp``; blank cells are read as missing values. Rows
    are filtered by segment and time range so a single file can hold
    several segments.
    """

    def __init__(self, candles_path: Path, snapshots_path: Path | None = None) -> None:
        """Initialize the provider with the paths to the CSV files.

        Args:
            candles_path: Path to the candle CSV file.
            snapshots_path: Optional path to the snapshot CSV file.

        """
        self._candles_path = candles_path
        self._snapshots_path = snapshots_path

    async def fetch_candles(
        self,
        segment: str,
        start_ts: int,
        end_ts: int,
        interval_min: int = 1,
    ) -> list[Candle]:
        """Load candles filtered by segment, interval, and inclusive time range.

        Returns:
            Matching ``Candle`` objects sorted by timestamp.

        Raises:
            InputDataError: If a matching row has an unparseable field.

        """
        return await asyncio.to_thread(
            self._read_candles, segment, start_ts, end_ts, interval_min
        )

    async def fetch_snapshots(
        self,
        segment: str,
        start_ts: int,
        end_ts: int,
    ) -> list[MarketSnapshot]:
        """Load snapshots filtered by segment and inclusive time range.

        Return an empty list when no snapshot file was configured.
        """
        if self._snapshots_path is None:
            return []
        return await asyncio.to_thread(self._read_snapshots, segment, start_ts, end_ts)

    def _read_candles(
        self, segment: str, start_ts: int, end_ts: int, interval_min: int
    ) -> list[Candle]:
        candles: list[Candle] = []
        with self._candles_path.open() as f:
            reader = csv.DictReader(f)
            for line, row in enumerate(reader, start=2):
                if row["segment"] != segment:
                    continue
                if (_int(row, "interval", line) if row.get("interval") else 1) != interval_min:
                    continue
                ts = _int(row, "timestamp", line)
                if ts < start_ts or ts > end_ts:
                    continue
                candles.append(
                    Candle(
                        timestamp=ts,
                        open=_decimal(row, "open", line),
                        high=_decimal(row, "high", line),
                        low=_decimal(row, "low", line),
                        close=_decimal(row, "close", line),
                        volume=_optional_decimal(row, "volume", line) or Decimal(0),
                    )
                )
        candles.sort(key=lambda c: c.timestamp)
        return candles

    def _read_snapshots(self, segment: str, start_ts: int, end_ts: int) -> list[MarketSnapshot]:
        if self._snapshots_path is None:
            return []
        snapshots: list[MarketSnapshot] = []
        with self._snapshots_path.open() as f:
            reader = csv.DictReader(f)
            for line, row in enumerate(reader, start=2):
                if row["segment"] != segment:
                    continue
                ts = _int(row, "timestamp", line)
                if ts < start_ts or ts > end_ts:
                    continue
                values = {name: _optional_decimal(row, name, line) for name in _SNAPSHOT_FIELDS}
                snapshots.append(MarketSnapshot(timestamp=ts, **values))
        snapshots.sort(key=lambda s: s.timestamp)
        return snapshots
