"""Shared helpers for the strategy lab CLI commands.

Provide validation and resolution functions that turn raw CLI options
(plus YAML defaults) into engine inputs. The robustness CLI reuses the
provider, profile, and cost helpers.
"""

from decimal import Decimal
from pathlib import Path

import typer

from quant_lab.apps.strategy_lab.rules import STRATEGY_IDS
from quant_lab.core.config import get_config
from quant_lab.core.models import ExecutionCosts, ExecutionProfile
from quant_lab.core.timestamps import parse_timestamp
from quant_lab.data.providers.csv_provider import CsvMarketDataProvider

VALID_PROFILES = tuple(p.value for p in ExecutionProfile)


def validate_profile(value: str | None) -> str | None:
    """Validate the execution profile name when one was given.

    Raise ``typer.BadParameter`` if the name is not recognised.
    """
    if value is not None and value not in VALID_PROFILES:
        raise typer.BadParameter(f"Must be one of: {', '.join(VALID_PROFILES)}")
    return value


def validate_strategy(value: str) -> str:
    """Validate that the strategy identifier is registered."""
    if value not in STRATEGY_IDS:
        raise typer.BadParameter(f"Must be one of: {', '.join(STRATEGY_IDS)}")
    return value


def parse_strategy_ids(raw: str | None) -> list[str]:
    """Split a comma-separated strategy list, validating each identifier.

    Return an empty list (meaning "all strategies") when ``raw`` is empty.
    """
    if not raw:
        return []
    ids = [part.strip() for part in raw.split(",") if part.strip()]
    unknown = [sid for sid in ids if sid not in STRATEGY_IDS]
    if unknown:
        raise typer.BadParameter(
            f"Unknown strategies: {', '.join(unknown)}. Choose from {', '.join(STRATEGY_IDS)}",
            param_hint="'--strategies'",
        )
    return ids


def resolve_profile(raw: str | None) -> ExecutionProfile:
    """Resolve the execution profile from the CLI option or the YAML default.

    Fall back to ``balanced`` when neither the option nor the config key
    ``strategy_lab.default_profile`` is set.
    """
    value = raw or get_config().get("strategy_lab.default_profile", "balanced")
    return ExecutionProfile(str(value))


def resolve_costs(
    slippage_multiplier: float | None, brokerage_points: float | None
) -> ExecutionCosts:
    """Build ``ExecutionCosts`` from CLI options with YAML defaults."""
    config = get_config()
    slip = (
        Decimal(str(slippage_multiplier))
        if slippage_multiplier is not None
        else config.get_decimal("strategy_lab.execution_costs.slippage_multiplier", Decimal(1))
    )
    brokerage = (
        Decimal(str(brokerage_points))
        if brokerage_points is not None
        else config.get_decimal("strategy_lab.execution_costs.brokerage_points", Decimal(0))
    )
    return ExecutionCosts(slippage_multiplier=slip, brokerage_points=brokerage)


def resolve_range(start: str, end: str) -> tuple[int, int]:
    """Parse the start and end options into Unix timestamps.

    Raise ``typer.BadParameter`` for unparseable values or an inverted range.
    """
    try:
        start_ts = parse_timestamp(start)
        end_ts = parse_timestamp(end)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    if end_ts < start_ts:
        raise typer.BadParameter("--end must not be before --start", param_hint="'--end'")
    return start_ts, end_ts


def build_provider(candles: Path, snapshots: Path | None) -> CsvMarketDataProvider:
    """Build the CSV market data provider, checking the files exist."""
    if not candles.exists():
        raise typer.BadParameter(f"File not found: {candles}", param_hint="'--candles'")
    if snapshots is not None and not snapshots.exists():
        raise typer.BadParameter(f"File not found: {snapshots}", param_hint="'--snapshots'")
    return CsvMarketDataProvider(candles, snapshots)
