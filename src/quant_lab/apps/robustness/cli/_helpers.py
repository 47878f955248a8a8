"""Shared helpers for the robustness CLI commands."""

from dataclasses import replace

import typer

from quant_lab.apps.robustness.config import CheckName, RobustnessConfig
from quant_lab.apps.robustness.repository import SqlRunStore
from quant_lab.apps.robustness.runs import InMemoryRunStore
from quant_lab.core.config import get_config
from quant_lab.core.exceptions import ConfigError

VALID_CHECKS = tuple(c.value for c in CheckName)


def parse_checks(raw: str | None) -> tuple[CheckName, ...] | None:
    """Split a comma-separated check list, or return ``None`` for the configured set."""
    if not raw:
        return None
    names = [part.strip() for part in raw.split(",") if part.strip()]
    unknown = [name for name in names if name not in VALID_CHECKS]
    if unknown:
        raise typer.BadParameter(
            f"Unknown checks: {', '.join(unknown)}. Choose from {', '.join(VALID_CHECKS)}",
            param_hint="'--checks'",
        )
    return tuple(CheckName(name) for name in dict.fromkeys(names))


def resolve_robustness_config(
    trials: int | None, seed: int | None, folds: int | None
) -> RobustnessConfig:
    """Load the robustness policy from settings, applying CLI overrides."""
    try:
        config = RobustnessConfig.from_settings()
        overrides: dict[str, int] = {}
        if trials is not None:
            overrides["monte_carlo_trials"] = trials
        if seed is not None:
            overrides["seed"] = seed
        if folds is not None:
            overrides["walk_forward_folds"] = folds
        return replace(config, **overrides) if overrides else config
    except ConfigError as exc:
        raise typer.BadParameter(str(exc)) from exc


def resolve_db_url(db_url: str | None) -> str:
    """Return the CLI database URL or the ``store.db_url`` setting."""
    return db_url or str(get_config().get("store.db_url", "sqlite+aiosqlite:///quant_lab.db"))


async def open_store(db_url: str | None) -> SqlRunStore | InMemoryRunStore:
    """Open the SQL store for ``db_url``, or an in-memory store when it is ``None``."""
    if db_url is None:
        return InMemoryRunStore()
    store = SqlRunStore(db_url)
    await store.init_db()
    return store


async def close_store(store: SqlRunStore | InMemoryRunStore) -> None:
    """Release the store's resources, if it holds any."""
    if isinstance(store, SqlRunStore):
        await store.close()
