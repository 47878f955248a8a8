"""Portfolio exposure limits for a simulation pass."""

from dataclasses import dataclass

from quant_lab.core.models import RiskState

DEFAULT_MAX_OPEN_TRADES = 3


@dataclass(frozen=True)
class ExposureState:
    """Snapshot of concurrent exposure against its cap."""

    open_trades: int
    max_open_trades: int
    can_open_new_position: bool
    reasons: tuple[str, ...]


def exposure_state(
    risk_state: RiskState, max_open_trades: int = DEFAULT_MAX_OPEN_TRADES
) -> ExposureState:
    """Report whether another position may be opened.

    Read ``risk_state`` without mutating it; the evaluation engine owns
    the increments and decrements.
    """
    can_open = risk_state.open_trades < max_open_trades
    reasons: tuple[str, ...] = ()
    if not can_open:
        reasons = (
            f"Open trades {risk_state.open_trades} reached max simultaneous cap "
            f"{max_open_trades}.",
        )
    return ExposureState(
        open_trades=risk_state.open_trades,
        max_open_trades=max_open_trades,
        can_open_new_position=can_open,
        reasons=reasons,
    )
