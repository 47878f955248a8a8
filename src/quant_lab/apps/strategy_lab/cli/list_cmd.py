"""CLI command listing the registered strategy rule specs."""

from quant_lab.apps.strategy_lab.cli._output import print_strategies
from quant_lab.apps.strategy_lab.rules import STRATEGY_RULES


def list_strategies() -> None:
    """List the registered strategies with their engine parameters."""
    print_strategies(STRATEGY_RULES)
