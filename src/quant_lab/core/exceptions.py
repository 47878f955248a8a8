"""Exception hierarchy for the strategy lab and robustness engine.

A single base class lets callers catch everything raised by this package,
while the concrete kinds tell them what went wrong: bad market data, bad
configuration, or an aborted robustness suite.
"""


class QuantLabError(Exception):
    """Base exception for all quant lab errors."""


class InputDataError(QuantLabError):
    """Malformed or out-of-range candle or snapshot data.

    Fails the current run only.
    """


class ConfigError(QuantLabError):
    """Raise when configuration loading or validation fails."""


class ComputationError(QuantLabError):
    """Numeric degeneracy in a statistic.

    KPI and scoring helpers return defined neutral values instead of
    raising this; it exists for callers that want to flag degenerate
    inputs explicitly.
    """


class SuiteAbortedError(QuantLabError):
    """A robustness sub-check failed and the whole suite was abandoned.

    Carry the name of the failing check and the underlying reason
    verbatim so that the run record shows exactly what broke.

    Args:
        check: Name of the check that failed.
        reason: Message of the underlying exception.

    """

    def __init__(self, check: str, reason: str) -> None:
        """Initialize the suite abort error.

        Args:
            check: Name of the check that failed.
            reason: Message of the underlying exception.

        """
        super().__init__(reason)
        self.check = check
        self.reason = reason


class RunCancelledError(QuantLabError):
    """The run was marked as no longer needed while the suite was in flight."""


class RunNotFoundError(QuantLabError):
    """No run record exists for the requested run identifier."""
