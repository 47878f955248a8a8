"""Quant lab: intraday options strategy evaluation and robustness certification."""

__version__ = "0.1.0"
