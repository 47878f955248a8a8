"""Conversion of result objects into JSON-compatible structures.

Run records, reports, and audit events are persisted as JSON. Decimals are
written as strings so that no precision is lost; the profit-factor
sentinel ``Infinity`` survives as the string ``"Infinity"``.
"""

import dataclasses
from collections.abc import Mapping
from decimal import Decimal
from enum import Enum
from typing import Any


def to_jsonable(value: Any) -> Any:
    """Recursively convert dataclasses, enums, and decimals to plain JSON types.

    Args:
        value: Any nesting of dataclasses, mappings, sequences, enums,
            decimals, and JSON scalars.

    Returns:
        An equivalent structure of dicts, lists, strings, numbers, and ``None``.

    """
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Mapping):
        return {str(k): to_jsonable(v) for k, v in value.items()}  # pyright: ignore[reportUnknownVariableType]
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]  # pyright: ignore[reportUnknownVariableType]
    return value
