"""
JSON serialization for reports and traces.

Reports are exported for operators and diffed between runs, so the output
is deterministic: keys sorted, Decimals rendered as fixed strings.
"""

import json
from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any


def _json_serializer(obj: Any) -> Any:
    """
    Custom JSON serializer for types not natively supported.

    Raises:
        TypeError: If object type is not supported.
    """
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)
    if is_dataclass(obj) and not isinstance(obj, type):
        return asdict(obj)

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def to_json(data: Any, indent: int | None = 2) -> str:
    """Render data (dicts, lists, dataclasses) as sorted-key JSON."""
    if is_dataclass(data) and not isinstance(data, type):
        data = asdict(data)
    return json.dumps(
        data,
        sort_keys=True,
        indent=indent,
        ensure_ascii=False,
        default=_json_serializer,
    )
