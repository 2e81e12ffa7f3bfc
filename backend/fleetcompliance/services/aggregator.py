"""Reduction of ``{dimensionKey, value}`` rows into per-dimension totals.

Storage usually hands rows over already grouped, but nothing relies on it:
rows sharing a key are summed here. Accumulation is done in ``Decimal`` so
that many small fuel-burn entries do not pick up binary floating-point drift.
"""

import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

from fleetcompliance.core.logging import report_logger

Number = Union[Decimal, float, int, str]
Row = Union[Tuple[Optional[str], Optional[Number]], Mapping[str, object]]

ZERO = Decimal("0")
FUEL_QUANTUM = Decimal("0.001")  # metric tons, kg resolution
HOURS_QUANTUM = Decimal("0.01")


def to_decimal(value: Optional[Number]) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    # str() first: Decimal(0.1) would carry the float's binary expansion
    return Decimal(str(value))


def _unpack(row: Row) -> Tuple[Optional[str], Optional[Number]]:
    if isinstance(row, Mapping):
        return row.get("key"), row.get("value")
    key, value = row
    return key, value


def aggregate(rows: Iterable[Row], logger: Optional[logging.Logger] = None) -> Dict[str, Decimal]:
    """Sum values per dimension key.

    Keys are whitespace-trimmed. Rows without a key are skipped (and logged).
    Dimensions that have no rows are simply absent; no zero-fill happens here.
    """
    logger = logger or report_logger
    totals: Dict[str, Decimal] = {}
    skipped = 0
    for row in rows:
        key, value = _unpack(row)
        if key is None or not str(key).strip():
            skipped += 1
            continue
        key = str(key).strip()
        totals[key] = totals.get(key, ZERO) + to_decimal(value)

    if skipped:
        logger.warning(f"Skipped {skipped} operational row(s) without a dimension key")
    return totals


def merge(*partials: Mapping[str, Decimal]) -> Dict[str, Decimal]:
    """Combine totals computed over disjoint periods."""
    merged: Dict[str, Decimal] = {}
    for partial in partials:
        for key, value in partial.items():
            merged[key] = merged.get(key, ZERO) + value
    return merged


def to_buckets(totals: Mapping[str, Decimal], key_field: str, quantum: Decimal) -> List[Dict[str, str]]:
    """Serializable bucket list ordered by key, totals as fixed-point strings."""
    return [
        {key_field: key, "total": str(totals[key].quantize(quantum))}
        for key in sorted(totals)
    ]
