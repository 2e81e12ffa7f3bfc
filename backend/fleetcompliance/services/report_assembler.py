"""
Report Assembler - turns per-category totals into a period report payload.

Template-specific shaping is a registry of pure functions:

    view = shape("EU_MRV", buckets)

Shapers receive the bucket snapshot only (no vessel record, no clock), so the
same buckets always produce the same view. ``render_view`` gives the
canonical JSON form used when byte-level equality matters.

To add a template:
1. Write a function ``(buckets) -> dict``
2. Decorate it with ``@register_template("NAME")``
"""

import json
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Dict, List, Mapping

from fleetcompliance.core.errors import UnsupportedTemplateError
from fleetcompliance.core.logging import report_logger
from fleetcompliance.services.aggregator import FUEL_QUANTUM, HOURS_QUANTUM, to_buckets

Buckets = Dict[str, List[Dict[str, str]]]
TemplateShaper = Callable[[Buckets], Dict[str, Any]]

# Template registry - maps template names to shaping functions
_TEMPLATE_REGISTRY: Dict[str, TemplateShaper] = {}


def register_template(name: str):
    """Decorator registering a shaping function under a template name."""
    def decorator(shaper: TemplateShaper) -> TemplateShaper:
        if name in _TEMPLATE_REGISTRY:
            report_logger.warning(f"Overwriting existing report template: {name}")
        _TEMPLATE_REGISTRY[name] = shaper
        return shaper
    return decorator


def supported_templates() -> List[str]:
    return list(_TEMPLATE_REGISTRY.keys())


def resolve_template(name: str) -> str:
    """Canonical template name for ``name`` (case-insensitive)."""
    if isinstance(name, str):
        wanted = name.strip().upper()
        for registered in _TEMPLATE_REGISTRY:
            if registered.upper() == wanted:
                return registered
    raise UnsupportedTemplateError(str(name))


def _fuel(buckets: Buckets) -> List[Dict[str, str]]:
    return buckets.get("fuel", [])


def _machinery(buckets: Buckets) -> List[Dict[str, str]]:
    return buckets.get("machinery", [])


def _sum(entries: List[Dict[str, str]], quantum: Decimal) -> str:
    total = sum((Decimal(entry["total"]) for entry in entries), Decimal("0"))
    return str(total.quantize(quantum))


# ─────────────────────────────────────────────
# Regulatory templates
# ─────────────────────────────────────────────
@register_template("EU_MRV")
def shape_eu_mrv(buckets: Buckets) -> Dict[str, Any]:
    return {
        "regulation": "EU MRV",
        "fuelConsumption": [
            {"fuelType": entry["key"], "consumedMt": entry["total"]} for entry in _fuel(buckets)
        ],
        "totalFuelConsumedMt": _sum(_fuel(buckets), FUEL_QUANTUM),
        "machineryRunningHours": [
            {"machinery": entry["name"], "hours": entry["total"]} for entry in _machinery(buckets)
        ],
    }


@register_template("IMO_DCS")
def shape_imo_dcs(buckets: Buckets) -> Dict[str, Any]:
    return {
        "regulation": "IMO DCS",
        "fuelOilConsumptionMt": {entry["key"]: entry["total"] for entry in _fuel(buckets)},
        "totalFuelOilConsumptionMt": _sum(_fuel(buckets), FUEL_QUANTUM),
        "machineryRunningHours": {entry["name"]: entry["total"] for entry in _machinery(buckets)},
    }


@register_template("DNV")
def shape_dnv(buckets: Buckets) -> Dict[str, Any]:
    return {
        "classSociety": "DNV",
        "consumption": [{"fuel": entry["key"], "mass_t": entry["total"]} for entry in _fuel(buckets)],
        "engines": [{"name": entry["name"], "runningHours": entry["total"]} for entry in _machinery(buckets)],
    }


@register_template("ABS")
def shape_abs(buckets: Buckets) -> Dict[str, Any]:
    rows = [["Fuel", entry["key"], entry["total"]] for entry in _fuel(buckets)]
    rows += [["Machinery", entry["name"], entry["total"]] for entry in _machinery(buckets)]
    return {
        "classSociety": "ABS",
        "columns": ["Category", "Item", "Total"],
        "rows": rows,
    }


@register_template("ClassNK")
def shape_classnk(buckets: Buckets) -> Dict[str, Any]:
    return {
        "classSociety": "ClassNK",
        "fuelTypes": [entry["key"] for entry in _fuel(buckets)],
        "fuelConsumption": {entry["key"]: entry["total"] for entry in _fuel(buckets)},
        "machinery": {entry["name"]: entry["total"] for entry in _machinery(buckets)},
        "totals": {
            "fuelMt": _sum(_fuel(buckets), FUEL_QUANTUM),
            "runningHours": _sum(_machinery(buckets), HOURS_QUANTUM),
        },
    }


def shape(template: str, buckets: Buckets) -> Dict[str, Any]:
    """Template-specific view of a bucket snapshot. Pure."""
    shaper = _TEMPLATE_REGISTRY.get(resolve_template(template))
    return shaper(buckets)


def render_view(view: Mapping[str, Any]) -> str:
    return json.dumps(view, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


@dataclass(frozen=True)
class AssembledReport:
    vessel_id: str
    from_date: date
    to_date: date
    template: str
    buckets: Buckets
    view: Dict[str, Any]


def build_buckets(fuel_totals: Mapping[str, Decimal], machinery_totals: Mapping[str, Decimal]) -> Buckets:
    return {
        "fuel": to_buckets(fuel_totals, "key", FUEL_QUANTUM),
        "machinery": to_buckets(machinery_totals, "name", HOURS_QUANTUM),
    }


def assemble(
    vessel_id: str,
    from_date: date,
    to_date: date,
    template: str,
    fuel_totals: Mapping[str, Decimal],
    machinery_totals: Mapping[str, Decimal],
) -> AssembledReport:
    """Merge category totals into one report payload. Does not touch storage."""
    canonical = resolve_template(template)
    buckets = build_buckets(fuel_totals, machinery_totals)
    return AssembledReport(
        vessel_id=vessel_id,
        from_date=from_date,
        to_date=to_date,
        template=canonical,
        buckets=buckets,
        view=shape(canonical, buckets),
    )
