"""
Pure calculation helpers for material planning and production accounting.

Nothing here touches the database; services load rows, map them onto the
dataclasses below and call these functions.

BOM suggestion
--------------
For each BOM line of a product the number of base units (bags, boxes, rolls)
of a raw material needed for a planned output is derived from the material's
type conversion:

    formula-based    conversion_value = base_unit_weight(kg) * 1000 / weight_per_derived_unit(g)
    direct-value     conversion_value = derived_value_per_base
    output-coverage  conversion_value = output_units_covered

    usable_units       = round(conversion_value * (1 - loss_percent / 100))
    suggested_quantity = quantity_required * planned_output / usable_units
                         (planned_output / usable_units for output-coverage)
    rounded_quantity   = ceil(suggested_quantity)

Lines whose type data is incomplete, or whose usable units come out as 0, are
left out of the result and a warning is logged.
"""

from __future__ import annotations

import enum
import logging
import math
from dataclasses import dataclass
from typing import Dict, Iterable, Optional
from uuid import UUID

logger = logging.getLogger(__name__)

DEFAULT_GOOD_THRESHOLD = 2.0
DEFAULT_WARNING_THRESHOLD = 5.0


class ConversionMethod(str, enum.Enum):
    FORMULA_BASED = "formula-based"
    DIRECT_VALUE = "direct-value"
    OUTPUT_COVERAGE = "output-coverage"
    MANUAL = "manual"


class VarianceSeverity(str, enum.Enum):
    GOOD = "good"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class TypeConversion:
    """Conversion settings of a raw material type."""

    conversion_method: Optional[str]
    base_unit_weight: Optional[float] = None
    weight_per_derived_unit: Optional[float] = None
    derived_value_per_base: Optional[float] = None
    output_units_covered: Optional[float] = None
    loss_percent: Optional[float] = 0.0


@dataclass(frozen=True)
class BomLine:
    raw_material_id: Optional[UUID]
    quantity_required: Optional[float] = 1.0
    uom_id: Optional[UUID] = None
    type_details: Optional[TypeConversion] = None


@dataclass(frozen=True)
class BomSuggestion:
    suggested_quantity: float
    rounded_quantity: int
    calculation_basis: ConversionMethod
    calculation_details: str
    uom_id: Optional[UUID] = None
    conversion_value: Optional[float] = None
    usable_units: Optional[int] = None


def _number(value) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(num) or math.isinf(num):
        return None
    return num


def _positive(value) -> Optional[float]:
    num = _number(value)
    if num is None or num <= 0:
        return None
    return num


def _fmt(value: float) -> str:
    return f"{value:g}"


# PUBLIC_INTERFACE
def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (floor(x + 0.5))."""
    return int(math.floor(value + 0.5))


# PUBLIC_INTERFACE
def normalize_conversion_method(method: Optional[str]) -> ConversionMethod:
    """
    Map free-form method labels ("Formula-Based", "direct", "Output Coverage")
    onto ConversionMethod. Anything unrecognised is treated as manual.
    """
    if isinstance(method, ConversionMethod):
        return method
    if not method:
        return ConversionMethod.MANUAL
    key = str(method).strip().lower().replace("_", "-").replace(" ", "-")
    if key.startswith("formula"):
        return ConversionMethod.FORMULA_BASED
    if key.startswith("direct"):
        return ConversionMethod.DIRECT_VALUE
    if key.startswith("output") or key == "coverage":
        return ConversionMethod.OUTPUT_COVERAGE
    return ConversionMethod.MANUAL


# PUBLIC_INTERFACE
def conversion_value(details: TypeConversion) -> Optional[float]:
    """
    Derived units per base unit for a type, or None when the fields required by
    its method are missing or not positive. Not rounded.
    """
    method = normalize_conversion_method(details.conversion_method)
    if method is ConversionMethod.FORMULA_BASED:
        weight_kg = _positive(details.base_unit_weight)
        per_unit_g = _positive(details.weight_per_derived_unit)
        if weight_kg is None or per_unit_g is None:
            return None
        return weight_kg * 1000 / per_unit_g
    if method is ConversionMethod.DIRECT_VALUE:
        return _positive(details.derived_value_per_base)
    if method is ConversionMethod.OUTPUT_COVERAGE:
        return _positive(details.output_units_covered)
    return None


# PUBLIC_INTERFACE
def usable_units(conversion: float, loss_percent: Optional[float] = 0.0) -> int:
    """
    Derived units left per base unit after process loss.

    Raises:
        ValueError: loss_percent outside 0..100.
    """
    loss = _number(loss_percent) or 0.0
    if loss < 0 or loss > 100:
        raise ValueError(f"loss_percent must be between 0 and 100, got {loss_percent!r}")
    return round_half_up(conversion * (1 - loss / 100))


# PUBLIC_INTERFACE
def calculate_suggested_quantity(
    line: BomLine, planned_output: float
) -> Optional[BomSuggestion]:
    """
    Suggest the quantity of one BOM line's material for a planned output.

    Returns:
        BomSuggestion, or None when the line has to be left out (incomplete
        type data, usable units of 0, no raw material).
    """
    if line.raw_material_id is None:
        logger.warning("Skipping BOM line without raw material id")
        return None

    planned = _number(planned_output)
    if planned is None or planned <= 0:
        return None

    qty_required = 1.0 if line.quantity_required is None else _number(line.quantity_required)
    if qty_required is None or qty_required < 0:
        return BomSuggestion(
            suggested_quantity=0.0,
            rounded_quantity=0,
            calculation_basis=ConversionMethod.MANUAL,
            calculation_details="Manual entry required (invalid quantity)",
            uom_id=line.uom_id,
        )

    details = line.type_details
    method = normalize_conversion_method(details.conversion_method if details else None)
    if details is None or method is ConversionMethod.MANUAL:
        suggested = planned * qty_required
        return BomSuggestion(
            suggested_quantity=suggested,
            rounded_quantity=math.ceil(suggested),
            calculation_basis=ConversionMethod.MANUAL,
            calculation_details=f"Basic BOM: {_fmt(planned)} units x {_fmt(qty_required)} per unit",
            uom_id=line.uom_id,
        )

    conv = conversion_value(details)
    if conv is None:
        logger.warning(
            "Skipping raw material %s: incomplete %s conversion data", line.raw_material_id, method.value
        )
        return None

    try:
        usable = usable_units(conv, details.loss_percent)
    except ValueError as exc:
        logger.warning("Skipping raw material %s: %s", line.raw_material_id, exc)
        return None
    if usable <= 0:
        logger.warning(
            "Skipping raw material %s: no usable units after %s%% loss",
            line.raw_material_id,
            _fmt(_number(details.loss_percent) or 0.0),
        )
        return None

    if method is ConversionMethod.OUTPUT_COVERAGE:
        suggested = planned / usable
        explain = f"Output-Coverage: {_fmt(planned)} units / {usable} units covered"
    elif method is ConversionMethod.DIRECT_VALUE:
        suggested = qty_required * planned / usable
        explain = f"Direct-Value: {_fmt(qty_required)} x {_fmt(planned)} units / {usable} pcs per base"
    else:
        suggested = qty_required * planned / usable
        explain = f"Formula-Based: {_fmt(qty_required)} x {_fmt(planned)} units / {usable} usable units per base"

    return BomSuggestion(
        suggested_quantity=suggested,
        rounded_quantity=math.ceil(suggested),
        calculation_basis=method,
        calculation_details=explain,
        uom_id=line.uom_id,
        conversion_value=conv,
        usable_units=usable,
    )


# PUBLIC_INTERFACE
def calculate_bom_suggestions(
    planned_output: float, bom_lines: Iterable[BomLine]
) -> Dict[UUID, BomSuggestion]:
    """
    Compute suggestions for every BOM line of a product.

    Parameters:
        planned_output: number of finished units planned (must be > 0)
        bom_lines: BOM lines with their raw material type conversion details
    Returns:
        Mapping raw_material_id -> BomSuggestion. Lines that cannot be
        computed are omitted; an empty mapping is returned for planned_output <= 0.
    """
    planned = _number(planned_output)
    if planned is None or planned <= 0:
        return {}

    suggestions: Dict[UUID, BomSuggestion] = {}
    for line in bom_lines:
        suggestion = calculate_suggested_quantity(line, planned)
        if suggestion is not None:
            suggestions[line.raw_material_id] = suggestion
    return suggestions


# PUBLIC_INTERFACE
def calculate_derived_units(produced_quantity: float, usable_derived_units: Optional[float]) -> float:
    """Derived units (e.g. bottles) for a produced base quantity (e.g. cases), 2 dp."""
    per_base = _number(usable_derived_units)
    if per_base is None:
        return 0.0
    return round(float(produced_quantity) * per_base, 2)


def format_quantity(value: Optional[float], places: int = 2) -> str:
    """Fixed-point display string, e.g. 1200 -> '1200.00'."""
    return f"{(value or 0.0):.{places}f}"


# PUBLIC_INTERFACE
def net_consumed(quantity_used: float, quantity_returned: float = 0.0, quantity_pending: float = 0.0) -> float:
    """used - returned - pending. Negative results are returned as-is."""
    return float(quantity_used or 0) - float(quantity_returned or 0) - float(quantity_pending or 0)


# PUBLIC_INTERFACE
def calculate_variance(issued: float, expected: float) -> float:
    """Positive when more was issued than expected."""
    return float(issued or 0) - float(expected or 0)


# PUBLIC_INTERFACE
def calculate_variance_percent(issued: float, expected: float) -> Optional[float]:
    """Variance as a percentage of expected, None when expected is 0."""
    expected_f = float(expected or 0)
    if expected_f == 0:
        return None
    return calculate_variance(issued, expected_f) / expected_f * 100


# PUBLIC_INTERFACE
def classify_variance(
    variance_percent: Optional[float],
    good_threshold: float = DEFAULT_GOOD_THRESHOLD,
    warning_threshold: float = DEFAULT_WARNING_THRESHOLD,
) -> Optional[VarianceSeverity]:
    """Band |variance %| into good / warning / critical. None stays None."""
    if variance_percent is None:
        return None
    magnitude = abs(variance_percent)
    if magnitude <= good_threshold:
        return VarianceSeverity.GOOD
    if magnitude <= warning_threshold:
        return VarianceSeverity.WARNING
    return VarianceSeverity.CRITICAL


def yield_percent(produced: float, rejected: float = 0.0) -> Optional[float]:
    total = float(produced or 0) + float(rejected or 0)
    if total <= 0:
        return None
    return float(produced or 0) / total * 100


def efficiency_percent(produced: float, planned_output: Optional[float]) -> Optional[float]:
    planned = _number(planned_output)
    if not planned:
        return None
    return float(produced or 0) / planned * 100
