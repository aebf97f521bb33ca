from __future__ import annotations

import logging
import math
from uuid import uuid4

import pytest

from src.services.calculations import (
    BomLine,
    ConversionMethod,
    TypeConversion,
    calculate_bom_suggestions,
    calculate_derived_units,
    calculate_suggested_quantity,
    conversion_value,
    format_quantity,
    normalize_conversion_method,
    round_half_up,
    usable_units,
)

PREFORM = TypeConversion("formula-based", base_unit_weight=25, weight_per_derived_unit=21, loss_percent=5)
CAP = TypeConversion("direct-value", derived_value_per_base=6930)
LABEL = TypeConversion("output-coverage", output_units_covered=2500)


def test_formula_based_conversion_is_not_rounded():
    value = conversion_value(TypeConversion("formula-based", base_unit_weight=25, weight_per_derived_unit=21))
    assert value == pytest.approx(25 * 1000 / 21)
    assert round(value, 2) == 1190.48


def test_direct_and_coverage_conversion_use_their_field():
    assert conversion_value(CAP) == 6930
    assert conversion_value(LABEL) == 2500


@pytest.mark.parametrize(
    "details",
    [
        TypeConversion("formula-based", base_unit_weight=25),
        TypeConversion("formula-based", base_unit_weight=0, weight_per_derived_unit=21),
        TypeConversion("direct-value", derived_value_per_base=-5),
        TypeConversion("output-coverage"),
        TypeConversion("manual"),
    ],
)
def test_conversion_value_missing_fields(details):
    assert conversion_value(details) is None


@pytest.mark.parametrize("loss, expected", [(0, 1190), (5, 1131), (50, 595), (100, 0)])
def test_usable_units_after_loss(loss, expected):
    assert usable_units(25 * 1000 / 21, loss) == expected


def test_usable_units_rejects_loss_out_of_range():
    with pytest.raises(ValueError):
        usable_units(100, 101)
    with pytest.raises(ValueError):
        usable_units(100, -1)


def test_round_half_up():
    assert round_half_up(0.5) == 1
    assert round_half_up(2.5) == 3
    assert round_half_up(2.49) == 2


@pytest.mark.parametrize(
    "label, expected",
    [
        ("Formula-Based", ConversionMethod.FORMULA_BASED),
        ("formula_based", ConversionMethod.FORMULA_BASED),
        ("Direct", ConversionMethod.DIRECT_VALUE),
        ("Output Coverage", ConversionMethod.OUTPUT_COVERAGE),
        ("", ConversionMethod.MANUAL),
        (None, ConversionMethod.MANUAL),
        ("by weight", ConversionMethod.MANUAL),
    ],
)
def test_normalize_conversion_method(label, expected):
    assert normalize_conversion_method(label) is expected


def test_formula_based_suggestion():
    rm = uuid4()
    result = calculate_suggested_quantity(BomLine(rm, 1, type_details=PREFORM), 1200)
    assert result.usable_units == 1131
    assert result.suggested_quantity == pytest.approx(1200 / 1131)
    assert result.rounded_quantity == 2
    assert result.calculation_basis is ConversionMethod.FORMULA_BASED
    assert result.calculation_details == "Formula-Based: 1 x 1200 units / 1131 usable units per base"


def test_quantity_required_scales_formula_and_direct_but_not_coverage():
    rm = uuid4()
    direct = calculate_suggested_quantity(BomLine(rm, 2, type_details=CAP), 6930)
    coverage = calculate_suggested_quantity(BomLine(rm, 3, type_details=LABEL), 5000)
    assert direct.suggested_quantity == pytest.approx(2.0)
    assert direct.rounded_quantity == 2
    assert coverage.suggested_quantity == pytest.approx(2.0)
    assert coverage.calculation_basis is ConversionMethod.OUTPUT_COVERAGE


def test_rounded_quantity_is_ceiling():
    result = calculate_suggested_quantity(BomLine(uuid4(), 1, type_details=LABEL), 2501)
    assert result.rounded_quantity == 2 == math.ceil(result.suggested_quantity)


def test_full_loss_line_is_omitted_with_warning(caplog):
    rm = uuid4()
    lost = TypeConversion("direct-value", derived_value_per_base=100, loss_percent=100)
    with caplog.at_level(logging.WARNING, logger="src.services.calculations"):
        result = calculate_bom_suggestions(500, [BomLine(rm, 1, type_details=lost)])
    assert result == {}
    assert "no usable units" in caplog.text


def test_incomplete_line_is_omitted_and_others_kept():
    good, bad = uuid4(), uuid4()
    lines = [
        BomLine(good, 1, type_details=CAP),
        BomLine(bad, 1, type_details=TypeConversion("formula-based", base_unit_weight=25)),
    ]
    result = calculate_bom_suggestions(6930, lines)
    assert list(result) == [good]


def test_manual_fallback_without_type_details():
    rm, uom = uuid4(), uuid4()
    result = calculate_bom_suggestions(100, [BomLine(rm, 2.5, uom_id=uom)])[rm]
    assert result.calculation_basis is ConversionMethod.MANUAL
    assert result.suggested_quantity == 250
    assert result.rounded_quantity == 250
    assert result.uom_id == uom
    assert result.calculation_details.startswith("Basic BOM")


def test_invalid_quantity_requires_manual_entry():
    rm = uuid4()
    result = calculate_bom_suggestions(100, [BomLine(rm, -1, type_details=CAP)])[rm]
    assert result.suggested_quantity == 0
    assert result.rounded_quantity == 0
    assert result.calculation_details == "Manual entry required (invalid quantity)"


def test_lines_without_material_and_non_positive_plan():
    assert calculate_bom_suggestions(100, [BomLine(None, 1, type_details=CAP)]) == {}
    assert calculate_bom_suggestions(0, [BomLine(uuid4(), 1, type_details=CAP)]) == {}
    assert calculate_bom_suggestions(-5, [BomLine(uuid4(), 1, type_details=CAP)]) == {}


def test_derived_units_for_cases():
    derived = calculate_derived_units(100, 12)
    assert derived == 1200.0
    assert format_quantity(derived) == "1200.00"
    assert calculate_derived_units(2.5, 6) == 15.0
    assert calculate_derived_units(5, None) == 0.0
