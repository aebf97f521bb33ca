from __future__ import annotations

import pytest

from src.services.calculations import (
    VarianceSeverity,
    calculate_variance,
    calculate_variance_percent,
    classify_variance,
    efficiency_percent,
    net_consumed,
    yield_percent,
)


def test_net_consumed():
    assert net_consumed(100, 10, 5) == 85
    assert net_consumed(10, 0, 0) == 10


def test_net_consumed_can_go_negative():
    assert net_consumed(5, 8, 2) == -5


def test_variance_is_symmetric():
    assert calculate_variance(110, 100) == 10
    assert calculate_variance(90, 100) == -10
    assert calculate_variance_percent(110, 100) == pytest.approx(10.0)
    assert calculate_variance_percent(90, 100) == pytest.approx(-10.0)


def test_variance_percent_undefined_without_expectation():
    assert calculate_variance_percent(5, 0) is None
    assert calculate_variance(5, 0) == 5


@pytest.mark.parametrize(
    "pct, expected",
    [
        (0, VarianceSeverity.GOOD),
        (2, VarianceSeverity.GOOD),
        (-2, VarianceSeverity.GOOD),
        (2.01, VarianceSeverity.WARNING),
        (-5, VarianceSeverity.WARNING),
        (5.01, VarianceSeverity.CRITICAL),
        (-40, VarianceSeverity.CRITICAL),
        (None, None),
    ],
)
def test_classify_variance_default_bands(pct, expected):
    assert classify_variance(pct) is expected


def test_classify_variance_custom_thresholds():
    assert classify_variance(3, good_threshold=3, warning_threshold=10) is VarianceSeverity.GOOD
    assert classify_variance(9, good_threshold=3, warning_threshold=10) is VarianceSeverity.WARNING


def test_yield_and_efficiency():
    assert yield_percent(95, 5) == pytest.approx(95.0)
    assert yield_percent(0, 0) is None
    assert efficiency_percent(1100, 1200) == pytest.approx(91.6666, rel=1e-4)
    assert efficiency_percent(1100, None) is None
    assert efficiency_percent(1100, 0) is None
