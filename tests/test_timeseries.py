from __future__ import annotations

import math
import random

import pytest
from hypothesis import given, strategies as st

from matchcast import timeseries


@given(
    st.lists(
        st.floats(min_value=-1e3, max_value=1e3, allow_nan=False, allow_infinity=False),
        max_size=30,
    ),
    st.integers(min_value=1, max_value=6),
)
def test_decomposition_round_trip(series: list[float], period: int) -> None:
    parts = timeseries.decompose(series, period)
    assert len(parts.trend) == len(parts.seasonal) == len(parts.residual) == len(series)
    for i, value in enumerate(series):
        rebuilt = parts.trend[i] + parts.seasonal[i] + parts.residual[i]
        assert rebuilt == pytest.approx(value, abs=1e-6)


def test_decompose_uses_truncated_centred_window() -> None:
    parts = timeseries.decompose([1.0, 2.0, 3.0, 4.0, 5.0], period=2)
    # half-width 1: edges average two points, interior three
    assert parts.trend == pytest.approx((1.5, 2.0, 3.0, 4.0, 4.5))


def test_decompose_empty_series() -> None:
    parts = timeseries.decompose([])
    assert parts.trend == parts.seasonal == parts.residual == ()


def test_forecast_bands_widen_per_step() -> None:
    series = [70.0, 72.0, 74.0, 76.0]
    result = timeseries.forecast(series, horizon=3, rng=random.Random(3))
    assert len(result.values) == 3
    for step, value in enumerate(result.values, start=1):
        assert result.upper[step - 1] - value == pytest.approx(1.5 * step)
        assert result.lower[step - 1] == pytest.approx(max(0.0, value - 1.5 * step))
        # slope (76 - 70) / 4 with at most one unit of noise
        assert abs(value - (76.0 + 1.5 * step)) <= 1.0


def test_forecast_is_reproducible_with_seeded_rng() -> None:
    series = [10.0, 12.0, 11.0]
    first = timeseries.forecast(series, rng=random.Random(9))
    second = timeseries.forecast(series, rng=random.Random(9))
    assert first == second


def test_forecast_of_empty_series_starts_from_zero() -> None:
    result = timeseries.forecast([], horizon=2, rng=random.Random(1))
    assert all(abs(value) <= 1.0 for value in result.values)
    assert all(lower >= 0.0 for lower in result.lower)


def test_garch_recursion_on_flat_series() -> None:
    model = timeseries.volatility([50.0] * 5)
    expected = [0.0]
    variance = 0.0
    for _ in range(4):
        variance = 0.05 + 0.8 * variance
        expected.append(math.sqrt(variance))
    assert model.conditional == pytest.approx(tuple(expected))
    assert model.var95 == pytest.approx(expected[-1] * 1.645)
    assert model.expected_shortfall == pytest.approx(expected[-1] * 2.06)


def test_volatility_degenerate_series() -> None:
    assert timeseries.volatility([]).conditional == (0.0,)
    assert timeseries.volatility([1.0]).var95 == 0.0
    single = timeseries.volatility([1.0, 2.0])
    # one return of 100 % seeds sigma with its magnitude
    assert single.conditional[0] == pytest.approx(1.0)


def test_simple_returns_guard_zero_denominator() -> None:
    assert timeseries.simple_returns([0.0, 2.0, 3.0]) == pytest.approx([2.0, 0.5])


def test_analyze_bundles_all_views() -> None:
    series = [75.0 + math.sin(i) for i in range(12)]
    result = timeseries.analyze(series, rng=random.Random(5))
    assert len(result.decomposition.trend) == 12
    assert len(result.forecast.values) == 3
    assert result.volatility.var95 > 0.0
