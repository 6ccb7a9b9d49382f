"""Time-series analytics for team performance series.

The analyzer provides three independent views of a short form series:

* an additive decomposition into trend, seasonal and residual parts,
* a naive linear extrapolation with widening bands (an approximate
  placeholder, not a fitted ARIMA model),
* a GARCH(1,1) conditional volatility recursion with VaR/expected shortfall.
"""

from __future__ import annotations

import dataclasses
import logging
import math
import random
import statistics
from typing import List, Sequence, Tuple

logger = logging.getLogger(__name__)

GARCH_OMEGA = 0.05
GARCH_ALPHA = 0.15
GARCH_BETA = 0.8
VAR95_MULTIPLIER = 1.645
EXPECTED_SHORTFALL_MULTIPLIER = 2.06
BAND_WIDTH_PER_STEP = 1.5


@dataclasses.dataclass(frozen=True, slots=True)
class Decomposition:
    trend: Tuple[float, ...]
    seasonal: Tuple[float, ...]
    residual: Tuple[float, ...]


@dataclasses.dataclass(frozen=True, slots=True)
class Forecast:
    values: Tuple[float, ...]
    upper: Tuple[float, ...]
    lower: Tuple[float, ...]


@dataclasses.dataclass(frozen=True, slots=True)
class VolatilityModel:
    conditional: Tuple[float, ...]
    var95: float
    expected_shortfall: float


@dataclasses.dataclass(frozen=True, slots=True)
class TimeSeriesAnalytics:
    decomposition: Decomposition
    forecast: Forecast
    volatility: VolatilityModel


def decompose(series: Sequence[float], period: int = 4) -> Decomposition:
    """Additive decomposition with a boundary-truncated centred moving average.

    ``trend[i] + seasonal[i] + residual[i]`` reproduces ``series[i]``.
    """

    data = [float(value) for value in series]
    n = len(data)
    period = max(1, int(period))
    half = period // 2
    trend: List[float] = []
    for i in range(n):
        window = data[max(0, i - half) : min(n, i + half + 1)]
        trend.append(sum(window) / len(window))
    totals = [0.0] * period
    counts = [0] * period
    for i, value in enumerate(data):
        totals[i % period] += value - trend[i]
        counts[i % period] += 1
    pattern = [totals[i] / (counts[i] or 1) for i in range(period)]
    seasonal = [pattern[i % period] for i in range(n)]
    residual = [data[i] - trend[i] - seasonal[i] for i in range(n)]
    return Decomposition(tuple(trend), tuple(seasonal), tuple(residual))


def forecast(
    series: Sequence[float],
    horizon: int = 3,
    rng: random.Random | None = None,
) -> Forecast:
    """Extrapolate the endpoint slope ``horizon`` steps ahead.

    Uniform noise in ``[-1, 1]`` is added per step and the bands widen by
    1.5 per step; the lower band is floored at zero.
    """

    rng = rng or random.Random()
    data = [float(value) for value in series]
    last = data[-1] if data else 0.0
    slope = (data[-1] - data[0]) / len(data) if data else 0.0
    values = [last + slope * (step + 1) + (rng.random() - 0.5) * 2.0 for step in range(horizon)]
    upper = [value + (step + 1) * BAND_WIDTH_PER_STEP for step, value in enumerate(values)]
    lower = [
        max(0.0, value - (step + 1) * BAND_WIDTH_PER_STEP) for step, value in enumerate(values)
    ]
    return Forecast(tuple(values), tuple(upper), tuple(lower))


def simple_returns(series: Sequence[float]) -> List[float]:
    data = [float(value) for value in series]
    return [(data[i] - data[i - 1]) / (data[i - 1] or 1.0) for i in range(1, len(data))]


def volatility(
    series: Sequence[float],
    omega: float = GARCH_OMEGA,
    alpha: float = GARCH_ALPHA,
    beta: float = GARCH_BETA,
) -> VolatilityModel:
    """Fit the GARCH(1,1) recursion ``σ²ₜ = ω + α·r²ₜ₋₁ + β·σ²ₜ₋₁``."""

    returns = simple_returns(series)
    if len(returns) >= 2:
        sigma = statistics.stdev(returns)
    elif returns:
        sigma = abs(returns[0])
    else:
        sigma = 0.0
    conditional = [sigma]
    for value in returns:
        sigma = math.sqrt(omega + alpha * value * value + beta * sigma * sigma)
        conditional.append(sigma)
    return VolatilityModel(
        conditional=tuple(conditional),
        var95=sigma * VAR95_MULTIPLIER,
        expected_shortfall=sigma * EXPECTED_SHORTFALL_MULTIPLIER,
    )


def analyze(
    series: Sequence[float],
    period: int = 4,
    horizon: int = 3,
    rng: random.Random | None = None,
    omega: float = GARCH_OMEGA,
    alpha: float = GARCH_ALPHA,
    beta: float = GARCH_BETA,
) -> TimeSeriesAnalytics:
    result = TimeSeriesAnalytics(
        decomposition=decompose(series, period),
        forecast=forecast(series, horizon, rng),
        volatility=volatility(series, omega, alpha, beta),
    )
    logger.debug(
        "Analysed series of %d points: VaR95 %.4f", len(series), result.volatility.var95
    )
    return result


__all__ = [
    "Decomposition",
    "Forecast",
    "TimeSeriesAnalytics",
    "VolatilityModel",
    "analyze",
    "decompose",
    "forecast",
    "simple_returns",
    "volatility",
]
