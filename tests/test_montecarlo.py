from __future__ import annotations

import random

import pytest

from matchcast.context import SimulationContext
from matchcast.montecarlo import (
    MonteCarloSimulator,
    Scenario,
    bootstrap_intervals,
    gaussian,
    perturb_context,
    sample_poisson,
)
from matchcast.poisson import PoissonRegression


def test_poisson_sampler_mean() -> None:
    rng = random.Random(42)
    draws = [sample_poisson(rng, 1.5) for _ in range(10_000)]
    assert sum(draws) / len(draws) == pytest.approx(1.5, rel=0.05)
    assert sample_poisson(rng, 0.0) == 0
    assert sample_poisson(rng, -1.0) == 0


def test_gaussian_moments() -> None:
    rng = random.Random(7)
    draws = [gaussian(rng) for _ in range(20_000)]
    mean = sum(draws) / len(draws)
    variance = sum((x - mean) ** 2 for x in draws) / (len(draws) - 1)
    assert abs(mean) < 0.05
    assert variance == pytest.approx(1.0, rel=0.05)


def test_perturb_context_keeps_original() -> None:
    context = SimulationContext.neutral()
    varied = perturb_context(context, random.Random(1))
    assert context == SimulationContext.neutral()
    assert varied.weather is context.weather
    assert varied.importance == context.importance
    assert varied.home_advantage != context.home_advantage


def test_simulation_outcomes_sum_to_100(home_team, away_team) -> None:
    simulator = MonteCarloSimulator(trials=2000, scenario_stride=10, bootstrap_samples=200)
    summary = simulator.simulate_match(home_team, away_team, PoissonRegression(), rng=random.Random(3))
    assert summary.trials == 2000
    assert summary.win + summary.draw + summary.loss == pytest.approx(100.0)
    assert len(summary.scenarios) == 200
    assert summary.expected_goals.home > 0.0
    assert summary.risk_metrics.volatility == pytest.approx(
        (summary.win * (100.0 - summary.win)) ** 0.5 / 10.0
    )


def test_simulation_is_deterministic_regardless_of_workers(home_team, away_team) -> None:
    model = PoissonRegression()
    serial = MonteCarloSimulator(trials=3000, scenario_stride=10, bootstrap_samples=100, workers=1)
    threaded = MonteCarloSimulator(
        trials=3000, scenario_stride=10, bootstrap_samples=100, workers=3
    )
    first = serial.simulate_match(home_team, away_team, model, rng=random.Random(11))
    second = threaded.simulate_match(home_team, away_team, model, rng=random.Random(11))
    assert first == second


def test_bootstrap_interval_brackets_point_estimate(home_team, away_team) -> None:
    simulator = MonteCarloSimulator(trials=20_000, scenario_stride=10)
    summary = simulator.simulate_match(home_team, away_team, PoissonRegression(), rng=random.Random(5))
    intervals = summary.confidence_intervals
    for point, interval in (
        (summary.win, intervals.win),
        (summary.draw, intervals.draw),
        (summary.loss, intervals.loss),
    ):
        assert interval.lower <= point <= interval.upper


def test_bootstrap_intervals_shrink_with_larger_resamples() -> None:
    rng = random.Random(8)
    pool = [Scenario(rng.randint(0, 3), rng.randint(0, 3)) for _ in range(500)]
    narrow = bootstrap_intervals(pool, random.Random(1), samples=1000, sample_size=1000)
    wide = bootstrap_intervals(pool, random.Random(1), samples=1000, sample_size=100)
    assert narrow.win.upper - narrow.win.lower < wide.win.upper - wide.win.lower
    assert narrow.draw.upper - narrow.draw.lower < wide.draw.upper - wide.draw.lower


def test_bootstrap_of_empty_pool_is_zero() -> None:
    intervals = bootstrap_intervals([], random.Random(0))
    assert intervals.win.lower == intervals.win.upper == 0.0


def test_zero_trials(home_team, away_team) -> None:
    summary = MonteCarloSimulator(trials=0).simulate_match(
        home_team, away_team, PoissonRegression(), rng=random.Random(0)
    )
    assert summary.win == summary.draw == summary.loss == 0.0
    assert summary.scenarios == ()


def test_invalid_arguments_rejected() -> None:
    with pytest.raises(ValueError):
        MonteCarloSimulator(trials=-1)
    with pytest.raises(ValueError):
        MonteCarloSimulator(scenario_stride=0)
