"""Monte Carlo match simulation with percentile-bootstrap intervals."""

from __future__ import annotations

import concurrent.futures
import dataclasses
import logging
import math
import random
import time
from typing import List, Sequence, Tuple

from .context import SimulationContext
from .poisson import PoissonRegression, TeamLike

logger = logging.getLogger(__name__)

HOME_ADVANTAGE_NOISE = 0.05
FATIGUE_NOISE = 0.10
MOTIVATION_NOISE = 0.05


def gaussian(rng: random.Random) -> float:
    """Standard normal draw via the Box-Muller transform."""

    u = 1.0 - rng.random()
    v = 1.0 - rng.random()
    return math.sqrt(-2.0 * math.log(u)) * math.cos(2.0 * math.pi * v)


def sample_poisson(rng: random.Random, lam: float) -> int:
    """Knuth's product-of-uniforms Poisson sampler."""

    if lam <= 0.0:
        return 0
    limit = math.exp(-lam)
    k = 0
    product = 1.0
    while True:
        k += 1
        product *= rng.random()
        if product <= limit:
            return k - 1


def perturb_context(context: SimulationContext, rng: random.Random) -> SimulationContext:
    """Per-trial copy of ``context`` with multiplicative Gaussian noise."""

    return dataclasses.replace(
        context,
        home_advantage=context.home_advantage * (1.0 + HOME_ADVANTAGE_NOISE * gaussian(rng)),
        fatigue=context.fatigue * (1.0 + FATIGUE_NOISE * gaussian(rng)),
        motivation=context.motivation * (1.0 + MOTIVATION_NOISE * gaussian(rng)),
    )


@dataclasses.dataclass(frozen=True, slots=True)
class Scenario:
    home_goals: int
    away_goals: int


@dataclasses.dataclass(frozen=True, slots=True)
class OutcomeInterval:
    lower: float
    upper: float


@dataclasses.dataclass(frozen=True, slots=True)
class BootstrapIntervals:
    win: OutcomeInterval
    draw: OutcomeInterval
    loss: OutcomeInterval


@dataclasses.dataclass(frozen=True, slots=True)
class RiskMetrics:
    volatility: float
    unexpected_factor: float


@dataclasses.dataclass(frozen=True, slots=True)
class ExpectedGoals:
    home: float
    away: float


@dataclasses.dataclass(frozen=True, slots=True)
class SimulationSummary:
    trials: int
    win: float
    draw: float
    loss: float
    expected_goals: ExpectedGoals
    confidence_intervals: BootstrapIntervals
    risk_metrics: RiskMetrics
    scenarios: Tuple[Scenario, ...]


@dataclasses.dataclass(slots=True)
class _ShardTotals:
    wins: int = 0
    draws: int = 0
    losses: int = 0
    home_goals: int = 0
    away_goals: int = 0
    scenarios: List[Scenario] = dataclasses.field(default_factory=list)


def bootstrap_intervals(
    scenarios: Sequence[Scenario],
    rng: random.Random,
    samples: int = 1000,
    sample_size: int = 100,
) -> BootstrapIntervals:
    """95 % percentile-bootstrap intervals for win/draw/loss percentages.

    Each resample draws ``sample_size`` scenarios with replacement; the
    interval bounds are the sorted resample percentages at the 2.5th and
    97.5th percentile positions (indices 25 and 975 for 1000 resamples).
    """

    if not scenarios or samples <= 0 or sample_size <= 0:
        empty = OutcomeInterval(0.0, 0.0)
        return BootstrapIntervals(empty, empty, empty)
    wins: List[float] = []
    draws: List[float] = []
    losses: List[float] = []
    count = len(scenarios)
    for _ in range(samples):
        w = d = l = 0
        for _ in range(sample_size):
            scenario = scenarios[rng.randrange(count)]
            if scenario.home_goals > scenario.away_goals:
                w += 1
            elif scenario.home_goals < scenario.away_goals:
                l += 1
            else:
                d += 1
        scale = 100.0 / sample_size
        wins.append(w * scale)
        draws.append(d * scale)
        losses.append(l * scale)
    lower_index = int(samples * 0.025)
    upper_index = min(samples - 1, int(samples * 0.975))

    def _interval(values: List[float]) -> OutcomeInterval:
        values.sort()
        return OutcomeInterval(values[lower_index], values[upper_index])

    return BootstrapIntervals(_interval(wins), _interval(draws), _interval(losses))


class MonteCarloSimulator:
    """Draws independent Poisson scores under per-trial contextual noise.

    Trials are split into ``shards``; each shard owns a ``random.Random``
    seeded from the run generator, so results depend only on the seed and
    not on ``workers`` (the thread pool size used to run shards).
    """

    def __init__(
        self,
        trials: int = 100_000,
        scenario_stride: int = 100,
        bootstrap_samples: int = 1000,
        bootstrap_size: int = 100,
        shards: int = 4,
        workers: int = 1,
        seed: int | None = None,
    ) -> None:
        if trials < 0:
            raise ValueError("trials must be non-negative")
        if scenario_stride < 1:
            raise ValueError("scenario_stride must be at least 1")
        self.trials = trials
        self.scenario_stride = scenario_stride
        self.bootstrap_samples = bootstrap_samples
        self.bootstrap_size = bootstrap_size
        self.shards = max(1, shards)
        self.workers = max(1, workers)
        self.seed = seed

    def simulate_match(
        self,
        home: TeamLike,
        away: TeamLike,
        model: PoissonRegression,
        context: SimulationContext | None = None,
        rng: random.Random | None = None,
    ) -> SimulationSummary:
        context = context or SimulationContext.neutral()
        rng = rng or random.Random(self.seed)
        start = time.perf_counter()
        bounds = self._shard_bounds()
        seeds = [rng.getrandbits(64) for _ in bounds]
        jobs = [
            (begin, end, shard_seed) for (begin, end), shard_seed in zip(bounds, seeds)
        ]
        if self.workers > 1 and len(jobs) > 1:
            with concurrent.futures.ThreadPoolExecutor(max_workers=self.workers) as pool:
                shards = list(
                    pool.map(lambda job: self._run_shard(home, away, model, context, *job), jobs)
                )
        else:
            shards = [self._run_shard(home, away, model, context, *job) for job in jobs]

        totals = _ShardTotals()
        for shard in shards:
            totals.wins += shard.wins
            totals.draws += shard.draws
            totals.losses += shard.losses
            totals.home_goals += shard.home_goals
            totals.away_goals += shard.away_goals
            totals.scenarios.extend(shard.scenarios)

        trials = max(self.trials, 1)
        win = totals.wins / trials * 100.0
        draw = totals.draws / trials * 100.0
        loss = totals.losses / trials * 100.0
        intervals = bootstrap_intervals(
            totals.scenarios, rng, self.bootstrap_samples, self.bootstrap_size
        )
        summary = SimulationSummary(
            trials=self.trials,
            win=win,
            draw=draw,
            loss=loss,
            expected_goals=ExpectedGoals(
                home=totals.home_goals / trials, away=totals.away_goals / trials
            ),
            confidence_intervals=intervals,
            risk_metrics=RiskMetrics(
                volatility=math.sqrt(win * (100.0 - win)) / 10.0,
                unexpected_factor=abs(totals.home_goals - totals.away_goals) / trials,
            ),
            scenarios=tuple(totals.scenarios),
        )
        logger.debug(
            "Simulated %d trials %s vs %s in %.2fs: %.1f/%.1f/%.1f",
            self.trials,
            home.name,
            away.name,
            time.perf_counter() - start,
            win,
            draw,
            loss,
        )
        return summary

    def _shard_bounds(self) -> List[Tuple[int, int]]:
        size = math.ceil(self.trials / self.shards) if self.trials else 0
        bounds: List[Tuple[int, int]] = []
        begin = 0
        while begin < self.trials:
            end = min(self.trials, begin + size)
            bounds.append((begin, end))
            begin = end
        return bounds

    def _run_shard(
        self,
        home: TeamLike,
        away: TeamLike,
        model: PoissonRegression,
        context: SimulationContext,
        begin: int,
        end: int,
        shard_seed: int,
    ) -> _ShardTotals:
        rng = random.Random(shard_seed)
        totals = _ShardTotals()
        for index in range(begin, end):
            varied = perturb_context(context, rng)
            home_rate = model.lambda_(home, away, True, varied)
            away_rate = model.lambda_(away, home, False, varied)
            home_goals = sample_poisson(rng, home_rate)
            away_goals = sample_poisson(rng, away_rate)
            if home_goals > away_goals:
                totals.wins += 1
            elif home_goals < away_goals:
                totals.losses += 1
            else:
                totals.draws += 1
            totals.home_goals += home_goals
            totals.away_goals += away_goals
            if index % self.scenario_stride == 0:
                totals.scenarios.append(Scenario(home_goals, away_goals))
        return totals


__all__ = [
    "BootstrapIntervals",
    "ExpectedGoals",
    "MonteCarloSimulator",
    "OutcomeInterval",
    "RiskMetrics",
    "Scenario",
    "SimulationSummary",
    "bootstrap_intervals",
    "gaussian",
    "perturb_context",
    "sample_poisson",
]
