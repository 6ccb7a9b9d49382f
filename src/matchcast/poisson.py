"""Poisson regression scoring model over team attack and defence strengths."""

from __future__ import annotations

import dataclasses
import logging
import math
import threading
from typing import (
    Any,
    Dict,
    Iterable,
    List,
    Mapping,
    Protocol,
    SupportsFloat,
    SupportsIndex,
    SupportsInt,
    Tuple,
    runtime_checkable,
)

import polars as pl

from .context import NEUTRAL_FATIGUE, NEUTRAL_MOTIVATION, SimulationContext, Weather

logger = logging.getLogger(__name__)

DEFAULT_HOME_ADVANTAGE = 1.22
DEFAULT_LEAGUE_AVERAGE_GOALS = 1.35
DEFAULT_MOTIVATION = 80.0
DEFAULT_FATIGUE = 10.0

MOTIVATION_EXPONENT = 0.4
FATIGUE_EXPONENT = 0.3
WEATHER_EXPONENT = 0.1

WEATHER_FACTORS: Mapping[Weather, float] = {
    Weather.CLEAR: 1.0,
    Weather.WINDY: 1.0,
    Weather.RAIN: 0.92,
    Weather.EXTREME: 0.85,
}

STRENGTH_FLOOR = 0.05
HOME_ADVANTAGE_FLOOR = 0.5
PSEUDO_GOALS = 0.5


@runtime_checkable
class TeamLike(Protocol):
    """Attributes the scoring model reads from a team."""

    name: str
    attack_power: float
    defense_power: float


@dataclasses.dataclass(frozen=True, slots=True)
class ScoreProbability:
    home_goals: int
    away_goals: int
    probability: float
    cumulative: float = 0.0

    @property
    def score(self) -> str:
        return f"{self.home_goals}-{self.away_goals}"


@dataclasses.dataclass(frozen=True, slots=True)
class ExtraMarkets:
    """Closed-form auxiliary markets, expressed in percent."""

    both_teams_score: float
    over_2_5: float


@dataclasses.dataclass(frozen=True, slots=True)
class RateInterval:
    lower: float
    upper: float


@dataclasses.dataclass(frozen=True, slots=True)
class RateIntervals:
    home: RateInterval
    away: RateInterval


@dataclasses.dataclass(slots=True)
class MatchRecord:
    """A historical result used to calibrate team strengths."""

    home_team: str
    away_team: str
    home_goals: int
    away_goals: int


@dataclasses.dataclass(frozen=True, slots=True)
class TrainingReport:
    iterations: int
    converged: bool
    max_delta: float
    teams: int


def _coerce_str(value: object | None, field: str) -> str:
    if value is None:
        raise TypeError(f"Missing required field {field}")
    if isinstance(value, str):
        return value
    return str(value)


def _coerce_int(value: object | None, field: str) -> int:
    if value is None:
        raise TypeError(f"Missing required field {field}")
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, (float, str)):
        return int(value)
    if isinstance(value, (SupportsInt, SupportsIndex)):
        return int(value)
    raise TypeError(
        f"Field {field} expected int-compatible value, got {type(value).__name__}"
    )


def build_match_records(
    history: pl.DataFrame | Iterable[MatchRecord | Mapping[str, object] | object],
) -> List[MatchRecord]:
    """Normalise frames, mappings or attribute objects into :class:`MatchRecord`."""

    rows: Iterable[Any]
    if isinstance(history, pl.DataFrame):
        rows = history.iter_rows(named=True)
    else:
        rows = history
    records: List[MatchRecord] = []
    for row in rows:
        if isinstance(row, MatchRecord):
            records.append(row)
            continue
        if isinstance(row, Mapping):
            values: Mapping[str, object] = row
        else:
            values = {
                "home_team": getattr(row, "home_team", None),
                "away_team": getattr(row, "away_team", None),
                "home_goals": getattr(row, "home_goals", None),
                "away_goals": getattr(row, "away_goals", None),
            }
        records.append(
            MatchRecord(
                home_team=_coerce_str(values.get("home_team"), "home_team"),
                away_team=_coerce_str(values.get("away_team"), "away_team"),
                home_goals=_coerce_int(values.get("home_goals"), "home_goals"),
                away_goals=_coerce_int(values.get("away_goals"), "away_goals"),
            )
        )
    return records


def _power_strength(power: object) -> float:
    if isinstance(power, (int, float)) and power > 0:
        return float(power) / 100.0
    if isinstance(power, SupportsFloat):
        value = float(power)
        if value > 0:
            return value / 100.0
    return 1.0


class PoissonRegression:
    """Scoring-rate model ``λ = μ · attack · defence⁻¹ · home · modifiers``.

    Learned strengths are empty until :meth:`train` runs; until then
    strengths fall back to ``power / 100``.  Training swaps in new strength
    maps under a lock so concurrent readers always see a consistent snapshot.
    """

    def __init__(
        self,
        home_advantage: float = DEFAULT_HOME_ADVANTAGE,
        league_average_goals: float = DEFAULT_LEAGUE_AVERAGE_GOALS,
        convergence_threshold: float = 1e-6,
        max_iterations: int = 500,
    ) -> None:
        if league_average_goals <= 0:
            raise ValueError("league_average_goals must be positive")
        self.home_advantage = home_advantage
        self.league_average_goals = league_average_goals
        self.convergence_threshold = convergence_threshold
        self.max_iterations = max_iterations
        self._attack: Dict[str, float] = {}
        self._defense: Dict[str, float] = {}
        self._lock = threading.Lock()

    # -- strengths ----------------------------------------------------------

    @property
    def attack_strengths(self) -> Mapping[str, float]:
        return dict(self._attack)

    @property
    def defense_strengths(self) -> Mapping[str, float]:
        return dict(self._defense)

    def attack_strength(self, team: TeamLike) -> float:
        learned = self._attack.get(team.name)
        if learned is not None:
            return learned
        return _power_strength(getattr(team, "attack_power", None))

    def defense_strength(self, team: TeamLike) -> float:
        learned = self._defense.get(team.name)
        if learned is not None and learned > 0:
            return learned
        return _power_strength(getattr(team, "defense_power", None))

    # -- rates ---------------------------------------------------------------

    def lambda_(
        self,
        team: TeamLike,
        opponent: TeamLike,
        is_home: bool,
        context: SimulationContext | None = None,
    ) -> float:
        """Expected goals for ``team`` against ``opponent``.

        Motivation, fatigue and weather multipliers are combined in log space
        with exponents 0.4, 0.3 and 0.1, which damps single-factor swings.
        """

        context = context or SimulationContext.neutral()
        attack = self.attack_strength(team)
        defense = self.defense_strength(opponent)
        home_factor = self.home_advantage * context.home_advantage if is_home else 1.0
        base = self.league_average_goals * attack / defense * home_factor

        indices = getattr(team, "composite_indices", None)
        motivation = getattr(indices, "motivation", DEFAULT_MOTIVATION)
        fatigue = getattr(indices, "fatigue", DEFAULT_FATIGUE)
        motivation *= context.motivation / NEUTRAL_MOTIVATION
        fatigue *= context.fatigue / NEUTRAL_FATIGUE
        motivation_factor = 0.95 + min(100.0, max(0.0, motivation)) / 400.0
        fatigue_factor = 1.0 - min(100.0, max(0.0, fatigue)) / 500.0
        weather_factor = WEATHER_FACTORS[context.weather]

        modulator = math.exp(
            math.log(motivation_factor) * MOTIVATION_EXPONENT
            + math.log(fatigue_factor) * FATIGUE_EXPONENT
            + math.log(weather_factor) * WEATHER_EXPONENT
        )
        return max(0.0, base * modulator)

    # -- distributions -------------------------------------------------------

    @staticmethod
    def probability(k: int, lam: float) -> float:
        if k < 0 or lam < 0:
            return 0.0
        if lam == 0:
            return 1.0 if k == 0 else 0.0
        return math.exp(k * math.log(lam) - lam - math.lgamma(k + 1))

    def score_distribution(
        self, lambda_home: float, lambda_away: float, max_goals: int = 6
    ) -> List[ScoreProbability]:
        """Joint mass of every score up to ``max_goals``, most likely first."""

        home = [self.probability(h, lambda_home) for h in range(max_goals + 1)]
        away = [self.probability(a, lambda_away) for a in range(max_goals + 1)]
        cells = [
            (h, a, home[h] * away[a])
            for h in range(max_goals + 1)
            for a in range(max_goals + 1)
        ]
        cells.sort(key=lambda cell: cell[2], reverse=True)
        distribution: List[ScoreProbability] = []
        cumulative = 0.0
        for h, a, probability in cells:
            cumulative += probability
            distribution.append(ScoreProbability(h, a, probability, cumulative))
        return distribution

    def score_distribution_frame(
        self, lambda_home: float, lambda_away: float, max_goals: int = 6
    ) -> pl.DataFrame:
        distribution = self.score_distribution(lambda_home, lambda_away, max_goals)
        return pl.DataFrame(
            {
                "home_goals": [item.home_goals for item in distribution],
                "away_goals": [item.away_goals for item in distribution],
                "score": [item.score for item in distribution],
                "probability": [item.probability for item in distribution],
                "cumulative": [item.cumulative for item in distribution],
            }
        )

    def most_likely_score(
        self, lambda_home: float, lambda_away: float, max_goals: int = 5
    ) -> ScoreProbability:
        return self.score_distribution(lambda_home, lambda_away, max_goals)[0]

    def extra_markets(self, lambda_home: float, lambda_away: float) -> ExtraMarkets:
        both = (1.0 - self.probability(0, lambda_home)) * (
            1.0 - self.probability(0, lambda_away)
        )
        under = 0.0
        for h in range(3):
            for a in range(3 - h):
                under += self.probability(h, lambda_home) * self.probability(a, lambda_away)
        return ExtraMarkets(both_teams_score=both * 100.0, over_2_5=(1.0 - under) * 100.0)

    @staticmethod
    def confidence_intervals(
        lambda_home: float, lambda_away: float, z: float = 1.96
    ) -> RateIntervals:
        """Normal-approximation intervals ``λ ± z·√λ`` floored at zero."""

        def _interval(lam: float) -> RateInterval:
            spread = z * math.sqrt(max(0.0, lam))
            return RateInterval(lower=max(0.0, lam - spread), upper=lam + spread)

        return RateIntervals(home=_interval(lambda_home), away=_interval(lambda_away))

    # -- calibration ---------------------------------------------------------

    def train(
        self,
        history: pl.DataFrame | Iterable[MatchRecord | Mapping[str, object] | object],
    ) -> TrainingReport:
        """Fit attack/defence strengths by iterative proportional fitting.

        Each sweep rescales a team's attack so its expected goals match the
        goals it scored, then its defence so expected goals against match the
        goals it conceded, then the home advantage.  Attack strengths are
        normalised to a mean of one (defence follows, leaving rates intact).
        Iteration stops once the largest parameter change falls below
        ``convergence_threshold`` or after ``max_iterations`` sweeps.
        """

        records = build_match_records(history)
        if not records:
            logger.warning("Poisson training skipped: no historical matches supplied")
            return TrainingReport(iterations=0, converged=True, max_delta=0.0, teams=0)
        with self._lock:
            report, attack, defense, home, average = self._fit(records)
            self._attack = attack
            self._defense = defense
            self.home_advantage = home
            self.league_average_goals = average
        if not report.converged:
            logger.warning(
                "Poisson training stopped after %d iterations (delta %.2e)",
                report.iterations,
                report.max_delta,
            )
        logger.info(
            "Calibrated %d team strengths from %d matches in %d iterations",
            report.teams,
            len(records),
            report.iterations,
        )
        return report

    def _fit(
        self, records: List[MatchRecord]
    ) -> Tuple[TrainingReport, Dict[str, float], Dict[str, float], float, float]:
        teams = sorted({r.home_team for r in records} | {r.away_team for r in records})
        scored = {team: PSEUDO_GOALS for team in teams}
        conceded = {team: PSEUDO_GOALS for team in teams}
        for r in records:
            scored[r.home_team] += r.home_goals
            scored[r.away_team] += r.away_goals
            conceded[r.home_team] += r.away_goals
            conceded[r.away_team] += r.home_goals
        total_home_goals = sum(r.home_goals for r in records)
        average = max(
            STRENGTH_FLOOR,
            (total_home_goals + sum(r.away_goals for r in records)) / (2.0 * len(records)),
        )
        attack = {team: 1.0 for team in teams}
        defense = {team: 1.0 for team in teams}
        home = self.home_advantage

        iterations = 0
        delta = math.inf
        while iterations < self.max_iterations:
            iterations += 1
            new_attack: Dict[str, float] = {}
            for team in teams:
                exposure = 0.0
                for r in records:
                    if r.home_team == team:
                        exposure += average * home / defense[r.away_team]
                    elif r.away_team == team:
                        exposure += average / defense[r.home_team]
                new_attack[team] = max(STRENGTH_FLOOR, scored[team] / max(exposure, 1e-9))
            new_defense: Dict[str, float] = {}
            for team in teams:
                exposure = 0.0
                for r in records:
                    if r.home_team == team:
                        exposure += average * new_attack[r.away_team]
                    elif r.away_team == team:
                        exposure += average * home * new_attack[r.home_team]
                new_defense[team] = max(STRENGTH_FLOOR, exposure / conceded[team])
            expected_home = sum(
                average * new_attack[r.home_team] / new_defense[r.away_team] for r in records
            )
            new_home = max(HOME_ADVANTAGE_FLOOR, total_home_goals / max(expected_home, 1e-9))
            scale = sum(new_attack.values()) / len(teams)
            for team in teams:
                new_attack[team] /= scale
                new_defense[team] /= scale
            delta = max(
                max(abs(new_attack[t] - attack[t]) for t in teams),
                max(abs(new_defense[t] - defense[t]) for t in teams),
                abs(new_home - home),
            )
            attack, defense, home = new_attack, new_defense, new_home
            if delta < self.convergence_threshold:
                break
        report = TrainingReport(
            iterations=iterations,
            converged=delta < self.convergence_threshold,
            max_delta=delta,
            teams=len(teams),
        )
        return report, attack, defense, home, average


__all__ = [
    "ExtraMarkets",
    "MatchRecord",
    "PoissonRegression",
    "RateInterval",
    "RateIntervals",
    "ScoreProbability",
    "TeamLike",
    "TrainingReport",
    "WEATHER_FACTORS",
    "build_match_records",
]
