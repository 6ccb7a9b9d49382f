from __future__ import annotations

import math

import polars as pl
import pytest
from hypothesis import given, strategies as st

from matchcast.context import SimulationContext, Weather
from matchcast.poisson import MatchRecord, PoissonRegression, TrainingReport, build_match_records


def test_probability_mass_function() -> None:
    model = PoissonRegression()
    assert sum(model.probability(k, 1.5) for k in range(60)) == pytest.approx(1.0)
    assert model.probability(0, 0.0) == 1.0
    assert model.probability(2, 0.0) == 0.0
    assert model.probability(-1, 1.0) == 0.0
    assert model.probability(3, 2.0) == pytest.approx(math.exp(-2.0) * 8.0 / 6.0)


@given(
    st.floats(min_value=0.05, max_value=4.0),
    st.floats(min_value=0.05, max_value=4.0),
)
def test_score_distribution_mass_matches_truncated_product(lh: float, la: float) -> None:
    model = PoissonRegression()
    distribution = model.score_distribution(lh, la, max_goals=6)
    home_mass = sum(model.probability(k, lh) for k in range(7))
    away_mass = sum(model.probability(k, la) for k in range(7))
    total = sum(item.probability for item in distribution)
    assert len(distribution) == 49
    assert total == pytest.approx(home_mass * away_mass, abs=1e-6)
    assert distribution[-1].cumulative == pytest.approx(total, abs=1e-9)
    probabilities = [item.probability for item in distribution]
    assert probabilities == sorted(probabilities, reverse=True)


def test_score_distribution_frame_matches_list() -> None:
    model = PoissonRegression()
    frame = model.score_distribution_frame(1.4, 1.1, max_goals=4)
    assert isinstance(frame, pl.DataFrame)
    assert frame.height == 25
    assert frame.columns == ["home_goals", "away_goals", "score", "probability", "cumulative"]
    best = model.most_likely_score(1.4, 1.1, max_goals=4)
    assert frame["score"][0] == best.score


def test_home_side_gets_home_advantage(home_team, away_team) -> None:
    model = PoissonRegression()
    mirror = type(home_team)(name="Mirror", attack_power=80.0, defense_power=70.0)
    home_rate = model.lambda_(home_team, mirror, True)
    away_rate = model.lambda_(home_team, mirror, False)
    assert home_rate / away_rate == pytest.approx(1.22)


def test_extreme_weather_lowers_both_rates(home_team, away_team) -> None:
    model = PoissonRegression()
    clear = SimulationContext(weather=Weather.CLEAR)
    extreme = SimulationContext(weather=Weather.EXTREME)
    assert model.lambda_(home_team, away_team, True, extreme) < model.lambda_(
        home_team, away_team, True, clear
    )
    assert model.lambda_(away_team, home_team, False, extreme) < model.lambda_(
        away_team, home_team, False, clear
    )


def test_context_modifiers_move_rates(home_team, away_team) -> None:
    model = PoissonRegression()
    base = model.lambda_(home_team, away_team, True)
    tired = model.lambda_(home_team, away_team, True, SimulationContext(fatigue=40.0))
    driven = model.lambda_(home_team, away_team, True, SimulationContext(motivation=95.0))
    assert tired < base < driven


def test_strength_falls_back_for_missing_power(home_team) -> None:
    model = PoissonRegression()
    blank = type(home_team)(name="Blank", attack_power=0.0, defense_power=0.0)
    assert model.attack_strength(blank) == 1.0
    assert model.defense_strength(blank) == 1.0
    assert model.attack_strength(home_team) == pytest.approx(0.8)


def test_extra_markets_and_intervals() -> None:
    model = PoissonRegression()
    markets = model.extra_markets(1.5, 1.2)
    expected_btts = (1 - math.exp(-1.5)) * (1 - math.exp(-1.2)) * 100
    assert markets.both_teams_score == pytest.approx(expected_btts)
    assert 0.0 < markets.over_2_5 < 100.0
    intervals = model.confidence_intervals(0.5, 4.0)
    assert intervals.home.lower == 0.0
    assert intervals.away.lower == pytest.approx(4.0 - 1.96 * 2.0)
    assert intervals.away.upper == pytest.approx(4.0 + 1.96 * 2.0)


def _history() -> list[dict[str, object]]:
    return [
        {"home_team": "Strong", "away_team": "Weak", "home_goals": 4, "away_goals": 0},
        {"home_team": "Weak", "away_team": "Strong", "home_goals": 0, "away_goals": 3},
        {"home_team": "Strong", "away_team": "Mid", "home_goals": 2, "away_goals": 1},
        {"home_team": "Mid", "away_team": "Strong", "home_goals": 1, "away_goals": 2},
        {"home_team": "Mid", "away_team": "Weak", "home_goals": 2, "away_goals": 1},
        {"home_team": "Weak", "away_team": "Mid", "home_goals": 1, "away_goals": 1},
    ]


def test_train_orders_attack_strengths() -> None:
    model = PoissonRegression()
    report = model.train(_history())
    assert report.teams == 3
    assert report.iterations >= 1
    attack = model.attack_strengths
    assert attack["Strong"] > attack["Mid"] > attack["Weak"]
    assert sum(attack.values()) / len(attack) == pytest.approx(1.0)
    assert all(value >= 0.05 for value in model.defense_strengths.values())


def test_train_accepts_polars_frame() -> None:
    frame = pl.DataFrame(_history())
    from_frame = PoissonRegression()
    from_dicts = PoissonRegression()
    from_frame.train(frame)
    from_dicts.train(_history())
    assert from_frame.attack_strengths == pytest.approx(from_dicts.attack_strengths)


def test_train_without_history_keeps_strengths() -> None:
    model = PoissonRegression()
    model.train(_history())
    attack = dict(model.attack_strengths)
    defense = dict(model.defense_strengths)
    home = model.home_advantage
    report = model.train([])
    assert report == TrainingReport(iterations=0, converged=True, max_delta=0.0, teams=0)
    assert model.attack_strengths == attack
    assert model.defense_strengths == defense
    assert model.home_advantage == home

    untrained = PoissonRegression()
    assert untrained.train([]).teams == 0
    assert untrained.attack_strengths == {}


def test_build_match_records_coerces_fields() -> None:
    records = build_match_records(
        [{"home_team": "A", "away_team": "B", "home_goals": "2", "away_goals": 1.0}]
    )
    assert records == [MatchRecord("A", "B", 2, 1)]
    with pytest.raises(TypeError):
        build_match_records([{"home_team": "A", "away_team": "B", "home_goals": 1}])


def test_invalid_league_average_rejected() -> None:
    with pytest.raises(ValueError):
        PoissonRegression(league_average_goals=0.0)
