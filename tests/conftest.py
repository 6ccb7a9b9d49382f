from __future__ import annotations

import dataclasses

import pytest

from matchcast.configuration import (
    EngineConfig,
    GeneticConfig,
    MonteCarloConfig,
    create_predictor,
)
from matchcast.ensemble import EnsemblePredictor


@dataclasses.dataclass(slots=True)
class StubTeam:
    name: str
    attack_power: float
    defense_power: float


@pytest.fixture
def fast_config() -> EngineConfig:
    return EngineConfig(
        monte_carlo=MonteCarloConfig(trials=2000, scenario_stride=10, bootstrap_samples=200),
        genetic=GeneticConfig(population_size=8, generations=4),
    )


@pytest.fixture
def predictor(fast_config: EngineConfig) -> EnsemblePredictor:
    return create_predictor(fast_config, seed=1234)


@pytest.fixture
def home_team() -> StubTeam:
    return StubTeam(name="Harbour City", attack_power=80.0, defense_power=70.0)


@pytest.fixture
def away_team() -> StubTeam:
    return StubTeam(name="Valley Rovers", attack_power=70.0, defense_power=75.0)
