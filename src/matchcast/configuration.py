from __future__ import annotations

import json
import math
import os
import re
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Iterable, Mapping, MutableMapping, Sequence

import yaml
from pydantic import BaseModel, Field

ENVIRONMENT_VARIABLE = "MATCHCAST_ENV"
EXTRA_CONFIG_VARIABLE = "MATCHCAST_EXTRA_CONFIG"
ENV_OVERRIDE_PREFIX = "MATCHCAST_ENGINE__"
DEFAULT_CONFIG_PATH = Path("config/engine.yaml")

if TYPE_CHECKING:  # pragma: no cover - imported for type checking only
    from .ensemble import EnsemblePredictor
    from .genetic import GeneticOptimizer
    from .montecarlo import MonteCarloSimulator
    from .poisson import PoissonRegression


class PoissonConfig(BaseModel):
    """Scoring-rate model parameters."""

    home_advantage: float = 1.22
    league_average_goals: float = 1.35
    convergence_threshold: float = 1e-6
    max_iterations: int = 500
    max_goals: int = 6
    top_scores: int = 5


class MonteCarloConfig(BaseModel):
    """Simulation size, sharding and bootstrap controls."""

    trials: int = 100_000
    scenario_stride: int = 100
    bootstrap_samples: int = 1000
    bootstrap_size: int = 100
    shards: int = 4
    workers: int = 1


class GeneticConfig(BaseModel):
    """Genetic optimizer hyper-parameters."""

    population_size: int = 24
    mutation_rate: float = 0.08
    initial_mutation_rate: float = 0.4
    crossover_rate: float = 0.75
    elitism_count: int = 2
    generations: int = 12
    max_concurrency: int | None = None


class EnsembleConfig(BaseModel):
    """Fusion weights and value-betting thresholds."""

    poisson_weight: float = 0.35
    monte_carlo_weight: float = 0.40
    bayesian_weight: float = 0.25
    value_threshold: float = 0.05
    market_margin_low: float = 0.95
    market_margin_high: float = 1.10


class TimeSeriesConfig(BaseModel):
    """Profile series shape and GARCH(1,1) coefficients."""

    series_length: int = 12
    period: int = 4
    horizon: int = 3
    garch_omega: float = 0.05
    garch_alpha: float = 0.15
    garch_beta: float = 0.8


class EngineConfig(BaseModel):
    """Aggregate configuration for the prediction engine."""

    environment: str = "default"
    poisson: PoissonConfig = Field(default_factory=PoissonConfig)
    monte_carlo: MonteCarloConfig = Field(default_factory=MonteCarloConfig)
    genetic: GeneticConfig = Field(default_factory=GeneticConfig)
    ensemble: EnsembleConfig = Field(default_factory=EnsembleConfig)
    time_series: TimeSeriesConfig = Field(default_factory=TimeSeriesConfig)


class ConfigurationError(ValueError):
    """Raised when engine configuration validation fails."""


_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(path)
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise TypeError(f"Configuration at {path} must be a mapping")
    return dict(data)


def _merge_layers(base: Dict[str, Any], layer: Mapping[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = dict(base)
    for key, value in layer.items():
        if key in merged and isinstance(merged[key], Mapping) and isinstance(value, Mapping):
            merged[key] = _merge_layers(dict(merged[key]), value)
        else:
            merged[key] = value
    return merged


def _resolve_env_tokens(value: Any) -> Any:
    if isinstance(value, str):
        return _ENV_PATTERN.sub(lambda match: os.getenv(match.group(1), ""), value)
    if isinstance(value, Mapping):
        return {k: _resolve_env_tokens(v) for k, v in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [_resolve_env_tokens(item) for item in value]
    return value


def _coerce_env_value(raw: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        lowered = raw.lower()
        if lowered in {"true", "false"}:
            return lowered == "true"
        return raw


def _set_nested(mapping: MutableMapping[str, Any], path: Iterable[str], value: Any) -> None:
    segments = list(path)
    if not segments:
        return
    head, *tail = segments
    key = head.lower().replace("-", "_")
    if not tail:
        mapping[key] = value
        return
    child = mapping.get(key)
    child = dict(child) if isinstance(child, MutableMapping) else {}
    mapping[key] = child
    _set_nested(child, tail, value)


def _apply_env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    updated = dict(data)
    for key, raw_value in os.environ.items():
        if not key.startswith(ENV_OVERRIDE_PREFIX):
            continue
        path = [segment for segment in key[len(ENV_OVERRIDE_PREFIX) :].split("__") if segment]
        if path:
            _set_nested(updated, path, _coerce_env_value(raw_value))
    return updated


def load_engine_config(
    *,
    base_path: str | os.PathLike[str] | None = None,
    environment: str | None = None,
    extra_paths: Sequence[str | os.PathLike[str]] | None = None,
) -> EngineConfig:
    """Load layered configuration for the prediction engine.

    The loader merges ``config/engine.yaml`` with an optional environment
    layer (``config/engine.<env>.yaml``), additional override files, and
    environment variables prefixed with ``MATCHCAST_ENGINE__``.  A missing
    default file yields the built-in defaults; an explicit ``base_path`` must
    exist.
    """

    config_path = Path(base_path) if base_path is not None else DEFAULT_CONFIG_PATH
    if base_path is None and not config_path.exists():
        data: Dict[str, Any] = {}
    else:
        data = _load_yaml(config_path)

    env_name = environment or os.getenv(ENVIRONMENT_VARIABLE) or data.get("environment")
    if isinstance(env_name, str):
        env_path = config_path.with_name(f"{config_path.stem}.{env_name}{config_path.suffix}")
        if env_path.exists():
            data = _merge_layers(data, _load_yaml(env_path))
        data["environment"] = env_name

    merged = dict(data)
    override_sources: list[Path] = []
    if extra_paths:
        override_sources.extend(Path(path) for path in extra_paths)
    env_overrides = os.getenv(EXTRA_CONFIG_VARIABLE)
    if env_overrides:
        override_sources.extend(Path(token) for token in env_overrides.split(os.pathsep) if token)
    for override in override_sources:
        if override.exists():
            merged = _merge_layers(merged, _load_yaml(override))

    merged = _apply_env_overrides(merged)
    merged = _resolve_env_tokens(merged)
    return EngineConfig.model_validate(merged)


def validate_engine_config(config: EngineConfig) -> list[str]:
    """Validate an :class:`EngineConfig` instance.

    Args:
        config: Parsed configuration object to validate.

    Returns:
        A list of warning messages. The function raises
        :class:`ConfigurationError` if any fatal issues are detected.
    """

    errors: list[str] = []
    warnings: list[str] = []

    poisson = config.poisson
    if poisson.home_advantage <= 0:
        errors.append("poisson.home_advantage must be greater than zero")
    if poisson.league_average_goals <= 0:
        errors.append("poisson.league_average_goals must be greater than zero")
    if poisson.convergence_threshold <= 0:
        errors.append("poisson.convergence_threshold must be greater than zero")
    if poisson.max_iterations <= 0:
        errors.append("poisson.max_iterations must be greater than zero")
    if poisson.max_goals < 1:
        errors.append("poisson.max_goals must be at least 1")
    if poisson.top_scores < 1:
        errors.append("poisson.top_scores must be at least 1")

    monte_carlo = config.monte_carlo
    if monte_carlo.trials <= 0:
        errors.append("monte_carlo.trials must be greater than zero")
    elif monte_carlo.trials < 1000:
        warnings.append(
            "monte_carlo.trials is below 1000; outcome percentages will be noisy"
        )
    if monte_carlo.scenario_stride < 1:
        errors.append("monte_carlo.scenario_stride must be at least 1")
    if monte_carlo.bootstrap_samples < 0:
        errors.append("monte_carlo.bootstrap_samples must be non-negative")
    if monte_carlo.bootstrap_size < 0:
        errors.append("monte_carlo.bootstrap_size must be non-negative")
    if monte_carlo.shards < 1:
        errors.append("monte_carlo.shards must be at least 1")
    if monte_carlo.workers < 1:
        errors.append("monte_carlo.workers must be at least 1")
    if monte_carlo.trials > 0 and monte_carlo.trials // monte_carlo.scenario_stride < 2:
        warnings.append(
            "monte_carlo retains fewer than two scenarios; bootstrap intervals will be degenerate"
        )

    genetic = config.genetic
    if genetic.population_size < 2:
        errors.append("genetic.population_size must be at least 2")
    if not 0 <= genetic.elitism_count <= genetic.population_size:
        errors.append("genetic.elitism_count must be within [0, population_size]")
    if genetic.generations < 1:
        errors.append("genetic.generations must be at least 1")
    for name in ("mutation_rate", "initial_mutation_rate", "crossover_rate"):
        value = getattr(genetic, name)
        if not 0 <= value <= 1:
            errors.append(f"genetic.{name} must be within [0, 1]")
    if genetic.max_concurrency is not None and genetic.max_concurrency < 1:
        errors.append("genetic.max_concurrency must be at least 1")

    ensemble = config.ensemble
    weights = (ensemble.poisson_weight, ensemble.monte_carlo_weight, ensemble.bayesian_weight)
    if any(weight < 0 for weight in weights):
        errors.append("ensemble weights must be non-negative")
    elif not math.isclose(sum(weights), 1.0, abs_tol=1e-6):
        errors.append(f"ensemble weights must sum to 1 (got {sum(weights):.4f})")
    if ensemble.value_threshold <= 0:
        errors.append("ensemble.value_threshold must be greater than zero")
    if ensemble.market_margin_low <= 0 or ensemble.market_margin_high < ensemble.market_margin_low:
        errors.append("ensemble market margins must satisfy 0 < low <= high")

    series = config.time_series
    if series.series_length < 2:
        errors.append("time_series.series_length must be at least 2")
    if series.period < 1:
        errors.append("time_series.period must be at least 1")
    if series.horizon < 1:
        errors.append("time_series.horizon must be at least 1")
    if series.garch_omega <= 0:
        errors.append("time_series.garch_omega must be greater than zero")
    if series.garch_alpha < 0 or series.garch_beta < 0:
        errors.append("time_series GARCH coefficients must be non-negative")
    elif series.garch_alpha + series.garch_beta >= 1:
        warnings.append(
            "time_series garch_alpha + garch_beta >= 1; conditional variance is not stationary"
        )

    if errors:
        bullet_list = "\n".join(f"- {message}" for message in errors)
        raise ConfigurationError(f"Configuration validation failed:\n{bullet_list}")

    return warnings


def create_poisson_model(config: EngineConfig) -> "PoissonRegression":
    """Build a :class:`PoissonRegression` from configuration."""

    from .poisson import PoissonRegression

    poisson = config.poisson
    return PoissonRegression(
        home_advantage=poisson.home_advantage,
        league_average_goals=poisson.league_average_goals,
        convergence_threshold=poisson.convergence_threshold,
        max_iterations=poisson.max_iterations,
    )


def create_simulator(
    config: EngineConfig, *, seed: int | None = None
) -> "MonteCarloSimulator":
    """Build a :class:`MonteCarloSimulator` from configuration."""

    from .montecarlo import MonteCarloSimulator

    monte_carlo = config.monte_carlo
    return MonteCarloSimulator(
        trials=monte_carlo.trials,
        scenario_stride=monte_carlo.scenario_stride,
        bootstrap_samples=monte_carlo.bootstrap_samples,
        bootstrap_size=monte_carlo.bootstrap_size,
        shards=monte_carlo.shards,
        workers=monte_carlo.workers,
        seed=seed,
    )


def create_optimizer(config: EngineConfig, *, seed: int | None = None) -> "GeneticOptimizer":
    """Build a :class:`GeneticOptimizer` from configuration."""

    from .genetic import GeneticOptimizer

    genetic = config.genetic
    return GeneticOptimizer(
        population_size=genetic.population_size,
        mutation_rate=genetic.mutation_rate,
        initial_mutation_rate=genetic.initial_mutation_rate,
        crossover_rate=genetic.crossover_rate,
        elitism_count=genetic.elitism_count,
        generations=genetic.generations,
        max_concurrency=genetic.max_concurrency,
        seed=seed,
    )


def create_predictor(config: EngineConfig, *, seed: int | None = None) -> "EnsemblePredictor":
    """Build a fully wired :class:`EnsemblePredictor`."""

    from .ensemble import EnsemblePredictor

    return EnsemblePredictor(
        config=config,
        poisson_model=create_poisson_model(config),
        simulator=create_simulator(config),
        seed=seed,
    )


__all__ = [
    "ConfigurationError",
    "EngineConfig",
    "EnsembleConfig",
    "GeneticConfig",
    "MonteCarloConfig",
    "PoissonConfig",
    "TimeSeriesConfig",
    "create_optimizer",
    "create_poisson_model",
    "create_predictor",
    "create_simulator",
    "load_engine_config",
    "validate_engine_config",
]
