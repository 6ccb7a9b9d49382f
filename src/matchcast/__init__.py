"""
matchcast: ensemble forecasting for two-party matches.

Poisson regression, Monte Carlo simulation and a discrete Bayesian network
are fused into a fixed-weight ensemble, with per-team profiles calibrated by
a genetic optimizer and summarised with time-series analytics.
"""

from importlib.metadata import PackageNotFoundError, version

try:  # pragma: no cover - exercised in packaging workflows
    __version__ = version("matchcast")
except PackageNotFoundError:  # pragma: no cover - local editable installs
    __version__ = "0.0.0"

_EXPORTS = {
    # Orchestration
    "EnsemblePredictor": ".ensemble",
    "PredictionResult": ".ensemble",
    "TeamProfile": ".ensemble",
    # Models
    "BayesianNetwork": ".bayesian",
    "GeneticOptimizer": ".genetic",
    "MonteCarloSimulator": ".montecarlo",
    "PoissonRegression": ".poisson",
    # Context
    "SimulationContext": ".context",
    "StaticContextProvider": ".context",
    "Weather": ".context",
    # Configuration
    "EngineConfig": ".configuration",
    "load_engine_config": ".configuration",
    "get_config": ".config",
    "update_config": ".config",
    "reset_config": ".config",
    # Utility functions
    "team_seed": ".utils",
    "configure_logging": ".logging",
}

__all__ = sorted(_EXPORTS)


def __getattr__(name: str) -> object:  # pragma: no cover - thin lazy importer
    from importlib import import_module

    target_module = _EXPORTS.get(name)
    if not target_module:
        raise AttributeError(f"module {__name__} has no attribute {name}")
    module = import_module(target_module, __name__)
    attr = getattr(module, name)
    globals()[name] = attr
    return attr


def __dir__() -> list[str]:  # pragma: no cover - trivial
    return sorted(list(globals().keys()) + __all__)
