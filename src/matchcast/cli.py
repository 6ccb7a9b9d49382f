"""Command line interface for the matchcast prediction engine."""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import inspect
import json
from typing import Awaitable, Callable, Sequence, TypeVar

from .config import MatchcastConfig, get_config
from .configuration import (
    ConfigurationError,
    EngineConfig,
    create_predictor,
    load_engine_config,
    validate_engine_config,
)
from .context import SimulationContext, StaticContextProvider, Weather
from .ensemble import EnsemblePredictor, PredictionResult, TeamProfile
from .logging import configure_logging
from .utils import team_seed


@dataclasses.dataclass(slots=True)
class CommandContext:
    """Runtime objects shared across command handlers."""

    predictor: EnsemblePredictor
    config: EngineConfig
    settings: MatchcastConfig


EngineCommandHandler = Callable[[CommandContext, argparse.Namespace], Awaitable[None]]
ConfigCommandHandler = Callable[[EngineConfig, argparse.Namespace], Awaitable[None]]
CommandHandler = EngineCommandHandler | ConfigCommandHandler

HandlerT = TypeVar("HandlerT", bound=Callable[..., Awaitable[None]])


@dataclasses.dataclass(slots=True)
class Subcommand:
    """Container describing a CLI sub-command."""

    name: str
    help: str
    configure: Callable[[argparse.ArgumentParser], None]
    handler: CommandHandler
    requires_engine: bool

    def add_to_parser(
        self,
        subparsers,
        parent: argparse.ArgumentParser,
    ) -> argparse.ArgumentParser:
        parser = subparsers.add_parser(self.name, parents=[parent], help=self.help)
        self.configure(parser)
        parser.set_defaults(
            handler=self.handler,
            command=self.name,
            requires_engine=self.requires_engine,
        )
        return parser


class SubcommandApp:
    """Registry that wires handlers into an :class:`argparse` parser."""

    def __init__(self, description: str | None = None) -> None:
        self._commands: list[Subcommand] = []
        self._description = description

    def command(
        self,
        name: str,
        *,
        help: str,
        configure: Callable[[argparse.ArgumentParser], None],
        requires_engine: bool = True,
    ) -> Callable[[HandlerT], HandlerT]:
        """Register ``handler`` as a sub-command with configuration callback."""

        def _decorator(handler: HandlerT) -> HandlerT:
            if not inspect.iscoroutinefunction(handler):
                raise TypeError(f"Command handler for {name!r} must be async")
            self._commands.append(
                Subcommand(
                    name=name,
                    help=help,
                    configure=configure,
                    handler=handler,
                    requires_engine=requires_engine,
                )
            )
            return handler

        return _decorator

    @property
    def commands(self) -> Sequence[Subcommand]:
        return tuple(self._commands)

    def build_parser(self) -> argparse.ArgumentParser:
        parent = argparse.ArgumentParser(add_help=False)
        parent.add_argument("--config", dest="config_file")
        parent.add_argument("--environment", dest="config_environment")
        parent.add_argument("--log-level", dest="log_level")

        parser = argparse.ArgumentParser(description=self._description)
        subparsers = parser.add_subparsers(dest="command", required=True)
        for command in self._commands:
            command.add_to_parser(subparsers, parent)
        return parser


APP = SubcommandApp(description=__doc__)


def _configure_analyze_parser(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("home", help="Home team name")
    parser.add_argument("away", help="Away team name")
    parser.add_argument(
        "--weather",
        choices=[weather.value for weather in Weather],
        default=Weather.CLEAR.value,
    )
    parser.add_argument("--importance", type=float, default=None)
    parser.add_argument("--home-advantage", type=float, default=None)
    parser.add_argument("--trials", type=int, default=None)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--timeout", type=float, default=None)
    parser.add_argument(
        "--narrative",
        default=None,
        help="Free-text match briefing used to enrich the context",
    )
    parser.add_argument("--json", action="store_true", help="Emit the full result as JSON")


def _configure_profile_parser(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("name", help="Team name")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--json", action="store_true", help="Emit the full profile as JSON")


def _configure_validate_parser(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--warnings-as-errors",
        action="store_true",
        help="Exit with status 2 if warnings are emitted",
    )


def _context_from_args(args: argparse.Namespace) -> SimulationContext:
    base = SimulationContext.neutral()
    return SimulationContext(
        weather=Weather.parse(args.weather),
        importance=base.importance if args.importance is None else args.importance,
        home_advantage=(
            base.home_advantage if args.home_advantage is None else args.home_advantage
        ),
    )


def _render_result(result: PredictionResult) -> None:
    print(f"{result.home_team} vs {result.away_team}")
    print(
        f"  Win {result.win_prob:6.2f}%  Draw {result.draw_prob:6.2f}%  "
        f"Loss {result.loss_prob:6.2f}%"
    )
    goals = result.expected_goals
    print(f"  Expected goals {goals.home:.2f} - {goals.away:.2f}  (score {result.exact_score})")
    print("  Top scores: " + ", ".join(
        f"{line.score} ({line.probability:.1f}%)" for line in result.top_scores
    ))
    if result.value_bets:
        print("  Value bets:")
        for bet in result.value_bets:
            print(
                f"    {bet.market:<9} fair {bet.fair_odds:.2f} market {bet.market_odds:.2f} "
                f"edge {bet.edge * 100:.1f}%"
            )
    else:
        print("  Value bets: none")
    metrics = result.ensemble_metrics
    print(
        f"  Confidence {result.confidence_index:.2f}  "
        f"convergence {metrics.model_convergence:.3f}  "
        f"volatility {result.risk_metrics.volatility:.2f}"
    )


def _render_profile(profile: TeamProfile) -> None:
    indices = profile.composite_indices
    print(f"{profile.name} (seed {profile.seed})")
    print(
        f"  Attack {profile.attack_power:.0f}  Midfield {profile.midfield_power:.0f}  "
        f"Defence {profile.defense_power:.0f}"
    )
    print(
        f"  Momentum {indices.momentum:+.3f}  Fatigue {indices.fatigue:.1f}  "
        f"Motivation {indices.motivation:.1f}"
    )
    print(
        f"  Trend {profile.forecast.trend.value}  forecast {profile.forecast.forecast:.2f}  "
        f"VaR95 {profile.time_series.volatility.var95:.4f}"
    )
    print(f"  Genetic best fitness {profile.genetic_metrics.best_fitness:.2f}")


@APP.command(
    "validate-config",
    help="Validate engine configuration",
    configure=_configure_validate_parser,
    requires_engine=False,
)
async def _cmd_validate_config(config: EngineConfig, args: argparse.Namespace) -> None:
    try:
        warnings = validate_engine_config(config)
    except ConfigurationError as exc:
        print("Configuration invalid:")
        for line in str(exc).splitlines():
            text = line if line.startswith("-") else f"- {line}"
            print(text)
        raise SystemExit(1) from exc

    print(f"Configuration '{config.environment}' is valid.")
    if warnings:
        print("Warnings:")
        for message in warnings:
            print(f"- {message}")
        if getattr(args, "warnings_as_errors", False):
            raise SystemExit(2)


@APP.command(
    "analyze",
    help="Forecast a fixture",
    configure=_configure_analyze_parser,
)
async def _cmd_analyze(context: CommandContext, args: argparse.Namespace) -> None:
    provider = StaticContextProvider(args.narrative) if args.narrative else None
    timeout = args.timeout if args.timeout is not None else context.settings.timeout
    try:
        result = await context.predictor.analyze(
            args.home,
            args.away,
            context=_context_from_args(args),
            provider=provider,
            timeout=timeout,
        )
    except asyncio.TimeoutError as exc:
        raise SystemExit(f"Analysis timed out after {timeout} seconds") from exc
    if args.json:
        print(result.to_json(indent=2))
    else:
        _render_result(result)


@APP.command(
    "profile",
    help="Build and summarise a team's deep profile",
    configure=_configure_profile_parser,
)
async def _cmd_profile(context: CommandContext, args: argparse.Namespace) -> None:
    seed = args.seed if args.seed is not None else team_seed(args.name)
    profile = await context.predictor.build_deep_profile(args.name, seed)
    if args.json:
        print(json.dumps(profile.to_dict(), indent=2))
    else:
        _render_profile(profile)


def _build_parser() -> argparse.ArgumentParser:
    return APP.build_parser()


def _apply_settings(
    config: EngineConfig, settings: MatchcastConfig, args: argparse.Namespace
) -> EngineConfig:
    updates: dict[str, int] = {}
    trials = getattr(args, "trials", None)
    if trials is not None:
        updates["trials"] = trials
    elif "trials" in settings.model_fields_set:
        updates["trials"] = settings.trials
    if "workers" in settings.model_fields_set:
        updates["workers"] = settings.workers
    if not updates:
        return config
    monte_carlo = config.monte_carlo.model_copy(update=updates)
    return config.model_copy(update={"monte_carlo": monte_carlo})


async def _dispatch(args: argparse.Namespace) -> None:
    settings = get_config()
    configure_logging(args.log_level or settings.log_level)
    base_path = args.config_file or settings.engine_config_path
    config = load_engine_config(base_path=base_path, environment=args.config_environment)
    if not getattr(args, "requires_engine", True):
        await args.handler(config, args)
        return

    config = _apply_settings(config, settings, args)
    try:
        warnings = validate_engine_config(config)
    except ConfigurationError as exc:
        raise SystemExit(str(exc)) from exc
    for message in warnings:
        print(f"[config-warning] {message}")

    seed = getattr(args, "seed", None)
    predictor = create_predictor(config, seed=seed if seed is not None else settings.seed)
    await args.handler(CommandContext(predictor=predictor, config=config, settings=settings), args)


def main(argv: Sequence[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    asyncio.run(_dispatch(args))


__all__ = ["main"]


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    main()
