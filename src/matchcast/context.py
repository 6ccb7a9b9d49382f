"""Match context records and the enrichment fallback path."""

from __future__ import annotations

import dataclasses
import enum
import logging
import re
from typing import Mapping, Protocol, runtime_checkable

from .utils import clamp

logger = logging.getLogger(__name__)

NEUTRAL_HOME_ADVANTAGE = 1.0
NEUTRAL_FATIGUE = 10.0
NEUTRAL_MOTIVATION = 85.0
NEUTRAL_IMPORTANCE = 0.7


class Weather(str, enum.Enum):
    """Weather categories understood by the scoring model."""

    CLEAR = "Clear"
    RAIN = "Rain"
    WINDY = "Windy"
    EXTREME = "Extreme"

    @classmethod
    def parse(cls, value: "Weather | str | None") -> "Weather":
        if isinstance(value, Weather):
            return value
        if value is None:
            return cls.CLEAR
        token = str(value).strip().lower()
        for member in cls:
            if member.value.lower() == token or member.name.lower() == token:
                return member
        raise ValueError(f"Unknown weather category: {value!r}")


@dataclasses.dataclass(frozen=True, slots=True)
class SimulationContext:
    """Qualitative and quantitative match conditions.

    ``home_advantage``, ``fatigue`` and ``motivation`` are match level
    modifiers relative to the neutral values; the Monte Carlo simulator
    perturbs copies of them per trial.
    """

    weather: Weather = Weather.CLEAR
    importance: float = NEUTRAL_IMPORTANCE
    home_advantage: float = NEUTRAL_HOME_ADVANTAGE
    fatigue: float = NEUTRAL_FATIGUE
    motivation: float = NEUTRAL_MOTIVATION

    def __post_init__(self) -> None:
        object.__setattr__(self, "weather", Weather.parse(self.weather))
        object.__setattr__(self, "importance", clamp(float(self.importance), 0.0, 1.0))

    @classmethod
    def neutral(cls) -> "SimulationContext":
        return cls()

    @classmethod
    def from_mapping(cls, values: Mapping[str, object]) -> "SimulationContext":
        base = cls()
        return cls(
            weather=Weather.parse(values.get("weather", base.weather)),  # type: ignore[arg-type]
            importance=float(values.get("importance", base.importance)),  # type: ignore[arg-type]
            home_advantage=float(values.get("home_advantage", base.home_advantage)),  # type: ignore[arg-type]
            fatigue=float(values.get("fatigue", base.fatigue)),  # type: ignore[arg-type]
            motivation=float(values.get("motivation", base.motivation)),  # type: ignore[arg-type]
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "weather": self.weather.value,
            "importance": self.importance,
            "home_advantage": self.home_advantage,
            "fatigue": self.fatigue,
            "motivation": self.motivation,
        }


@runtime_checkable
class ContextProvider(Protocol):
    """External service returning a free-text briefing for a fixture."""

    async def fetch_narrative(self, home_team: str, away_team: str) -> str:
        """Return a narrative describing conditions for ``home`` vs ``away``."""


class StaticContextProvider:
    """Provider returning a fixed narrative, for offline use and tests."""

    def __init__(self, narrative: str = "") -> None:
        self.narrative = narrative
        self.calls: list[tuple[str, str]] = []

    async def fetch_narrative(self, home_team: str, away_team: str) -> str:
        self.calls.append((home_team, away_team))
        return self.narrative


_BIAS_PATTERN = re.compile(r"(?<![\d.])([0-1]\.[0-9]+)")
_EXTREME_PATTERN = re.compile(r"\b(extreme|storm|orage)")
_RAIN_PATTERN = re.compile(r"\b(rain|pluie|pluvieu)")
_WIND_PATTERN = re.compile(r"\b(wind|vent\b|venteu)")
_IMPORTANCE_PATTERN = re.compile(r"\b(final|derby)")


def context_from_narrative(
    text: str, base: SimulationContext | None = None
) -> SimulationContext:
    """Derive a context from an enrichment narrative.

    The first decimal within ``[0.8, 1.2]`` is read as the home advantage
    bias.  Weather and importance are keyword driven (English and French
    keywords are accepted since briefings come back in either language).
    """

    base = base or SimulationContext.neutral()
    lowered = text.lower()
    home_advantage = base.home_advantage
    for match in _BIAS_PATTERN.finditer(text):
        candidate = float(match.group(1))
        if 0.8 <= candidate <= 1.2:
            home_advantage = base.home_advantage * candidate
            break
    weather = base.weather
    if _EXTREME_PATTERN.search(lowered):
        weather = Weather.EXTREME
    elif _RAIN_PATTERN.search(lowered):
        weather = Weather.RAIN
    elif _WIND_PATTERN.search(lowered):
        weather = Weather.WINDY
    importance = base.importance
    if _IMPORTANCE_PATTERN.search(lowered):
        importance = 1.0
    return dataclasses.replace(
        base,
        weather=weather,
        importance=importance,
        home_advantage=home_advantage,
    )


async def resolve_context(
    provider: ContextProvider | None,
    home_team: str,
    away_team: str,
    default: SimulationContext | None = None,
) -> SimulationContext:
    """Return an enriched context, falling back to ``default`` on any failure."""

    fallback = default or SimulationContext.neutral()
    if provider is None:
        return fallback
    try:
        narrative = await provider.fetch_narrative(home_team, away_team)
    except Exception as err:
        logger.warning(
            "Context enrichment unavailable for %s vs %s (%s); using base context",
            home_team,
            away_team,
            err,
        )
        return fallback
    if not narrative:
        return fallback
    context = context_from_narrative(narrative, fallback)
    logger.debug("Enriched context for %s vs %s: %s", home_team, away_team, context)
    return context


__all__ = [
    "ContextProvider",
    "NEUTRAL_FATIGUE",
    "NEUTRAL_HOME_ADVANTAGE",
    "NEUTRAL_IMPORTANCE",
    "NEUTRAL_MOTIVATION",
    "SimulationContext",
    "StaticContextProvider",
    "Weather",
    "context_from_narrative",
    "resolve_context",
]
