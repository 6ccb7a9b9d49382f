from __future__ import annotations

import asyncio
import logging

import pytest

from matchcast.context import (
    SimulationContext,
    StaticContextProvider,
    Weather,
    context_from_narrative,
    resolve_context,
)


class FailingProvider:
    async def fetch_narrative(self, home_team: str, away_team: str) -> str:
        raise ConnectionError("enrichment service offline")


def test_neutral_context() -> None:
    context = SimulationContext.neutral()
    assert context.weather is Weather.CLEAR
    assert context.importance == pytest.approx(0.7)
    assert context.home_advantage == 1.0
    assert context.fatigue == 10.0
    assert context.motivation == 85.0


def test_context_normalises_fields() -> None:
    context = SimulationContext(weather="rain", importance=3.0)  # type: ignore[arg-type]
    assert context.weather is Weather.RAIN
    assert context.importance == 1.0
    with pytest.raises(ValueError):
        SimulationContext(weather="sleet")  # type: ignore[arg-type]


def test_context_mapping_round_trip() -> None:
    context = SimulationContext(weather=Weather.WINDY, importance=0.9, home_advantage=1.1)
    assert SimulationContext.from_mapping(context.to_dict()) == context


@pytest.mark.parametrize(
    ("text", "weather"),
    [
        ("Heavy rain expected all evening", Weather.RAIN),
        ("Pluie battante sur le stade", Weather.RAIN),
        ("Storm warning issued", Weather.EXTREME),
        ("Strong wind from the north", Weather.WINDY),
        ("A big event in town tonight", Weather.CLEAR),
        ("Fans arrive by train", Weather.CLEAR),
    ],
)
def test_weather_keywords(text: str, weather: Weather) -> None:
    assert context_from_narrative(text).weather is weather


def test_bias_and_importance_from_narrative() -> None:
    context = context_from_narrative("Cup final, home bias 1.10 after recent form")
    assert context.importance == 1.0
    assert context.home_advantage == pytest.approx(1.10)


def test_out_of_range_bias_is_ignored() -> None:
    context = context_from_narrative("Ratings 0.45 and 1.75, bias 0.95")
    assert context.home_advantage == pytest.approx(0.95)
    assert context_from_narrative("nothing numeric").home_advantage == 1.0


def test_resolve_context_uses_provider() -> None:
    provider = StaticContextProvider("Derby day under rain")
    context = asyncio.run(resolve_context(provider, "North", "South"))
    assert provider.calls == [("North", "South")]
    assert context.weather is Weather.RAIN
    assert context.importance == 1.0


def test_resolve_context_falls_back_on_failure(caplog: pytest.LogCaptureFixture) -> None:
    default = SimulationContext(weather=Weather.WINDY)
    with caplog.at_level(logging.WARNING, logger="matchcast.context"):
        context = asyncio.run(resolve_context(FailingProvider(), "North", "South", default))
    assert context == default
    assert "enrichment unavailable" in caplog.text


def test_resolve_context_without_provider_or_narrative() -> None:
    assert asyncio.run(resolve_context(None, "A", "B")) == SimulationContext.neutral()
    empty = StaticContextProvider("")
    assert asyncio.run(resolve_context(empty, "A", "B")) == SimulationContext.neutral()
