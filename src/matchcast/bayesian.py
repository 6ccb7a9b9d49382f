"""Discrete Bayesian network over qualitative match factors.

The network has six root factors feeding three intermediate nodes, which in
turn condition the score-profile node::

    recent_results, injuries        -> team_form
    competition, league_position    -> match_importance
    formation, playing_style        -> tactical_matchup
    team_form, match_importance,
    tactical_matchup                -> score_probability

Inference is exact: every intermediate node has root-only parents, so the
posterior over the four query nodes is assembled from per-node messages and
a 108-cell joint table.  Evidence may be hard (an observed state) or soft (a
likelihood vector, used for weather).
"""

from __future__ import annotations

import dataclasses
import itertools
import logging
import math
import random
from typing import Dict, List, Mapping, Sequence, Tuple

from .context import SimulationContext, Weather
from .utils import clamp, shannon_entropy

logger = logging.getLogger(__name__)

Distribution = Dict[str, float]
Evidence = Mapping[str, "str | Mapping[str, float]"]

SCORE_NODE = "score_probability"
QUERY_NODES = ("team_form", "match_importance", "tactical_matchup", SCORE_NODE)
MAX_ENTROPY = math.log2(3)


@dataclasses.dataclass(frozen=True, slots=True)
class BayesianNode:
    name: str
    parents: Tuple[str, ...]
    values: Tuple[str, ...]


@dataclasses.dataclass(frozen=True, slots=True)
class BayesianInference:
    probabilities: Mapping[str, float]
    most_likely_state: str
    entropy: float
    confidence: float
    marginals: Mapping[str, Mapping[str, float]]


_NODES: Tuple[BayesianNode, ...] = (
    BayesianNode("recent_results", (), ("winning", "mixed", "losing")),
    BayesianNode("injuries", (), ("none", "minor", "major")),
    BayesianNode("competition", (), ("cup", "league", "friendly")),
    BayesianNode("league_position", (), ("top", "middle", "bottom")),
    BayesianNode("formation", (), ("attacking", "balanced", "defensive")),
    BayesianNode("playing_style", (), ("possession", "direct", "counter")),
    BayesianNode(
        "team_form",
        ("recent_results", "injuries"),
        ("excellent", "good", "average", "poor"),
    ),
    BayesianNode(
        "match_importance",
        ("competition", "league_position"),
        ("high", "medium", "low"),
    ),
    BayesianNode(
        "tactical_matchup",
        ("formation", "playing_style"),
        ("favorable", "neutral", "unfavorable"),
    ),
    BayesianNode(
        SCORE_NODE,
        ("team_form", "match_importance", "tactical_matchup"),
        ("high_score", "medium_score", "low_score"),
    ),
)

_PRIORS: Mapping[str, Sequence[float]] = {
    "recent_results": (0.35, 0.40, 0.25),
    "injuries": (0.50, 0.35, 0.15),
    "competition": (0.20, 0.70, 0.10),
    "league_position": (0.30, 0.40, 0.30),
    "formation": (0.30, 0.45, 0.25),
    "playing_style": (0.40, 0.35, 0.25),
}

# rows follow itertools.product order over the parents' value tuples
_TEAM_FORM_CPT: Sequence[Sequence[float]] = (
    (0.55, 0.30, 0.12, 0.03),  # winning, none
    (0.40, 0.35, 0.18, 0.07),  # winning, minor
    (0.20, 0.35, 0.30, 0.15),  # winning, major
    (0.15, 0.40, 0.35, 0.10),  # mixed, none
    (0.10, 0.35, 0.40, 0.15),  # mixed, minor
    (0.05, 0.25, 0.40, 0.30),  # mixed, major
    (0.05, 0.20, 0.40, 0.35),  # losing, none
    (0.03, 0.15, 0.37, 0.45),  # losing, minor
    (0.02, 0.08, 0.30, 0.60),  # losing, major
)

_MATCH_IMPORTANCE_CPT: Sequence[Sequence[float]] = (
    (0.85, 0.12, 0.03),  # cup, top
    (0.70, 0.25, 0.05),  # cup, middle
    (0.75, 0.20, 0.05),  # cup, bottom
    (0.60, 0.30, 0.10),  # league, top
    (0.20, 0.55, 0.25),  # league, middle
    (0.55, 0.30, 0.15),  # league, bottom
    (0.05, 0.25, 0.70),  # friendly, top
    (0.03, 0.22, 0.75),  # friendly, middle
    (0.05, 0.25, 0.70),  # friendly, bottom
)

_TACTICAL_MATCHUP_CPT: Sequence[Sequence[float]] = (
    (0.50, 0.30, 0.20),  # attacking, possession
    (0.40, 0.35, 0.25),  # attacking, direct
    (0.30, 0.30, 0.40),  # attacking, counter
    (0.35, 0.45, 0.20),  # balanced, possession
    (0.30, 0.45, 0.25),  # balanced, direct
    (0.35, 0.40, 0.25),  # balanced, counter
    (0.20, 0.40, 0.40),  # defensive, possession
    (0.20, 0.45, 0.35),  # defensive, direct
    (0.40, 0.35, 0.25),  # defensive, counter
)

# additive logit contributions (high_score, medium_score, low_score)
_SCORE_BASE = (0.0, 0.8, 0.0)
_SCORE_FORM = {
    "excellent": (0.9, 0.0, -0.5),
    "good": (0.4, 0.0, -0.2),
    "average": (0.0, 0.0, 0.2),
    "poor": (-0.5, 0.0, 0.7),
}
_SCORE_IMPORTANCE = {
    "high": (-0.1, 0.0, 0.4),
    "medium": (0.0, 0.0, 0.0),
    "low": (0.3, 0.0, -0.2),
}
_SCORE_TACTICS = {
    "favorable": (0.5, 0.0, -0.3),
    "neutral": (0.0, 0.0, 0.0),
    "unfavorable": (-0.4, 0.0, 0.4),
}

WEATHER_STYLE_LIKELIHOOD: Mapping[Weather, Mapping[str, float]] = {
    Weather.RAIN: {"possession": 0.7, "direct": 1.0, "counter": 0.9},
    Weather.WINDY: {"possession": 0.85, "direct": 1.0, "counter": 1.0},
    Weather.EXTREME: {"possession": 0.4, "direct": 1.0, "counter": 0.8},
}


def _softmax(logits: Sequence[float]) -> List[float]:
    peak = max(logits)
    weights = [math.exp(value - peak) for value in logits]
    total = sum(weights)
    return [weight / total for weight in weights]


def _score_cpt() -> List[List[float]]:
    rows: List[List[float]] = []
    for form, importance, tactics in itertools.product(
        _SCORE_FORM, _SCORE_IMPORTANCE, _SCORE_TACTICS
    ):
        logits = [
            _SCORE_BASE[i]
            + _SCORE_FORM[form][i]
            + _SCORE_IMPORTANCE[importance][i]
            + _SCORE_TACTICS[tactics][i]
            for i in range(3)
        ]
        rows.append(_softmax(logits))
    return rows


def importance_state(importance: float) -> str:
    if importance > 0.8:
        return "high"
    if importance >= 0.4:
        return "medium"
    return "low"


class BayesianNetwork:
    """Fixed network with declared conditional probability tables."""

    def __init__(self) -> None:
        self._nodes: Dict[str, BayesianNode] = {node.name: node for node in _NODES}
        self._cpts: Dict[str, Dict[Tuple[str, ...], Distribution]] = {}
        for name, prior in _PRIORS.items():
            self._cpts[name] = {(): dict(zip(self._nodes[name].values, prior))}
        self._register_cpt("team_form", _TEAM_FORM_CPT)
        self._register_cpt("match_importance", _MATCH_IMPORTANCE_CPT)
        self._register_cpt("tactical_matchup", _TACTICAL_MATCHUP_CPT)
        self._register_cpt(SCORE_NODE, _score_cpt())
        self._children: Dict[str, List[str]] = {name: [] for name in self._nodes}
        for node in self._nodes.values():
            for parent in node.parents:
                self._children[parent].append(node.name)

    def _register_cpt(self, name: str, rows: Sequence[Sequence[float]]) -> None:
        node = self._nodes[name]
        combos = list(itertools.product(*(self._nodes[p].values for p in node.parents)))
        if len(combos) != len(rows):
            raise ValueError(f"CPT for {name} needs {len(combos)} rows, got {len(rows)}")
        table: Dict[Tuple[str, ...], Distribution] = {}
        for combo, row in zip(combos, rows):
            if len(row) != len(node.values) or not math.isclose(sum(row), 1.0, abs_tol=1e-9):
                raise ValueError(f"CPT row {combo} for {name} is not a distribution")
            table[tuple(combo)] = dict(zip(node.values, row))
        self._cpts[name] = table

    @property
    def nodes(self) -> Mapping[str, BayesianNode]:
        return dict(self._nodes)

    def conditional(self, name: str, parent_values: Sequence[str] = ()) -> Distribution:
        return dict(self._cpts[name][tuple(parent_values)])

    # -- evidence ------------------------------------------------------------

    def evidence_from_context(self, context: SimulationContext) -> Dict[str, object]:
        evidence: Dict[str, object] = {
            "match_importance": importance_state(context.importance)
        }
        likelihood = WEATHER_STYLE_LIKELIHOOD.get(context.weather)
        if likelihood is not None:
            evidence["playing_style"] = dict(likelihood)
        return evidence

    def _likelihoods(self, evidence: Mapping[str, object]) -> Dict[str, Distribution]:
        likelihoods: Dict[str, Distribution] = {}
        for name, observed in evidence.items():
            node = self._nodes.get(name)
            if node is None:
                raise ValueError(f"Unknown network node: {name}")
            if isinstance(observed, str):
                if observed not in node.values:
                    raise ValueError(f"Unknown state {observed!r} for node {name}")
                likelihoods[name] = {value: float(value == observed) for value in node.values}
            elif isinstance(observed, Mapping):
                likelihoods[name] = {
                    value: max(0.0, float(observed.get(value, 1.0))) for value in node.values
                }
            else:
                raise TypeError(f"Evidence for {name} must be a state or a likelihood mapping")
        return likelihoods

    # -- exact inference -----------------------------------------------------

    def _message(self, name: str, likelihoods: Mapping[str, Distribution]) -> Distribution:
        node = self._nodes[name]
        parents = [self._nodes[p] for p in node.parents]
        message = {value: 0.0 for value in node.values}
        for combo in itertools.product(*(parent.values for parent in parents)):
            weight = 1.0
            for parent, value in zip(parents, combo):
                weight *= self._cpts[parent.name][()][value]
                weight *= likelihoods.get(parent.name, {}).get(value, 1.0)
            if weight == 0.0:
                continue
            row = self._cpts[name][tuple(combo)]
            for value in node.values:
                message[value] += weight * row[value]
        own = likelihoods.get(name, {})
        return {value: mass * own.get(value, 1.0) for value, mass in message.items()}

    def posterior(self, evidence: Evidence | None = None) -> Dict[str, Distribution]:
        """Posterior marginals of the four query nodes given ``evidence``."""

        likelihoods = self._likelihoods(evidence or {})
        score = self._nodes[SCORE_NODE]
        parents = [self._nodes[p] for p in score.parents]
        messages = [self._message(parent.name, likelihoods) for parent in parents]
        score_likelihood = likelihoods.get(SCORE_NODE, {})
        marginals: Dict[str, Distribution] = {
            name: {value: 0.0 for value in self._nodes[name].values} for name in QUERY_NODES
        }
        total = 0.0
        for combo in itertools.product(*(parent.values for parent in parents)):
            weight = 1.0
            for message, value in zip(messages, combo):
                weight *= message[value]
            if weight == 0.0:
                continue
            row = self._cpts[SCORE_NODE][tuple(combo)]
            for state in score.values:
                mass = weight * row[state] * score_likelihood.get(state, 1.0)
                if mass == 0.0:
                    continue
                total += mass
                marginals[SCORE_NODE][state] += mass
                for parent, value in zip(parents, combo):
                    marginals[parent.name][value] += mass
        if total <= 0.0:
            raise ValueError("Evidence is inconsistent with the network (zero likelihood)")
        return {
            name: {value: mass / total for value, mass in dist.items()}
            for name, dist in marginals.items()
        }

    def infer(
        self,
        context: SimulationContext | None = None,
        evidence: Evidence | None = None,
    ) -> BayesianInference:
        """Score-profile distribution conditioned on context and extra evidence."""

        combined: Dict[str, object] = {}
        if context is not None:
            combined.update(self.evidence_from_context(context))
        if evidence:
            combined.update(evidence)
        marginals = self.posterior(combined)
        probabilities = marginals[SCORE_NODE]
        entropy = shannon_entropy(probabilities.values())
        most_likely = max(probabilities, key=probabilities.__getitem__)
        result = BayesianInference(
            probabilities=dict(probabilities),
            most_likely_state=most_likely,
            entropy=entropy,
            confidence=clamp(1.0 - entropy / MAX_ENTROPY, 0.0, 1.0),
            marginals=marginals,
        )
        logger.debug(
            "Bayesian inference %s -> %s (entropy %.3f)", sorted(combined), most_likely, entropy
        )
        return result

    # -- sampling ------------------------------------------------------------

    def _local_weight(
        self,
        name: str,
        value: str,
        state: Mapping[str, str],
        likelihoods: Mapping[str, Distribution],
    ) -> float:
        trial = dict(state)
        trial[name] = value
        weight = likelihoods.get(name, {}).get(value, 1.0)
        for member in (name, *self._children[name]):
            node = self._nodes[member]
            key = tuple(trial[p] for p in node.parents)
            weight *= self._cpts[member][key][trial[member]]
        return weight

    def gibbs_sampling(
        self,
        num_samples: int,
        evidence: Evidence | None = None,
        rng: random.Random | None = None,
        burn_in: int = 100,
    ) -> List[Dict[str, str]]:
        """Draw joint states with a systematic-scan Gibbs sampler.

        Hard evidence pins a node; soft evidence enters as a likelihood factor
        in the node's full conditional.
        """

        rng = rng or random.Random()
        likelihoods = self._likelihoods(evidence or {})
        fixed = {name: obs for name, obs in (evidence or {}).items() if isinstance(obs, str)}
        state: Dict[str, str] = {}
        for node in _NODES:
            if node.name in fixed:
                state[node.name] = fixed[node.name]
                continue
            key = tuple(state[p] for p in node.parents)
            dist = self._cpts[node.name][key]
            state[node.name] = rng.choices(node.values, weights=[dist[v] for v in node.values])[0]
        free = [node for node in _NODES if node.name not in fixed]
        samples: List[Dict[str, str]] = []
        for sweep in range(burn_in + max(0, num_samples)):
            for node in free:
                weights = [
                    self._local_weight(node.name, value, state, likelihoods)
                    for value in node.values
                ]
                if sum(weights) <= 0.0:
                    continue
                state[node.name] = rng.choices(node.values, weights=weights)[0]
            if sweep >= burn_in:
                samples.append(dict(state))
        return samples


__all__ = [
    "BayesianInference",
    "BayesianNetwork",
    "BayesianNode",
    "QUERY_NODES",
    "SCORE_NODE",
    "WEATHER_STYLE_LIKELIHOOD",
    "importance_state",
]
