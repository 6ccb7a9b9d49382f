"""Population-based search over numeric parameter trees."""

from __future__ import annotations

import asyncio
import copy
import dataclasses
import inspect
import logging
import math
import random
from typing import Awaitable, Callable, Dict, List, Mapping, MutableMapping, Tuple, Union

logger = logging.getLogger(__name__)

Gene = Union[float, int, "Genome"]
Genome = Dict[str, Gene]
FitnessFunction = Callable[[Genome], Union[float, Awaitable[float]]]

MUTATION_SCALE = 0.25


@dataclasses.dataclass(frozen=True, slots=True)
class OptimizationResult:
    """Outcome of :meth:`GeneticOptimizer.optimize`.

    ``convergence_history`` holds the all-time best fitness after each
    generation and is therefore non-decreasing; ``generation_maxima`` keeps
    the raw per-generation maximum.
    """

    best_params: Genome
    best_fitness: float
    convergence_history: Tuple[float, ...]
    generation_maxima: Tuple[float, ...]


def mutate_genome(genome: MutableMapping[str, Gene], rate: float, rng: random.Random) -> None:
    """Perturb every numeric leaf with probability ``rate``, in place.

    Nested mappings are traversed recursively; the perturbation is uniform in
    ``±12.5 %`` of the current value.  Booleans and non-numeric leaves are
    left untouched.
    """

    for key, value in genome.items():
        if isinstance(value, MutableMapping):
            mutate_genome(value, rate, rng)
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            if rng.random() < rate:
                genome[key] = value + (rng.random() - 0.5) * value * MUTATION_SCALE


def numeric_leaves(genome: Mapping[str, Gene], prefix: str = "") -> Dict[str, float]:
    """Flatten a genome into dotted paths for logging and reporting."""

    leaves: Dict[str, float] = {}
    for key, value in genome.items():
        path = f"{prefix}{key}"
        if isinstance(value, Mapping):
            leaves.update(numeric_leaves(value, f"{path}."))
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            leaves[path] = float(value)
    return leaves


@dataclasses.dataclass(slots=True)
class GeneticOptimizer:
    """Generational genetic algorithm with tournament selection and elitism."""

    population_size: int = 24
    mutation_rate: float = 0.08
    initial_mutation_rate: float = 0.4
    crossover_rate: float = 0.75
    elitism_count: int = 2
    generations: int = 12
    max_concurrency: int | None = None
    seed: int | None = None

    def __post_init__(self) -> None:
        if self.population_size < 2:
            raise ValueError("population_size must be at least 2")
        if not 0 <= self.elitism_count <= self.population_size:
            raise ValueError("elitism_count must be within [0, population_size]")
        if self.generations < 1:
            raise ValueError("generations must be at least 1")

    async def optimize(
        self, seed_params: Mapping[str, Gene], fitness_fn: FitnessFunction
    ) -> OptimizationResult:
        rng = random.Random(self.seed)
        population = self._initial_population(seed_params, rng)
        best_fitness = -math.inf
        best_individual = copy.deepcopy(population[0])
        history: List[float] = []
        maxima: List[float] = []

        for generation in range(self.generations):
            fitness = await self._evaluate(population, fitness_fn)
            generation_best = max(range(len(fitness)), key=fitness.__getitem__)
            if fitness[generation_best] > best_fitness:
                best_fitness = fitness[generation_best]
                best_individual = copy.deepcopy(population[generation_best])
            maxima.append(fitness[generation_best])
            history.append(best_fitness)
            logger.debug(
                "Generation %d: max %.4f best %.4f",
                generation,
                fitness[generation_best],
                best_fitness,
            )
            selected = self._selection(population, fitness, rng)
            offspring = self._crossover(selected, rng)
            for individual in offspring:
                mutate_genome(individual, self.mutation_rate, rng)
            population = self._elitism(population, fitness, offspring)

        return OptimizationResult(
            best_params=best_individual,
            best_fitness=best_fitness,
            convergence_history=tuple(history),
            generation_maxima=tuple(maxima),
        )

    # -- operators -----------------------------------------------------------

    def _initial_population(
        self, seed_params: Mapping[str, Gene], rng: random.Random
    ) -> List[Genome]:
        # slot 0 keeps the unmutated seed so the search never reports worse
        population: List[Genome] = [copy.deepcopy(dict(seed_params))]
        for _ in range(self.population_size - 1):
            individual = copy.deepcopy(dict(seed_params))
            mutate_genome(individual, self.initial_mutation_rate, rng)
            population.append(individual)
        return population

    async def _evaluate(
        self, population: List[Genome], fitness_fn: FitnessFunction
    ) -> List[float]:
        limit = min(self.max_concurrency or self.population_size, self.population_size)
        semaphore = asyncio.Semaphore(max(1, limit))

        async def _score(individual: Genome) -> float:
            async with semaphore:
                # fitness functions see a copy so they cannot corrupt the population
                value = fitness_fn(copy.deepcopy(individual))
                if inspect.isawaitable(value):
                    value = await value
                return float(value)

        return list(await asyncio.gather(*(_score(ind) for ind in population)))

    @staticmethod
    def _selection(
        population: List[Genome], fitness: List[float], rng: random.Random
    ) -> List[Genome]:
        selected: List[Genome] = []
        for _ in range(len(population)):
            first = rng.randrange(len(population))
            second = rng.randrange(len(population))
            winner = first if fitness[first] > fitness[second] else second
            selected.append(copy.deepcopy(population[winner]))
        return selected

    def _crossover(self, selected: List[Genome], rng: random.Random) -> List[Genome]:
        offspring: List[Genome] = []
        for i in range(0, len(selected), 2):
            if i + 1 < len(selected) and rng.random() < self.crossover_rate:
                first, second = selected[i], selected[i + 1]
                child_a = copy.deepcopy(first)
                child_b = copy.deepcopy(second)
                for key in first:
                    if key in second and rng.random() < 0.5:
                        child_a[key] = copy.deepcopy(second[key])
                        child_b[key] = copy.deepcopy(first[key])
                offspring.extend((child_a, child_b))
            else:
                offspring.append(selected[i])
                if i + 1 < len(selected):
                    offspring.append(selected[i + 1])
        return offspring

    def _elitism(
        self, population: List[Genome], fitness: List[float], offspring: List[Genome]
    ) -> List[Genome]:
        ranked = sorted(range(len(population)), key=fitness.__getitem__, reverse=True)
        result = list(offspring)
        for slot, index in enumerate(ranked[: self.elitism_count]):
            result[slot] = copy.deepcopy(population[index])
        return result


__all__ = [
    "FitnessFunction",
    "Gene",
    "GeneticOptimizer",
    "Genome",
    "OptimizationResult",
    "mutate_genome",
    "numeric_leaves",
]
