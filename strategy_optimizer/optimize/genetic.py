from __future__ import annotations

import math
from dataclasses import dataclass
from time import perf_counter
from typing import List, Optional, Sequence

import numpy as np
from loguru import logger

from strategy_optimizer.core.exceptions import ConfigError, OptimizationCancelled
from strategy_optimizer.optimize.fitness import FitnessFunction
from strategy_optimizer.optimize.pool import (
    CancellationToken,
    PopulationEvaluator,
    ProgressCallback,
)
from strategy_optimizer.optimize.result import ConvergencePoint, OptimizationResult
from strategy_optimizer.optimize.schema import ParameterSchema, ParameterVector


@dataclass(frozen=True)
class GeneticConfig:
    """
    Attributes:
        population_size (int): Individuals per generation.
        generations (int): Fixed number of generations to run.
        mutation_rate (float): Per-coordinate probability of a fresh uniform redraw.
        tournament_size (int): Contestants per parent selection.
        crossover_prob (float): Chance a child coordinate comes from parent one.
        max_workers (int): Threads used to score a generation.
        early_stopping_patience (int | None): Stop after this many stale
            generations; None runs every generation.
        early_stopping_tolerance (float): Minimum gain that resets patience.
    """

    population_size: int = 50
    generations: int = 100
    mutation_rate: float = 0.1
    tournament_size: int = 3
    crossover_prob: float = 0.5
    max_workers: int = 1
    early_stopping_patience: Optional[int] = None
    early_stopping_tolerance: float = 1e-9

    def __post_init__(self) -> None:
        if self.population_size < 1:
            raise ConfigError("population_size must be >= 1")
        if self.generations < 1:
            raise ConfigError("generations must be >= 1")
        if self.tournament_size < 1:
            raise ConfigError("tournament_size must be >= 1")
        for name in ("mutation_rate", "crossover_prob"):
            value = getattr(self, name)
            if not (0.0 <= value <= 1.0):
                raise ConfigError(f"{name} must be in [0, 1], got {value}")
        patience = self.early_stopping_patience
        if patience is not None and patience < 1:
            raise ConfigError("early_stopping_patience must be >= 1 or None")


def population_diversity(
    schema: ParameterSchema, population: Sequence[ParameterVector]
) -> float:
    """Mean per-parameter standard deviation, normalised by each range."""
    if len(population) < 2:
        return 0.0
    spreads: List[float] = []
    for spec in schema:
        if spec.span <= 0:
            spreads.append(0.0)
            continue
        col = np.array([float(ind[spec.name]) for ind in population], dtype=float)
        spreads.append(float(col.std(ddof=0)) / spec.span)
    return float(np.mean(spreads))


class EvolutionarySearch:
    """
    Genetic algorithm over a ParameterSchema.

    Each generation is scored as one parallel map, the running best is
    recorded, and the next generation is bred by tournament selection,
    uniform crossover and per-coordinate mutation. Elitism comes only from
    tracking the best-ever vector; nobody survives by default.
    """

    name = "genetic"

    def __init__(
        self,
        fitness: FitnessFunction,
        config: GeneticConfig | None = None,
        *,
        rng: np.random.Generator | None = None,
        seed: int | None = None,
        progress: ProgressCallback | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        self.fitness = fitness
        self.schema = fitness.schema
        self.config = config or GeneticConfig()
        self.seed = seed
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.progress = progress
        self.cancel_token = cancel_token

    # -------- operators --------
    def _tournament(self, scores: np.ndarray) -> int:
        contenders = self.rng.integers(0, scores.size, size=self.config.tournament_size)
        return int(contenders[int(np.argmax(scores[contenders]))])

    def _crossover(self, p1: ParameterVector, p2: ParameterVector) -> ParameterVector:
        take_first = self.rng.random(len(self.schema)) < self.config.crossover_prob
        return {
            name: (p1[name] if first else p2[name])
            for name, first in zip(self.schema.names, take_first)
        }

    def _mutate(self, child: ParameterVector) -> ParameterVector:
        hits = self.rng.random(len(self.schema)) < self.config.mutation_rate
        for spec, hit in zip(self.schema, hits):
            if hit:
                child[spec.name] = spec.sample(self.rng)
        return child

    def _breed(
        self, population: Sequence[ParameterVector], scores: np.ndarray
    ) -> List[ParameterVector]:
        nxt: List[ParameterVector] = []
        for _ in range(len(population)):
            p1 = population[self._tournament(scores)]
            p2 = population[self._tournament(scores)]
            nxt.append(self._mutate(self._crossover(p1, p2)))
        return nxt

    # -------- driver --------
    def run(self) -> OptimizationResult:
        cfg = self.config
        started = perf_counter()
        population = [self.schema.sample(self.rng) for _ in range(cfg.population_size)]
        best_vec: Optional[ParameterVector] = None
        best_fit = -math.inf
        history: List[ConvergencePoint] = []
        evaluations = 0
        stale = 0

        logger.info(
            "[genetic] start pop={} gens={} mut={} params={}",
            cfg.population_size,
            cfg.generations,
            cfg.mutation_rate,
            list(self.schema.names),
        )
        with PopulationEvaluator(cfg.max_workers) as pool:
            for gen in range(1, cfg.generations + 1):
                if self.cancel_token is not None and self.cancel_token.cancelled:
                    raise OptimizationCancelled(
                        self.name,
                        best_parameters=best_vec,
                        best_fitness=best_fit if best_vec is not None else None,
                        completed=gen - 1,
                    )

                scores = np.array(pool.map(self.fitness.score, population), dtype=float)
                evaluations += scores.size
                idx = int(np.argmax(scores))
                gain = scores[idx] - best_fit
                if scores[idx] > best_fit:
                    best_fit = float(scores[idx])
                    best_vec = dict(population[idx])
                stale = 0 if gain > cfg.early_stopping_tolerance else stale + 1

                history.append(
                    ConvergencePoint(
                        iteration=gen,
                        fitness=best_fit,
                        mean_fitness=float(scores.mean()),
                        diversity=population_diversity(self.schema, population),
                    )
                )
                logger.debug(
                    "[genetic] gen={}/{} best={:.4f} avg={:.4f}",
                    gen,
                    cfg.generations,
                    best_fit,
                    history[-1].mean_fitness,
                )
                if self.progress is not None:
                    self.progress(gen, cfg.generations)

                if (
                    cfg.early_stopping_patience is not None
                    and stale >= cfg.early_stopping_patience
                ):
                    logger.info(
                        "[genetic] no improvement for {} generation(s), stopping at {}",
                        stale,
                        gen,
                    )
                    break
                if gen < cfg.generations:
                    population = self._breed(population, scores)

        final = self.fitness.evaluate(best_vec)
        evaluations += 1
        elapsed_ms = (perf_counter() - started) * 1000.0
        logger.info(
            "[genetic] done gens={} evals={} best={:.4f} params={} ms={:.1f}",
            len(history),
            evaluations,
            final.fitness,
            final.parameters,
            elapsed_ms,
        )
        return OptimizationResult.from_evaluation(
            self.name,
            final,
            history,
            evaluations=evaluations,
            elapsed_ms=elapsed_ms,
            seed=self.seed,
        )


__all__ = ["EvolutionarySearch", "GeneticConfig", "population_diversity"]
