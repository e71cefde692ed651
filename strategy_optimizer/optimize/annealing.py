from __future__ import annotations

import math
from dataclasses import dataclass
from time import perf_counter
from typing import List, NamedTuple, Optional

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
from strategy_optimizer.optimize.schema import ParameterVector


@dataclass(frozen=True)
class AnnealingConfig:
    """
    Attributes:
        iterations (int): Neighbours evaluated per chain.
        initial_temperature (float): Starting temperature.
        cooling_rate (float): Geometric cooling factor applied every iteration.
        step_scale (float): Neighbour step as a fraction of the parameter range.
        chains (int): Independent restarts; the best chain wins.
        max_workers (int): Threads used when chains > 1.
    """

    iterations: int = 1000
    initial_temperature: float = 100.0
    cooling_rate: float = 0.95
    step_scale: float = 0.1
    chains: int = 1
    max_workers: int = 1

    def __post_init__(self) -> None:
        if self.iterations < 1:
            raise ConfigError("iterations must be >= 1")
        if not (self.initial_temperature > 0):
            raise ConfigError("initial_temperature must be > 0")
        if not (0.0 < self.cooling_rate <= 1.0):
            raise ConfigError("cooling_rate must be in (0, 1]")
        if not (self.step_scale > 0):
            raise ConfigError("step_scale must be > 0")
        if self.chains < 1:
            raise ConfigError("chains must be >= 1")


class _ChainOutcome(NamedTuple):
    chain: int
    best_parameters: ParameterVector
    best_fitness: float
    history: List[ConvergencePoint]
    evaluations: int


def metropolis_accept(
    delta: float, temperature: float, rng: np.random.Generator
) -> bool:
    """Always take improvements; take a worse move with probability exp(delta/T)."""
    if delta > 0:
        return True
    if temperature <= 0:
        return False
    return bool(rng.random() < math.exp(delta / temperature))


class ProbabilisticLocalSearch:
    """
    Simulated annealing: one current solution, one best-ever solution and a
    geometrically cooling temperature. Each chain is strictly sequential;
    extra chains are independent restarts run in parallel and reduced to the
    best one.
    """

    name = "annealing"

    def __init__(
        self,
        fitness: FitnessFunction,
        config: AnnealingConfig | None = None,
        *,
        rng: np.random.Generator | None = None,
        seed: int | None = None,
        progress: ProgressCallback | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        self.fitness = fitness
        self.schema = fitness.schema
        self.config = config or AnnealingConfig()
        self.seed = seed
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.progress = progress
        self.cancel_token = cancel_token

    def neighbor(
        self, current: ParameterVector, rng: np.random.Generator
    ) -> ParameterVector:
        """Nudge one random coordinate by up to +/-5% of its range, then clamp."""
        specs = list(self.schema)
        spec = specs[int(rng.integers(0, len(specs)))]
        step = (rng.random() - 0.5) * spec.span * self.config.step_scale
        if spec.is_int and 0 < abs(step) < 1:
            step = math.copysign(1.0, step)
        out = dict(current)
        out[spec.name] = spec.clamp(float(current[spec.name]) + step)
        return out

    def _anneal(
        self,
        rng: np.random.Generator,
        chain: int,
        progress: ProgressCallback | None,
    ) -> _ChainOutcome:
        cfg = self.config
        current = self.schema.sample(rng)
        current_fit = self.fitness.score(current)
        best, best_fit = dict(current), current_fit
        temperature = cfg.initial_temperature
        history: List[ConvergencePoint] = []
        evaluations = 1

        for it in range(1, cfg.iterations + 1):
            if self.cancel_token is not None and self.cancel_token.cancelled:
                raise OptimizationCancelled(
                    self.name,
                    best_parameters=best,
                    best_fitness=best_fit,
                    completed=it - 1,
                )
            candidate = self.neighbor(current, rng)
            candidate_fit = self.fitness.score(candidate)
            evaluations += 1
            if metropolis_accept(candidate_fit - current_fit, temperature, rng):
                current, current_fit = candidate, candidate_fit
            if current_fit > best_fit:
                best, best_fit = dict(current), current_fit
                logger.debug(
                    "[annealing] chain={} it={} new best={:.4f}", chain, it, best_fit
                )

            history.append(
                ConvergencePoint(
                    iteration=it,
                    fitness=best_fit,
                    current_fitness=current_fit,
                    temperature=temperature,
                )
            )
            temperature *= cfg.cooling_rate
            if progress is not None:
                progress(it, cfg.iterations)

        return _ChainOutcome(chain, best, best_fit, history, evaluations)

    def run(self) -> OptimizationResult:
        cfg = self.config
        started = perf_counter()
        logger.info(
            "[annealing] start iters={} T0={} cooling={} chains={}",
            cfg.iterations,
            cfg.initial_temperature,
            cfg.cooling_rate,
            cfg.chains,
        )
        if cfg.chains == 1:
            outcomes = [self._anneal(self.rng, 0, self.progress)]
        else:
            streams = self.rng.spawn(cfg.chains)
            with PopulationEvaluator(cfg.max_workers) as pool:
                outcomes = pool.map(
                    lambda k: self._anneal(streams[k], k, None), range(cfg.chains)
                )
            if self.progress is not None:
                for done in range(1, cfg.chains + 1):
                    self.progress(done, cfg.chains)

        # ties go to the lowest chain index
        winner = max(outcomes, key=lambda o: (o.best_fitness, -o.chain))
        evaluations = sum(o.evaluations for o in outcomes)
        final = self.fitness.evaluate(winner.best_parameters)
        evaluations += 1
        elapsed_ms = (perf_counter() - started) * 1000.0
        logger.info(
            "[annealing] done chain={} evals={} best={:.4f} params={} ms={:.1f}",
            winner.chain,
            evaluations,
            final.fitness,
            final.parameters,
            elapsed_ms,
        )
        return OptimizationResult.from_evaluation(
            self.name,
            final,
            winner.history,
            evaluations=evaluations,
            elapsed_ms=elapsed_ms,
            seed=self.seed,
        )


__all__ = ["AnnealingConfig", "ProbabilisticLocalSearch", "metropolis_accept"]
