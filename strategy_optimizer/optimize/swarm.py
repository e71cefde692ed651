from __future__ import annotations

import math
from dataclasses import dataclass
from time import perf_counter
from typing import List, Optional

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
class SwarmConfig:
    swarm_size: int = 50
    iterations: int = 100
    inertia: float = 0.7
    cognitive: float = 1.5
    social: float = 1.5
    velocity_clamp: float = 0.2  # fraction of each parameter range
    max_workers: int = 1
    early_stopping_patience: Optional[int] = None
    early_stopping_tolerance: float = 1e-9

    def __post_init__(self) -> None:
        if self.swarm_size < 1:
            raise ConfigError("swarm_size must be >= 1")
        if self.iterations < 1:
            raise ConfigError("iterations must be >= 1")
        if not (self.velocity_clamp > 0):
            raise ConfigError("velocity_clamp must be > 0")
        if (
            self.early_stopping_patience is not None
            and self.early_stopping_patience < 1
        ):
            raise ConfigError("early_stopping_patience must be >= 1 or None")


class ParticleSwarmSearch:
    """
    Particle swarm optimisation over the schema's box.

    Particles move in continuous space; integer parameters are rounded only
    when a position is turned back into a vector for scoring.
    """

    name = "swarm"

    def __init__(
        self,
        fitness: FitnessFunction,
        config: SwarmConfig | None = None,
        *,
        rng: np.random.Generator | None = None,
        seed: int | None = None,
        progress: ProgressCallback | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        self.fitness = fitness
        self.schema = fitness.schema
        self.config = config or SwarmConfig()
        self.seed = seed
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.progress = progress
        self.cancel_token = cancel_token

    def run(self) -> OptimizationResult:
        cfg = self.config
        schema = self.schema
        started = perf_counter()
        lo, hi = schema.lower(), schema.upper()
        vmax = (hi - lo) * cfg.velocity_clamp
        spans = np.where(hi > lo, hi - lo, 1.0)
        n, d = cfg.swarm_size, len(schema)

        positions = np.vstack(
            [schema.to_array(schema.sample(self.rng)) for _ in range(n)]
        )
        velocities = self.rng.uniform(-1.0, 1.0, size=(n, d)) * vmax
        personal_best = positions.copy()
        personal_fit = np.full(n, -math.inf)
        global_best: Optional[ParameterVector] = None
        global_pos = positions[0].copy()
        global_fit = -math.inf
        history: List[ConvergencePoint] = []
        evaluations = 0
        stale = 0

        logger.info(
            "[swarm] start size={} iters={} params={}",
            n,
            cfg.iterations,
            list(schema.names),
        )
        with PopulationEvaluator(cfg.max_workers) as pool:
            for it in range(1, cfg.iterations + 1):
                if self.cancel_token is not None and self.cancel_token.cancelled:
                    raise OptimizationCancelled(
                        self.name,
                        best_parameters=global_best,
                        best_fitness=global_fit if global_best is not None else None,
                        completed=it - 1,
                    )
                vectors = [schema.from_array(p) for p in positions]
                scores = np.array(pool.map(self.fitness.score, vectors), dtype=float)
                evaluations += n

                improved = scores > personal_fit
                personal_fit[improved] = scores[improved]
                personal_best[improved] = positions[improved]

                idx = int(np.argmax(scores))
                gain = scores[idx] - global_fit
                if scores[idx] > global_fit:
                    global_fit = float(scores[idx])
                    global_best = dict(vectors[idx])
                    global_pos = positions[idx].copy()
                stale = 0 if gain > cfg.early_stopping_tolerance else stale + 1

                history.append(
                    ConvergencePoint(
                        iteration=it,
                        fitness=global_fit,
                        mean_fitness=float(scores.mean()),
                        diversity=float(np.mean(positions.std(axis=0) / spans)),
                    )
                )
                logger.debug(
                    "[swarm] it={}/{} best={:.4f}", it, cfg.iterations, global_fit
                )
                if self.progress is not None:
                    self.progress(it, cfg.iterations)
                if (
                    cfg.early_stopping_patience is not None
                    and stale >= cfg.early_stopping_patience
                ):
                    logger.info("[swarm] converged, stopping at iteration {}", it)
                    break

                r1 = self.rng.random((n, d))
                r2 = self.rng.random((n, d))
                velocities = (
                    cfg.inertia * velocities
                    + cfg.cognitive * r1 * (personal_best - positions)
                    + cfg.social * r2 * (global_pos - positions)
                )
                velocities = np.clip(velocities, -vmax, vmax)
                positions = np.clip(positions + velocities, lo, hi)

        final = self.fitness.evaluate(global_best)
        evaluations += 1
        elapsed_ms = (perf_counter() - started) * 1000.0
        logger.info(
            "[swarm] done iters={} evals={} best={:.4f} ms={:.1f}",
            len(history),
            evaluations,
            final.fitness,
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


__all__ = ["ParticleSwarmSearch", "SwarmConfig"]
