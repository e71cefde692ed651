from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Protocol, Tuple

from loguru import logger

from strategy_optimizer.core.exceptions import ConfigError, MalformedInputError
from strategy_optimizer.optimize.fitness import Evaluation, FitnessFunction
from strategy_optimizer.optimize.result import OptimizationResult


class Optimizer(Protocol):
    name: str

    def run(self) -> OptimizationResult: ...


OptimizerFactory = Callable[[FitnessFunction], Optimizer]


@dataclass(frozen=True)
class WindowResult:
    window: int
    start: int
    in_sample_end: int
    end: int
    in_sample: OptimizationResult
    out_of_sample: Evaluation
    consistency: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "window": self.window,
            "start": self.start,
            "in_sample_end": self.in_sample_end,
            "end": self.end,
            "best_parameters": dict(self.in_sample.best_parameters),
            "in_sample_fitness": self.in_sample.best_fitness,
            "out_of_sample_fitness": self.out_of_sample.fitness,
            "out_of_sample_sharpe": self.out_of_sample.metrics.sharpe_ratio,
            "out_of_sample_return": self.out_of_sample.metrics.total_return,
            "consistency": self.consistency,
        }


@dataclass(frozen=True)
class WalkForwardReport:
    algorithm: str
    windows: Tuple[WindowResult, ...]
    average_consistency: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "algorithm": self.algorithm,
            "average_consistency": self.average_consistency,
            "windows": [w.to_dict() for w in self.windows],
        }


def consistency(in_sample_fitness: float, out_of_sample_fitness: float) -> float:
    """Share of in-sample fitness that survives out of sample."""
    if not (in_sample_fitness > 0) or not math.isfinite(out_of_sample_fitness):
        return 0.0
    return out_of_sample_fitness / in_sample_fitness


def split_windows(
    n_bars: int,
    window_size: int,
    step_size: int,
    out_of_sample_fraction: float,
) -> List[Tuple[int, int, int]]:
    """(start, in_sample_end, end) for each rolling window."""
    if window_size < 4 or step_size < 1:
        raise ConfigError("window_size must be >= 4 and step_size >= 1")
    if not (0.0 < out_of_sample_fraction < 1.0):
        raise ConfigError("out_of_sample_fraction must be in (0, 1)")
    if n_bars < window_size:
        raise MalformedInputError(
            f"Series of {n_bars} bars is shorter than one window ({window_size})"
        )
    out: List[Tuple[int, int, int]] = []
    for start in range(0, n_bars - window_size + 1, step_size):
        end = start + window_size
        is_end = start + int(math.floor(window_size * (1 - out_of_sample_fraction)))
        if is_end - start < 2 or end - is_end < 2:
            raise MalformedInputError(
                "Each in-sample and out-of-sample slice needs at least 2 bars"
            )
        out.append((start, is_end, end))
    return out


def walk_forward(
    fitness: FitnessFunction,
    optimizer_factory: OptimizerFactory,
    *,
    window_size: int = 252,
    step_size: int = 63,
    out_of_sample_fraction: float = 0.2,
) -> WalkForwardReport:
    """
    Optimise on each in-sample slice, then re-score the winner on the
    out-of-sample slice that follows it.
    """
    prices = fitness.prices
    windows = split_windows(len(prices), window_size, step_size, out_of_sample_fraction)
    logger.info(
        "[walk_forward] {} window(s) size={} step={} oos={}",
        len(windows),
        window_size,
        step_size,
        out_of_sample_fraction,
    )
    results: List[WindowResult] = []
    algorithm = "unknown"
    for k, (start, is_end, end) in enumerate(windows, start=1):
        optimizer = optimizer_factory(fitness.with_prices(prices.slice(start, is_end)))
        algorithm = getattr(optimizer, "name", algorithm)
        in_sample = optimizer.run()
        oos = fitness.with_prices(prices.slice(is_end, end)).evaluate(
            dict(in_sample.best_parameters)
        )
        score = consistency(in_sample.best_fitness, oos.fitness)
        logger.info(
            "[walk_forward] window={}/{} is={:.4f} oos={:.4f} consistency={:.2f}",
            k,
            len(windows),
            in_sample.best_fitness,
            oos.fitness,
            score,
        )
        results.append(
            WindowResult(
                window=k,
                start=start,
                in_sample_end=is_end,
                end=end,
                in_sample=in_sample,
                out_of_sample=oos,
                consistency=score,
            )
        )

    avg = sum(r.consistency for r in results) / len(results)
    return WalkForwardReport(
        algorithm=algorithm, windows=tuple(results), average_consistency=avg
    )


__all__ = [
    "OptimizerFactory",
    "WalkForwardReport",
    "WindowResult",
    "consistency",
    "split_windows",
    "walk_forward",
]
