from __future__ import annotations

from typing import Any, Dict, Optional


class StrategyOptimizerError(Exception):
    """Base class for all strategy optimizer exceptions."""


class MalformedInputError(StrategyOptimizerError, ValueError):
    """Raised when a price series, signal series, schema or vector is malformed."""


class ConfigError(StrategyOptimizerError, ValueError):
    """Raised for missing/malformed configuration."""


class OptimizationCancelled(StrategyOptimizerError):
    """Raised when a cancellation token is set mid-run.

    Carries the best vector and fitness seen before the stop so callers can
    still report something useful.
    """

    def __init__(
        self,
        algorithm: str,
        *,
        best_parameters: Optional[Dict[str, Any]] = None,
        best_fitness: Optional[float] = None,
        completed: int = 0,
    ) -> None:
        super().__init__(f"{algorithm} cancelled after {completed} step(s)")
        self.algorithm = algorithm
        self.best_parameters = best_parameters
        self.best_fitness = best_fitness
        self.completed = completed


__all__ = [
    "StrategyOptimizerError",
    "MalformedInputError",
    "ConfigError",
    "OptimizationCancelled",
]
