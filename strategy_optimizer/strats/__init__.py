from __future__ import annotations

# Registry of example trading rules usable from the runner.

from dataclasses import dataclass
from typing import Dict

from strategy_optimizer.core.exceptions import ConfigError
from strategy_optimizer.optimize.fitness import SignalGenerator
from strategy_optimizer.optimize.schema import ParameterSchema

from . import mean_reversion, sma_crossover


@dataclass(frozen=True)
class StrategyDefinition:
    name: str
    generate_signals: SignalGenerator
    schema: ParameterSchema


STRATEGIES: Dict[str, StrategyDefinition] = {
    "sma_crossover": StrategyDefinition(
        "sma_crossover", sma_crossover.generate_signals, sma_crossover.SCHEMA
    ),
    "mean_reversion": StrategyDefinition(
        "mean_reversion", mean_reversion.generate_signals, mean_reversion.SCHEMA
    ),
}


def get_strategy(name: str) -> StrategyDefinition:
    try:
        return STRATEGIES[name]
    except KeyError:
        raise ConfigError(
            f"Unknown strategy {name!r}; available: {sorted(STRATEGIES)}"
        ) from None


__all__ = ["STRATEGIES", "StrategyDefinition", "get_strategy"]
