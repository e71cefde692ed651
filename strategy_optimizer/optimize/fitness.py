from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from loguru import logger

from strategy_optimizer.backtest.engine import EngineConfig, EquityCurve, TradeSimulator
from strategy_optimizer.backtest.execution import Trade
from strategy_optimizer.backtest.metrics import Metrics, MetricsEngine
from strategy_optimizer.backtest.series import PriceSeries, Signal
from strategy_optimizer.core.exceptions import ConfigError
from strategy_optimizer.optimize.schema import ParameterSchema, ParameterVector

SignalGenerator = Callable[[PriceSeries, Mapping[str, Any]], Sequence[Signal]]

DEFAULT_WEIGHTS: Dict[str, float] = {"sharpe_ratio": 0.7, "total_return": 0.3}

# Non-finite metrics (profit factor) are clipped before weighting.
_METRIC_CLIP = 1e6


@dataclass(frozen=True)
class FitnessConstraints:
    """
    Optional hard limits; every violated limit subtracts `penalty`.

    Attributes:
        max_drawdown_limit (float | None): Reject drawdowns deeper than this fraction.
        min_win_rate (float | None): Require at least this win rate.
        min_profit_factor (float | None): Require at least this profit factor.
        penalty (float): Amount subtracted per violation.
    """

    max_drawdown_limit: Optional[float] = None
    min_win_rate: Optional[float] = None
    min_profit_factor: Optional[float] = None
    penalty: float = 10.0

    def violations(self, metrics: Metrics) -> List[str]:
        out: List[str] = []
        if (
            self.max_drawdown_limit is not None
            and metrics.max_drawdown > self.max_drawdown_limit
        ):
            out.append("max_drawdown")
        if self.min_win_rate is not None and metrics.win_rate < self.min_win_rate:
            out.append("win_rate")
        if (
            self.min_profit_factor is not None
            and metrics.profit_factor < self.min_profit_factor
        ):
            out.append("profit_factor")
        return out


@dataclass(frozen=True)
class Evaluation:
    """Full re-score of one vector: scalar fitness plus everything behind it."""

    parameters: ParameterVector
    fitness: float
    metrics: Metrics
    equity_curve: EquityCurve
    trades: Tuple[Trade, ...] = field(default_factory=tuple)


def _clip(value: float) -> float:
    if math.isnan(value):
        return 0.0
    return max(-_METRIC_CLIP, min(_METRIC_CLIP, value))


class FitnessFunction:
    """
    Maps a parameter vector to a scalar score.

    generate_signals(prices, vector) -> signals, then the simulator, then the
    metrics engine, then a weighted sum of selected metrics. Holds only
    read-only state, so one instance can be shared by worker threads.
    """

    def __init__(
        self,
        prices: PriceSeries,
        generate_signals: SignalGenerator,
        schema: ParameterSchema,
        *,
        engine: EngineConfig | None = None,
        weights: Mapping[str, float] | None = None,
        constraints: FitnessConstraints | None = None,
        var_confidence: float = 0.95,
    ) -> None:
        self.prices = prices
        self.generate_signals = generate_signals
        self.schema = schema
        self.engine = engine or EngineConfig()
        self.constraints = constraints
        self.weights: Dict[str, float] = dict(
            DEFAULT_WEIGHTS if weights is None else weights
        )
        known = set(Metrics.field_names())
        unknown = sorted(set(self.weights) - known)
        if unknown:
            raise ConfigError(f"Unknown fitness metric(s): {unknown}")
        if not self.weights:
            raise ConfigError("Fitness weights must name at least one metric")
        self._simulator = TradeSimulator(self.engine)
        self._metrics = MetricsEngine(self.engine.risk_free_rate, var_confidence)

    def combine(self, metrics: Metrics) -> float:
        score = 0.0
        for name, weight in self.weights.items():
            score += float(weight) * _clip(float(getattr(metrics, name)))
        if self.constraints is not None:
            broken = self.constraints.violations(metrics)
            if broken:
                score -= self.constraints.penalty * len(broken)
        return score

    def evaluate(self, vector: Mapping[str, Any]) -> Evaluation:
        params = self.schema.validate(vector)
        signals = self.generate_signals(self.prices, params)
        result = self._simulator.run(self.prices, signals)
        metrics = self._metrics.compute(
            result.equity_curve, result.trades, self.engine.initial_capital
        )
        fitness = self.combine(metrics)
        logger.trace("[fitness] params={} fitness={:.6f}", params, fitness)
        return Evaluation(
            parameters=params,
            fitness=fitness,
            metrics=metrics,
            equity_curve=result.equity_curve,
            trades=result.trades,
        )

    def score(self, vector: Mapping[str, Any]) -> float:
        return self.evaluate(vector).fitness

    __call__ = score

    def with_prices(self, prices: PriceSeries) -> "FitnessFunction":
        """Same rule, weights and engine over a different slice of history."""
        return FitnessFunction(
            prices,
            self.generate_signals,
            self.schema,
            engine=self.engine,
            weights=self.weights,
            constraints=self.constraints,
            var_confidence=self._metrics.var_confidence,
        )


__all__ = [
    "DEFAULT_WEIGHTS",
    "Evaluation",
    "FitnessConstraints",
    "FitnessFunction",
    "SignalGenerator",
]
