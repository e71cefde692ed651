"""Trade simulation and performance statistics.

Provides the price/signal containers, the execution model, the bar-by-bar
simulator and the metrics battery consumed by the optimizers.
"""

from strategy_optimizer.backtest.engine import (
    BacktestResult,
    EngineConfig,
    EquityCurve,
    TradeSimulator,
    run_backtest,
)
from strategy_optimizer.backtest.execution import (
    Costs,
    Direction,
    ExecutionModel,
    Position,
    Trade,
)
from strategy_optimizer.backtest.metrics import Metrics, MetricsEngine, compute_metrics
from strategy_optimizer.backtest.series import PriceSeries, Signal, SignalSeries

__all__ = [
    "BacktestResult",
    "Costs",
    "Direction",
    "EngineConfig",
    "EquityCurve",
    "ExecutionModel",
    "Metrics",
    "MetricsEngine",
    "Position",
    "PriceSeries",
    "Signal",
    "SignalSeries",
    "Trade",
    "TradeSimulator",
    "compute_metrics",
    "run_backtest",
]
