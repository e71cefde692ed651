from __future__ import annotations

from typing import Any

import numpy as np
from loguru import logger

from strategy_optimizer.backtest.series import PriceSeries, Signal, SignalSeries
from strategy_optimizer.optimize.schema import ParameterSchema, ParamSpec
from strategy_optimizer.strats.common import (
    as_series,
    get_param,
    rolling_mean,
    signals_from_targets,
)

SCHEMA = ParameterSchema(
    [
        ParamSpec("fast_window", 5, 50, 10, kind="int"),
        ParamSpec("slow_window", 20, 200, 50, kind="int"),
    ]
)


def generate_signals(prices: PriceSeries, p: Any) -> SignalSeries:
    """
    Long when the fast moving average is above the slow one, short when it
    is below. A fast window that is not shorter than the slow one never
    trades.
    """
    fast = int(get_param(p, "fast_window", 10))
    slow = int(get_param(p, "slow_window", 50))
    if fast >= slow:
        logger.trace("[sma_crossover] fast={} >= slow={}; holding", fast, slow)
        return tuple([Signal.HOLD] * len(prices))

    close = as_series(prices)
    spread = rolling_mean(close, fast) - rolling_mean(close, slow)
    return signals_from_targets(np.sign(spread.to_numpy()))
