from __future__ import annotations

from typing import Any

import numpy as np

from strategy_optimizer.backtest.series import PriceSeries, SignalSeries
from strategy_optimizer.optimize.schema import ParameterSchema, ParamSpec
from strategy_optimizer.strats.common import (
    as_series,
    get_param,
    rolling_zscore,
    signals_from_targets,
)

SCHEMA = ParameterSchema(
    [
        ParamSpec("lookback", 10, 100, 20, kind="int"),
        ParamSpec("z_entry", 0.5, 3.0, 2.0),
        ParamSpec("z_exit", 0.0, 1.5, 0.5),
    ]
)


def generate_signals(prices: PriceSeries, p: Any) -> SignalSeries:
    """
    Fade stretched z-scores: long below -z_entry, short above +z_entry,
    flatten once the z-score is back inside +/-z_exit.
    """
    lookback = int(get_param(p, "lookback", 20))
    z_entry = float(get_param(p, "z_entry", 2.0))
    z_exit = float(get_param(p, "z_exit", 0.5))

    z = rolling_zscore(as_series(prices), lookback).to_numpy()
    targets = np.zeros(z.size, dtype=float)
    holding = 0
    for i, zi in enumerate(z):
        if np.isnan(zi):
            targets[i] = holding
            continue
        if holding == 0:
            if zi <= -z_entry:
                holding = 1
            elif zi >= z_entry:
                holding = -1
        elif holding == 1 and zi >= -z_exit:
            holding = 0
        elif holding == -1 and zi <= z_exit:
            holding = 0
        targets[i] = holding
    return signals_from_targets(targets)
