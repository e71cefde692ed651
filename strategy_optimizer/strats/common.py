from __future__ import annotations

from typing import Any, Mapping

import numpy as np
import pandas as pd

from strategy_optimizer.backtest.series import PriceSeries, Signal, SignalSeries

_ENTER = {1: Signal.ENTER_LONG, -1: Signal.ENTER_SHORT}
_EXIT = {1: Signal.EXIT_LONG, -1: Signal.EXIT_SHORT}


# -------- Param helpers --------
def get_param(p: Any, key: str, default: Any) -> Any:
    """Read a parameter from a mapping or an attribute holder; fallback to default."""
    if isinstance(p, Mapping):
        return p.get(key, default)
    return getattr(p, key, default)


# -------- Series helpers --------
def as_series(prices: PriceSeries) -> pd.Series:
    """Positional float Series (0..n-1) for rolling computations."""
    return pd.Series(prices.prices, dtype=float)


def rolling_mean(series: pd.Series, n: int) -> pd.Series:
    return series.rolling(n, min_periods=n).mean()


def rolling_zscore(series: pd.Series, n: int) -> pd.Series:
    mean = series.rolling(n, min_periods=n).mean()
    std = series.rolling(n, min_periods=n).std(ddof=0).replace(0.0, np.nan)
    return (series - mean) / std


# -------- Signal helpers --------
def signals_from_targets(targets: np.ndarray) -> SignalSeries:
    """
    Turn desired exposure per bar (+1 long, -1 short, 0 flat) into signals.

    At most one transition per bar: a reversal exits first and enters on the
    next bar if the target still holds. Bar 0 is always HOLD.
    """
    t = np.nan_to_num(np.asarray(targets, dtype=float), nan=0.0)
    out = [Signal.HOLD] * len(t)
    holding = 0
    for i in range(1, len(t)):
        want = int(np.sign(t[i]))
        if want == holding:
            continue
        if holding != 0:
            out[i] = _EXIT[holding]
            holding = 0
        else:
            out[i] = _ENTER[want]
            holding = want
    return tuple(out)
