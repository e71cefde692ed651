from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from loguru import logger

from strategy_optimizer.backtest.execution import (
    Costs,
    ExecutionModel,
    Position,
    Trade,
)
from strategy_optimizer.backtest.series import PriceSeries, Signal, validate_signals
from strategy_optimizer.core.exceptions import ConfigError


@dataclass(frozen=True)
class EngineConfig:
    """
    Account and friction assumptions shared by every simulation in a run.

    Attributes:
        initial_capital (float): Starting account value.
        commission_rate (float): Fraction of notional charged per fill.
        slippage_rate (float): Fractional adverse price move per fill.
        risk_free_rate (float): Annual rate used for Sharpe/Sortino.
        close_open_position (bool): Close a still-open position on the last bar.
    """

    initial_capital: float = 100_000.0
    commission_rate: float = 0.001
    slippage_rate: float = 0.0005
    risk_free_rate: float = 0.02
    close_open_position: bool = False

    def __post_init__(self) -> None:
        cap = float(self.initial_capital)
        if not math.isfinite(cap) or cap < 0:
            raise ConfigError(f"initial_capital must be >= 0, got {cap!r}")
        if not math.isfinite(float(self.risk_free_rate)):
            raise ConfigError("risk_free_rate must be finite")
        self.costs()

    def costs(self) -> Costs:
        return Costs(
            commission_rate=self.commission_rate, slippage_rate=self.slippage_rate
        )


@dataclass(frozen=True, eq=False)
class EquityCurve:
    """Account value per bar (realized + unrealized), starting at initial capital."""

    values: np.ndarray
    index: Optional[Tuple[Any, ...]] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        arr = np.array(self.values, dtype=float).reshape(-1)
        arr.setflags(write=False)
        object.__setattr__(self, "values", arr)

    def __len__(self) -> int:
        return int(self.values.size)

    def __getitem__(self, i: int) -> float:
        return float(self.values[i])

    @property
    def final(self) -> float:
        return float(self.values[-1])

    def to_records(self) -> List[Dict[str, float]]:
        return [{"day": i, "equity": float(v)} for i, v in enumerate(self.values)]

    def to_frame(self) -> pd.DataFrame:
        idx = pd.Index(self.index, name="date") if self.index is not None else None
        frame = pd.DataFrame({"equity": self.values}, index=idx)
        if idx is None:
            frame.index.name = "day"
        return frame


class BacktestResult(NamedTuple):
    equity_curve: EquityCurve
    trades: Tuple[Trade, ...]
    final_capital: float


def run_backtest(
    prices: PriceSeries,
    signals: Sequence[Signal],
    initial_capital: float = 100_000.0,
    commission_rate: float = 0.001,
    slippage_rate: float = 0.0005,
    *,
    close_open_position: bool = False,
) -> BacktestResult:
    """
    Replay one signal per bar through the execution model.

    Two states: flat, or in a position. Entries only fire from flat, exits
    only from the matching direction; anything else is ignored. Each bar
    appends `capital` (flat) or `capital + unrealized` (in a position) after
    that bar's signal has been applied. A position still open on the last
    bar stays open unless `close_open_position` is set.

    Pure function of its arguments; safe to call from several threads.
    """
    series = validate_signals(prices, signals)
    config = EngineConfig(
        initial_capital=initial_capital,
        commission_rate=commission_rate,
        slippage_rate=slippage_rate,
        close_open_position=close_open_position,
    )
    model = ExecutionModel(config.costs())

    n = len(prices)
    px = prices.prices
    capital = float(config.initial_capital)
    position: Optional[Position] = None
    trades: List[Trade] = []
    values = np.empty(n, dtype=float)
    values[0] = capital

    for i in range(1, n):
        price = float(px[i])
        order = model.fill(series[i], price, i, capital, position)
        if order is not None:
            capital += order.capital_delta
            if order.trade is not None:
                trades.append(order.trade)
                position = None
            else:
                position = order.position

        if position is not None and close_open_position and i == n - 1:
            closing = model.close(price, i, position)
            capital += closing.capital_delta
            trades.append(closing.trade)
            position = None

        values[i] = capital + (position.unrealized(price) if position else 0.0)

    curve = EquityCurve(values, index=prices.index)
    logger.debug(
        "[engine] bars={} trades={} open={} final={:.2f}",
        n,
        len(trades),
        position is not None,
        curve.final,
    )
    return BacktestResult(curve, tuple(trades), curve.final)


class TradeSimulator:
    """Binds an EngineConfig so callers can replay many signal series."""

    def __init__(self, config: EngineConfig | None = None) -> None:
        self.config = config or EngineConfig()

    def run(self, prices: PriceSeries, signals: Sequence[Signal]) -> BacktestResult:
        cfg = self.config
        return run_backtest(
            prices,
            signals,
            cfg.initial_capital,
            cfg.commission_rate,
            cfg.slippage_rate,
            close_open_position=cfg.close_open_position,
        )


__all__ = [
    "BacktestResult",
    "EngineConfig",
    "EquityCurve",
    "TradeSimulator",
    "run_backtest",
]
