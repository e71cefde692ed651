from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from strategy_optimizer.backtest.series import Signal
from strategy_optimizer.core.exceptions import ConfigError


class Direction(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"
    FLAT = "FLAT"


@dataclass(frozen=True)
class Costs:
    """
    Per-fill cost assumptions.

    Attributes:
        commission_rate (float): Fraction of notional charged on every fill.
        slippage_rate (float): Fractional price penalty applied against the trader.
    """

    commission_rate: float = 0.001
    slippage_rate: float = 0.0005

    def __post_init__(self) -> None:
        for name in ("commission_rate", "slippage_rate"):
            value = float(getattr(self, name))
            if not math.isfinite(value) or not (0.0 <= value < 1.0):
                raise ConfigError(f"{name} must be in [0, 1), got {value!r}")


@dataclass(frozen=True)
class Position:
    direction: Direction
    quantity: int
    entry_price: float
    entry_index: int
    entry_commission: float

    def unrealized(self, price: float) -> float:
        if self.direction is Direction.LONG:
            return self.quantity * (price - self.entry_price)
        return self.quantity * (self.entry_price - price)


@dataclass(frozen=True)
class Trade:
    """Closed round trip. Never mutated after the exit fill creates it."""

    entry_index: int
    exit_index: int
    entry_price: float
    exit_price: float
    quantity: int
    direction: Direction
    pnl: float
    return_pct: float
    commission_paid: float

    @property
    def holding_period(self) -> int:
        return self.exit_index - self.entry_index


@dataclass(frozen=True)
class FilledOrder:
    """
    Outcome of a signal that passed the state gate.

    `capital_delta` is the change to realized account value: minus the entry
    commission on entries, the trade P&L on exits. Exactly one of `position`
    (entries) and `trade` (exits) is set.
    """

    signal: Signal
    index: int
    fill_price: float
    quantity: int
    commission: float
    capital_delta: float
    position: Optional[Position] = None
    trade: Optional[Trade] = None


class ExecutionModel:
    """Turns signal transitions into fills with commission and slippage."""

    def __init__(self, costs: Costs | None = None) -> None:
        self.costs = costs or Costs()

    def fill(
        self,
        signal: Signal,
        price: float,
        index: int,
        capital: float,
        position: Optional[Position],
    ) -> Optional[FilledOrder]:
        """
        Returns None when the signal does not match the current state
        (enter while in a position, exit while flat or in the other
        direction) or when capital cannot buy a single unit.
        """
        if signal.is_entry:
            if position is not None:
                return None
            return self._enter(signal, price, index, capital)
        if signal.is_exit and position is not None:
            wanted = Direction.LONG if signal is Signal.EXIT_LONG else Direction.SHORT
            if position.direction is wanted:
                return self._exit(signal, price, index, position)
        return None

    def close(self, price: float, index: int, position: Position) -> FilledOrder:
        """Force an exit through the regular exit path."""
        signal = (
            Signal.EXIT_LONG
            if position.direction is Direction.LONG
            else Signal.EXIT_SHORT
        )
        return self._exit(signal, price, index, position)

    def _enter(
        self, signal: Signal, price: float, index: int, capital: float
    ) -> Optional[FilledOrder]:
        slip = self.costs.slippage_rate
        if signal is Signal.ENTER_LONG:
            direction = Direction.LONG
            fill_px = price * (1 + slip)
        else:
            direction = Direction.SHORT
            fill_px = price * (1 - slip)
        commission = capital * self.costs.commission_rate
        quantity = math.floor((capital - commission) / fill_px) if fill_px > 0 else 0
        if quantity <= 0:
            return None
        position = Position(
            direction=direction,
            quantity=int(quantity),
            entry_price=fill_px,
            entry_index=index,
            entry_commission=commission,
        )
        return FilledOrder(
            signal=signal,
            index=index,
            fill_price=fill_px,
            quantity=int(quantity),
            commission=commission,
            capital_delta=-commission,
            position=position,
        )

    def _exit(
        self, signal: Signal, price: float, index: int, position: Position
    ) -> FilledOrder:
        slip = self.costs.slippage_rate
        qty = position.quantity
        basis = qty * position.entry_price
        if position.direction is Direction.LONG:
            fill_px = price * (1 - slip)
            commission = qty * fill_px * self.costs.commission_rate
            proceeds = qty * fill_px - commission
            pnl = proceeds - basis
        else:
            fill_px = price * (1 + slip)
            commission = qty * fill_px * self.costs.commission_rate
            cost = qty * fill_px + commission
            pnl = basis - cost
        trade = Trade(
            entry_index=position.entry_index,
            exit_index=index,
            entry_price=position.entry_price,
            exit_price=fill_px,
            quantity=qty,
            direction=position.direction,
            pnl=pnl,
            return_pct=pnl / basis if basis else 0.0,
            commission_paid=position.entry_commission + commission,
        )
        return FilledOrder(
            signal=signal,
            index=index,
            fill_price=fill_px,
            quantity=qty,
            commission=commission,
            capital_delta=pnl,
            trade=trade,
        )


__all__ = [
    "Costs",
    "Direction",
    "ExecutionModel",
    "FilledOrder",
    "Position",
    "Trade",
]
