from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from strategy_optimizer.core.exceptions import MalformedInputError


class Signal(str, Enum):
    """Trading action prescribed for a single bar."""

    HOLD = "HOLD"
    ENTER_LONG = "ENTER_LONG"
    EXIT_LONG = "EXIT_LONG"
    ENTER_SHORT = "ENTER_SHORT"
    EXIT_SHORT = "EXIT_SHORT"

    @classmethod
    def parse(cls, value: Any) -> "Signal":
        """Accept enum members, names, and the BUY/SELL/SHORT/COVER aliases."""
        if isinstance(value, Signal):
            return value
        if value is None:
            return cls.HOLD
        token = str(value).strip().upper().replace("-", "_").replace(" ", "_")
        if token in _ALIASES:
            return _ALIASES[token]
        try:
            return cls(token)
        except ValueError:
            raise MalformedInputError(f"Unknown signal {value!r}") from None

    @property
    def is_entry(self) -> bool:
        return self in (Signal.ENTER_LONG, Signal.ENTER_SHORT)

    @property
    def is_exit(self) -> bool:
        return self in (Signal.EXIT_LONG, Signal.EXIT_SHORT)


_ALIASES = {
    "": Signal.HOLD,
    "BUY": Signal.ENTER_LONG,
    "SELL": Signal.EXIT_LONG,
    "SHORT": Signal.ENTER_SHORT,
    "COVER": Signal.EXIT_SHORT,
}

SignalSeries = Tuple[Signal, ...]


def to_signal_series(values: Iterable[Any]) -> SignalSeries:
    return tuple(Signal.parse(v) for v in values)


@dataclass(frozen=True, eq=False)
class PriceSeries:
    """
    Ordered, read-only sequence of bar prices.

    Attributes:
        prices (np.ndarray): Float prices, one per bar (made read-only).
        symbol (str | None): Optional instrument tag.
        timeframe (str | None): Optional bar size tag, e.g. "1Day".
        index (tuple | None): Optional bar labels (timestamps) for display.
    """

    prices: np.ndarray
    symbol: Optional[str] = None
    timeframe: Optional[str] = None
    index: Optional[Tuple[Any, ...]] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        arr = np.array(self.prices, dtype=float).reshape(-1)
        if arr.size < 2:
            raise MalformedInputError(
                f"PriceSeries needs at least 2 bars, got {arr.size}"
            )
        if not np.all(np.isfinite(arr)):
            raise MalformedInputError("PriceSeries contains NaN/inf prices")
        if np.any(arr <= 0):
            raise MalformedInputError("PriceSeries prices must be positive")
        arr.setflags(write=False)
        object.__setattr__(self, "prices", arr)
        if self.index is not None:
            labels = tuple(self.index)
            if len(labels) != arr.size:
                raise MalformedInputError(
                    f"index length {len(labels)} != price length {arr.size}"
                )
            object.__setattr__(self, "index", labels)

    def __len__(self) -> int:
        return int(self.prices.size)

    def __getitem__(self, i: int) -> float:
        return float(self.prices[i])

    def slice(self, start: int, stop: int) -> "PriceSeries":
        labels = self.index[start:stop] if self.index is not None else None
        return PriceSeries(
            self.prices[start:stop],
            symbol=self.symbol,
            timeframe=self.timeframe,
            index=labels,
        )

    def to_series(self) -> pd.Series:
        idx = pd.Index(self.index) if self.index is not None else None
        return pd.Series(self.prices, index=idx, name=self.symbol or "price")

    @classmethod
    def from_frame(
        cls,
        df: pd.DataFrame,
        column: str = "close",
        *,
        symbol: Optional[str] = None,
        timeframe: Optional[str] = None,
    ) -> "PriceSeries":
        """Build a series from one column of an OHLC frame (sorted by index)."""
        if df is None or df.empty:
            raise MalformedInputError("Empty price frame")
        cols = {str(c).strip().lower(): c for c in df.columns}
        key = cols.get(column.lower())
        if key is None:
            raise MalformedInputError(
                f"Column {column!r} not found. Available: {list(df.columns)[:12]}"
            )
        ser = df.sort_index()[key].astype(float)
        return cls(
            ser.to_numpy(),
            symbol=symbol,
            timeframe=timeframe,
            index=tuple(ser.index),
        )


def validate_signals(prices: PriceSeries, signals: Sequence[Signal]) -> SignalSeries:
    """Fail fast on length mismatch or a non-Hold first bar."""
    if len(signals) != len(prices):
        raise MalformedInputError(
            f"Signal length {len(signals)} != price length {len(prices)}"
        )
    series = to_signal_series(signals)
    if series[0] is not Signal.HOLD:
        raise MalformedInputError(
            f"First signal must be HOLD (got {series[0].value}); "
            "no position can open before the first observed price"
        )
    return series


__all__ = [
    "Signal",
    "SignalSeries",
    "PriceSeries",
    "to_signal_series",
    "validate_signals",
]
