from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from strategy_optimizer.backtest.series import (
    PriceSeries,
    Signal,
    to_signal_series,
    validate_signals,
)
from strategy_optimizer.core.exceptions import MalformedInputError


def test_price_series_is_read_only():
    ps = PriceSeries([100.0, 101.0, 102.5])
    assert len(ps) == 3
    assert ps[2] == pytest.approx(102.5)
    with pytest.raises(ValueError):
        ps.prices[0] = 1.0


@pytest.mark.parametrize(
    "values",
    [[100.0], [], [100.0, float("nan")], [100.0, 0.0], [100.0, -5.0]],
)
def test_price_series_rejects_malformed(values):
    with pytest.raises(MalformedInputError):
        PriceSeries(values)


def test_from_frame_sorts_and_keeps_labels():
    idx = pd.to_datetime(["2024-01-03", "2024-01-01", "2024-01-02"])
    df = pd.DataFrame({"Close": [3.0, 1.0, 2.0]}, index=idx)
    ps = PriceSeries.from_frame(df, symbol="ABC")
    assert list(ps.prices) == [1.0, 2.0, 3.0]
    assert ps.index[0] == pd.Timestamp("2024-01-01")
    assert ps.symbol == "ABC"


def test_from_frame_missing_column():
    df = pd.DataFrame({"open": [1.0, 2.0]})
    with pytest.raises(MalformedInputError):
        PriceSeries.from_frame(df, column="close")


def test_slice_keeps_metadata():
    ps = PriceSeries(np.arange(1.0, 11.0), symbol="X", timeframe="1Day")
    part = ps.slice(2, 5)
    assert list(part.prices) == [3.0, 4.0, 5.0]
    assert part.symbol == "X"
    assert part.timeframe == "1Day"


def test_signal_parse_aliases():
    assert to_signal_series(["hold", "BUY", "sell", "short", "cover", None, ""]) == (
        Signal.HOLD,
        Signal.ENTER_LONG,
        Signal.EXIT_LONG,
        Signal.ENTER_SHORT,
        Signal.EXIT_SHORT,
        Signal.HOLD,
        Signal.HOLD,
    )
    assert Signal.parse("enter-long") is Signal.ENTER_LONG
    with pytest.raises(MalformedInputError):
        Signal.parse("moon")


def test_validate_signals_checks_length_and_first_bar():
    ps = PriceSeries([1.0, 2.0, 3.0])
    with pytest.raises(MalformedInputError):
        validate_signals(ps, [Signal.HOLD, Signal.HOLD])
    with pytest.raises(MalformedInputError):
        validate_signals(ps, [Signal.ENTER_LONG, Signal.HOLD, Signal.HOLD])
    assert validate_signals(ps, ["HOLD", "BUY", "SELL"])[1] is Signal.ENTER_LONG
