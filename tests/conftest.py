from __future__ import annotations

import os
from pathlib import Path

import numpy as np
import pytest

from strategy_optimizer.backtest.engine import EngineConfig
from strategy_optimizer.backtest.series import PriceSeries, Signal
from strategy_optimizer.logging_utils import setup_test_logging
from strategy_optimizer.optimize.fitness import FitnessFunction
from strategy_optimizer.optimize.schema import ParameterSchema, ParamSpec

os.environ.setdefault("ENV", "test")

HOLD_SCHEMA = ParameterSchema([ParamSpec("hold", 1, 20, 5, kind="int")])


def hold_for(prices: PriceSeries, p) -> tuple:
    """Buy on bar 1 and sell `hold` bars later (or keep it open past the end)."""
    n = len(prices)
    out = [Signal.HOLD] * n
    out[1] = Signal.ENTER_LONG
    exit_at = 1 + int(p["hold"])
    if exit_at < n:
        out[exit_at] = Signal.EXIT_LONG
    return tuple(out)


@pytest.fixture(scope="session", autouse=True)
def configure_logging():
    setup_test_logging(Path("test-logs/"))
    yield


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(42)


@pytest.fixture(scope="session")
def trending_prices() -> PriceSeries:
    """300 bars of a noisy random walk with an up-then-down drift."""
    gen = np.random.default_rng(seed=42)
    drift = np.r_[np.full(150, 0.001), np.full(150, -0.0005)]
    ret = drift + gen.normal(0.0, 0.01, 300)
    close = 100.0 * np.cumprod(1 + ret)
    return PriceSeries(close, symbol="TOY", timeframe="1Day")


@pytest.fixture(scope="session")
def rising_prices() -> PriceSeries:
    return PriceSeries(np.linspace(100.0, 140.0, 41), symbol="UP")


@pytest.fixture
def frictionless() -> EngineConfig:
    return EngineConfig(initial_capital=1_000.0, commission_rate=0.0, slippage_rate=0.0)


@pytest.fixture
def hold_fitness(rising_prices, frictionless) -> FitnessFunction:
    return FitnessFunction(rising_prices, hold_for, HOLD_SCHEMA, engine=frictionless)


@pytest.fixture
def hold_rule():
    return hold_for, HOLD_SCHEMA
