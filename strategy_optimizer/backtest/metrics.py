# strategy_optimizer/backtest/metrics.py
from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, Sequence, Tuple, Union

import numpy as np
from loguru import logger

from strategy_optimizer.backtest.engine import EquityCurve
from strategy_optimizer.backtest.execution import Trade

TRADING_DAYS = 252
_EPS = 1e-12

CurveLike = Union[EquityCurve, Sequence[float], np.ndarray]


# -------- Data classes --------
@dataclass(frozen=True)
class Metrics:
    # returns
    total_return: float
    annualized_return: float
    final_equity: float
    # risk
    volatility: float
    annualized_volatility: float
    sharpe_ratio: float
    annualized_sharpe: float
    sortino_ratio: float
    calmar_ratio: float
    kelly_percentage: float
    # drawdown
    max_drawdown: float
    average_drawdown: float
    max_drawdown_duration: int
    ulcer_index: float
    # trades
    total_trades: int
    winning_trades: int
    losing_trades: int
    win_rate: float
    profit_factor: float
    expectancy: float
    average_win: float
    average_loss: float
    largest_win: float
    largest_loss: float
    gross_profit: float
    gross_loss: float
    payoff_ratio: float
    # tail risk
    value_at_risk: float
    conditional_var: float
    # composite
    recovery_factor: float
    stirling_ratio: float
    burke_ratio: float
    consistency_score: float
    stability_score: float
    robustness_score: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def field_names(cls) -> Tuple[str, ...]:
        return tuple(cls.__dataclass_fields__)


# -------- Internals --------
def _as_array(curve: CurveLike) -> np.ndarray:
    if isinstance(curve, EquityCurve):
        return curve.values
    return np.asarray(curve, dtype=float).reshape(-1)


def _safe_div(num: float, den: float) -> float:
    return float(num / den) if den != 0 else 0.0


def bar_returns(curve: CurveLike) -> np.ndarray:
    """(e[i] - e[i-1]) / e[i-1]; a bar following a zero balance returns 0."""
    e = _as_array(curve)
    if e.size < 2:
        return np.zeros(0, dtype=float)
    prev = e[:-1]
    diff = np.diff(e)
    out = np.zeros_like(diff)
    np.divide(diff, prev, out=out, where=prev != 0)
    return out


def _drawdown_curve(e: np.ndarray) -> Tuple[np.ndarray, float, int]:
    if e.size == 0:
        return np.zeros(0, dtype=float), 0.0, 0
    peak = np.maximum.accumulate(e)
    dd = np.zeros_like(e)
    np.divide(peak - e, peak, out=dd, where=peak > 0)
    max_dd = float(dd.max())

    # Longest drawdown duration (consecutive bars under the running peak)
    max_run = run = 0
    for m in dd > 0:
        if m:
            run += 1
            if run > max_run:
                max_run = run
        else:
            run = 0
    return dd, max_dd, int(max_run)


# -------- Ratio helpers --------
def volatility(returns: np.ndarray) -> float:
    r = np.asarray(returns, dtype=float)
    return float(r.std(ddof=0)) if r.size else 0.0


def sharpe_ratio(returns: np.ndarray, risk_free_rate: float = 0.0) -> float:
    r = np.asarray(returns, dtype=float)
    if r.size == 0:
        return 0.0
    excess = r - risk_free_rate / TRADING_DAYS
    vol = volatility(excess)
    return float(excess.mean()) / vol if vol > _EPS else 0.0


def sortino_ratio(returns: np.ndarray, risk_free_rate: float = 0.0) -> float:
    r = np.asarray(returns, dtype=float)
    if r.size == 0:
        return 0.0
    excess = r - risk_free_rate / TRADING_DAYS
    downside = excess[excess < 0]
    if downside.size == 0:
        return 0.0
    dd = math.sqrt(float(np.mean(downside * downside)))
    return float(excess.mean()) / dd if dd > _EPS else 0.0


def max_drawdown(curve: CurveLike) -> float:
    return _drawdown_curve(_as_array(curve))[1]


def drawdown_series(curve: CurveLike) -> np.ndarray:
    """Per-bar (peak - equity) / peak, as positive fractions."""
    return _drawdown_curve(_as_array(curve))[0]


def value_at_risk(returns: np.ndarray, confidence: float = 0.95) -> float:
    """Return at position floor((1 - confidence) * n) of the ascending sort."""
    r = np.sort(np.asarray(returns, dtype=float))
    if r.size == 0:
        return 0.0
    # round() absorbs float noise such as (1 - 0.95) * 20 = 1.0000000000000009
    idx = int(math.floor(round((1.0 - confidence) * r.size, 9)))
    idx = min(max(idx, 0), r.size - 1)
    return float(r[idx])


def conditional_value_at_risk(returns: np.ndarray, confidence: float = 0.95) -> float:
    r = np.asarray(returns, dtype=float)
    if r.size == 0:
        return 0.0
    var = value_at_risk(r, confidence)
    tail = r[r <= var]
    return float(tail.mean()) if tail.size else 0.0


def profit_factor(gross_profit: float, gross_loss: float) -> float:
    """gross_profit / |gross_loss|; +inf with no losers but some winners."""
    loss = abs(gross_loss)
    if loss > 0:
        return gross_profit / loss
    return math.inf if gross_profit > 0 else 0.0


def kelly_percentage(win_rate: float, average_win: float, average_loss: float) -> float:
    average_loss = abs(average_loss)
    if average_loss == 0:
        return 0.0
    ratio = average_win / average_loss
    if ratio == 0:
        return 0.0
    return (win_rate * ratio - (1 - win_rate)) / ratio


def expectancy(win_rate: float, average_win: float, average_loss: float) -> float:
    return win_rate * average_win - (1 - win_rate) * abs(average_loss)


def _stability(e: np.ndarray) -> float:
    """R^2 of a straight line fitted through the equity curve."""
    if e.size < 2:
        return 0.0
    x = np.arange(e.size, dtype=float)
    ss_tot = float(np.sum((e - e.mean()) ** 2))
    if ss_tot <= _EPS:
        return 0.0
    slope, intercept = np.polyfit(x, e, 1)
    ss_res = float(np.sum((e - (slope * x + intercept)) ** 2))
    return max(0.0, 1.0 - ss_res / ss_tot)


def _consistency(returns: np.ndarray) -> float:
    active = returns[returns != 0]
    if active.size == 0:
        return 0.0
    return float(np.count_nonzero(active > 0)) / active.size


# -------- Public API --------
def compute_metrics(
    equity_curve: CurveLike,
    trades: Sequence[Trade],
    initial_capital: float,
    risk_free_rate: float = 0.02,
    *,
    var_confidence: float = 0.95,
) -> Metrics:
    """
    Compute return, risk, drawdown and trade statistics for one simulation.

    Pure function of its inputs. Every ratio falls back to 0 on a zero
    denominator; the one exception is profit factor, which is +inf when
    there are winners and no losers.
    """
    e = _as_array(equity_curve)
    rets = bar_returns(e)
    final = float(e[-1]) if e.size else float(initial_capital)

    total_ret = _safe_div(final - initial_capital, initial_capital)
    n_bars = max(int(e.size), 1)
    growth = 1.0 + total_ret
    if growth > 0:
        # capped exponent; short, explosive runs would overflow float pow
        ann_ret = math.expm1(min(math.log(growth) * TRADING_DAYS / n_bars, 700.0))
    else:
        ann_ret = -1.0

    vol = volatility(rets)
    sharpe = sharpe_ratio(rets, risk_free_rate)
    sortino = sortino_ratio(rets, risk_free_rate)

    dd, max_dd, max_dd_len = _drawdown_curve(e)
    under = dd[dd > 0]
    avg_dd = float(under.mean()) if under.size else 0.0
    ulcer = math.sqrt(float(np.mean(dd * dd))) if dd.size else 0.0
    dd_energy = math.sqrt(float(np.sum(dd * dd))) if dd.size else 0.0

    pnls = np.array([t.pnl for t in trades], dtype=float)
    wins = pnls[pnls > 0]
    losses = pnls[pnls < 0]
    n_trades = int(pnls.size)
    win_rate = len(wins) / n_trades if n_trades else 0.0
    avg_win = float(wins.mean()) if wins.size else 0.0
    avg_loss = float(losses.mean()) if losses.size else 0.0
    gross_profit = float(wins.sum()) if wins.size else 0.0
    gross_loss = float(losses.sum()) if losses.size else 0.0
    largest_win = float(wins.max()) if wins.size else 0.0
    largest_loss = float(losses.min()) if losses.size else 0.0
    robustness = (
        1.0 - largest_win / gross_profit
        if n_trades >= 2 and gross_profit > 0
        else 0.0
    )

    metrics = Metrics(
        total_return=total_ret,
        annualized_return=ann_ret,
        final_equity=final,
        volatility=vol,
        annualized_volatility=vol * math.sqrt(TRADING_DAYS),
        sharpe_ratio=sharpe,
        annualized_sharpe=sharpe * math.sqrt(TRADING_DAYS),
        sortino_ratio=sortino,
        calmar_ratio=_safe_div(total_ret, max_dd),
        kelly_percentage=kelly_percentage(win_rate, avg_win, avg_loss),
        max_drawdown=max_dd,
        average_drawdown=avg_dd,
        max_drawdown_duration=max_dd_len,
        ulcer_index=ulcer,
        total_trades=n_trades,
        winning_trades=int(wins.size),
        losing_trades=int(losses.size),
        win_rate=win_rate,
        profit_factor=profit_factor(gross_profit, gross_loss),
        expectancy=expectancy(win_rate, avg_win, avg_loss),
        average_win=avg_win,
        average_loss=avg_loss,
        largest_win=largest_win,
        largest_loss=largest_loss,
        gross_profit=gross_profit,
        gross_loss=gross_loss,
        payoff_ratio=_safe_div(avg_win, abs(avg_loss)),
        value_at_risk=value_at_risk(rets, var_confidence),
        conditional_var=conditional_value_at_risk(rets, var_confidence),
        recovery_factor=_safe_div(total_ret, max_dd),
        stirling_ratio=_safe_div(ann_ret, avg_dd),
        burke_ratio=_safe_div(ann_ret, dd_energy),
        consistency_score=_consistency(rets),
        stability_score=_stability(e),
        robustness_score=robustness,
    )

    logger.debug(
        "[metrics] n={} tot={:.4f} vol={:.5f} sharpe={:.3f} sortino={:.3f} maxDD={:.4f} trades={} wr={:.2f}",
        e.size,
        total_ret,
        vol,
        sharpe,
        sortino,
        max_dd,
        n_trades,
        win_rate,
    )
    return metrics


class MetricsEngine:
    """Binds the risk-free rate and VaR confidence for repeated use."""

    def __init__(self, risk_free_rate: float = 0.02, var_confidence: float = 0.95):
        self.risk_free_rate = float(risk_free_rate)
        self.var_confidence = float(var_confidence)

    def compute(
        self,
        equity_curve: CurveLike,
        trades: Sequence[Trade],
        initial_capital: float,
    ) -> Metrics:
        return compute_metrics(
            equity_curve,
            trades,
            initial_capital,
            self.risk_free_rate,
            var_confidence=self.var_confidence,
        )


__all__ = [
    "Metrics",
    "MetricsEngine",
    "TRADING_DAYS",
    "bar_returns",
    "compute_metrics",
    "conditional_value_at_risk",
    "drawdown_series",
    "expectancy",
    "kelly_percentage",
    "max_drawdown",
    "profit_factor",
    "sharpe_ratio",
    "sortino_ratio",
    "value_at_risk",
    "volatility",
]
