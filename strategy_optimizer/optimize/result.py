from __future__ import annotations

import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, Field

from strategy_optimizer.backtest.engine import EquityCurve
from strategy_optimizer.backtest.execution import Trade
from strategy_optimizer.backtest.metrics import Metrics
from strategy_optimizer.optimize.fitness import Evaluation

Number = Union[int, float]


@dataclass(frozen=True)
class ConvergencePoint:
    """
    One row of convergence history.

    `fitness` is always the best-so-far score and never decreases. The
    optional columns are filled in by the algorithms that track them.
    """

    iteration: int
    fitness: float
    mean_fitness: Optional[float] = None
    current_fitness: Optional[float] = None
    temperature: Optional[float] = None
    diversity: Optional[float] = None


# -------- Wire models --------
class ConvergencePointModel(BaseModel):
    iteration: int
    fitness: float
    mean_fitness: Optional[float] = None
    current_fitness: Optional[float] = None
    temperature: Optional[float] = None
    diversity: Optional[float] = None


class EquityPointModel(BaseModel):
    day: int
    equity: float


class TradeModel(BaseModel):
    entry_index: int
    exit_index: int
    entry_price: float
    exit_price: float
    quantity: int
    direction: str
    pnl: float
    return_pct: float
    commission_paid: float


class OptimizationResultModel(BaseModel):
    algorithm: str
    best_parameters: Dict[str, Number]
    best_fitness: float
    metrics: Dict[str, Union[Number, str]] = Field(
        description="Named statistics; infinities are rendered as 'inf'/'-inf'."
    )
    equity_curve: List[EquityPointModel]
    convergence_history: List[ConvergencePointModel]
    trades: List[TradeModel] = Field(default_factory=list)
    evaluations: int = 0
    elapsed_ms: float = 0.0
    seed: Optional[int] = None


def _json_number(value: Any) -> Union[Number, str]:
    if isinstance(value, float) and math.isinf(value):
        return "inf" if value > 0 else "-inf"
    if isinstance(value, float) and math.isnan(value):
        return "nan"
    return value


@dataclass(frozen=True)
class OptimizationResult:
    """Outcome of one optimization run; created once and never mutated."""

    algorithm: str
    best_parameters: Mapping[str, Number]
    best_fitness: float
    metrics: Metrics
    equity_curve: EquityCurve
    convergence_history: Tuple[ConvergencePoint, ...]
    trades: Tuple[Trade, ...] = field(default_factory=tuple)
    evaluations: int = 0
    elapsed_ms: float = 0.0
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "best_parameters", MappingProxyType(dict(self.best_parameters))
        )
        object.__setattr__(
            self, "convergence_history", tuple(self.convergence_history)
        )
        object.__setattr__(self, "trades", tuple(self.trades))

    @classmethod
    def from_evaluation(
        cls,
        algorithm: str,
        evaluation: Evaluation,
        history: Sequence[ConvergencePoint],
        *,
        evaluations: int = 0,
        elapsed_ms: float = 0.0,
        seed: Optional[int] = None,
    ) -> "OptimizationResult":
        return cls(
            algorithm=algorithm,
            best_parameters=evaluation.parameters,
            best_fitness=evaluation.fitness,
            metrics=evaluation.metrics,
            equity_curve=evaluation.equity_curve,
            convergence_history=tuple(history),
            trades=evaluation.trades,
            evaluations=evaluations,
            elapsed_ms=elapsed_ms,
            seed=seed,
        )

    @property
    def fitness_trace(self) -> List[float]:
        return [p.fitness for p in self.convergence_history]

    def to_model(self) -> OptimizationResultModel:
        return OptimizationResultModel(
            algorithm=self.algorithm,
            best_parameters=dict(self.best_parameters),
            best_fitness=self.best_fitness,
            metrics={k: _json_number(v) for k, v in self.metrics.to_dict().items()},
            equity_curve=[EquityPointModel(**r) for r in self.equity_curve.to_records()],
            convergence_history=[
                ConvergencePointModel(**p.__dict__) for p in self.convergence_history
            ],
            trades=[
                TradeModel(
                    entry_index=t.entry_index,
                    exit_index=t.exit_index,
                    entry_price=t.entry_price,
                    exit_price=t.exit_price,
                    quantity=t.quantity,
                    direction=t.direction.value,
                    pnl=t.pnl,
                    return_pct=t.return_pct,
                    commission_paid=t.commission_paid,
                )
                for t in self.trades
            ],
            evaluations=self.evaluations,
            elapsed_ms=self.elapsed_ms,
            seed=self.seed,
        )

    def to_dict(self) -> Dict[str, Any]:
        return self.to_model().model_dump()

    def to_json(self, indent: int | None = 2) -> str:
        return self.to_model().model_dump_json(indent=indent)


__all__ = [
    "ConvergencePoint",
    "ConvergencePointModel",
    "OptimizationResult",
    "OptimizationResultModel",
]
