from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Tuple

import numpy as np

from strategy_optimizer.core.exceptions import MalformedInputError

ParameterVector = Dict[str, float]

_KINDS = ("float", "int")


@dataclass(frozen=True)
class ParamSpec:
    """
    One tunable parameter.

    name:    unique key handed to the trading rule
    min/max: inclusive bounds
    default: starting value, must sit inside the bounds
    kind:    "float" | "int" (window lengths and other counts)
    """

    name: str
    min: float
    max: float
    default: float
    kind: str = "float"

    def __post_init__(self) -> None:
        if not self.name or not isinstance(self.name, str):
            raise MalformedInputError(f"Parameter name must be a string: {self.name!r}")
        if self.kind not in _KINDS:
            raise MalformedInputError(
                f"{self.name}: kind must be one of {_KINDS}, got {self.kind!r}"
            )
        lo, hi, dv = float(self.min), float(self.max), float(self.default)
        if not all(math.isfinite(v) for v in (lo, hi, dv)):
            raise MalformedInputError(f"{self.name}: bounds/default must be finite")
        if lo > hi:
            raise MalformedInputError(f"{self.name}: min {lo} > max {hi}")
        if not (lo <= dv <= hi):
            raise MalformedInputError(
                f"{self.name}: default {dv} outside [{lo}, {hi}]"
            )
        if self.kind == "int" and math.ceil(lo) > math.floor(hi):
            raise MalformedInputError(f"{self.name}: no integer inside [{lo}, {hi}]")

    @property
    def span(self) -> float:
        return float(self.max) - float(self.min)

    @property
    def is_int(self) -> bool:
        return self.kind == "int"

    def clamp(self, value: float) -> float:
        v = min(max(float(value), float(self.min)), float(self.max))
        if self.is_int:
            v = min(max(int(round(v)), math.ceil(self.min)), math.floor(self.max))
        return v

    def sample(self, rng: np.random.Generator) -> float:
        if self.is_int:
            return int(rng.integers(math.ceil(self.min), math.floor(self.max) + 1))
        return float(rng.uniform(float(self.min), float(self.max)))


class ParameterSchema:
    """Ordered mapping of parameter name to bounded range plus default."""

    def __init__(self, specs: Iterable[ParamSpec]) -> None:
        self._specs: Dict[str, ParamSpec] = {}
        for spec in specs:
            if spec.name in self._specs:
                raise MalformedInputError(f"Duplicate parameter {spec.name!r}")
            self._specs[spec.name] = spec
        if not self._specs:
            raise MalformedInputError("ParameterSchema needs at least one parameter")

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Mapping[str, Any]]) -> "ParameterSchema":
        """Build from `{name: {min, max, default?, kind?}}` (YAML/JSON shape)."""
        specs: List[ParamSpec] = []
        for name, raw in mapping.items():
            if not isinstance(raw, Mapping):
                raise MalformedInputError(f"{name}: expected a mapping, got {raw!r}")
            try:
                lo, hi = raw["min"], raw["max"]
            except KeyError as exc:
                raise MalformedInputError(f"{name}: missing {exc.args[0]!r}") from None
            kind = str(raw.get("kind", "float"))
            default = raw.get("default")
            if default is None:
                default = (float(lo) + float(hi)) / 2.0
                if kind == "int":
                    default = min(
                        max(math.floor(default), math.ceil(float(lo))),
                        math.floor(float(hi)),
                    )
            specs.append(ParamSpec(str(name), lo, hi, default, kind))
        return cls(specs)

    def __iter__(self) -> Iterator[ParamSpec]:
        return iter(self._specs.values())

    def __len__(self) -> int:
        return len(self._specs)

    def __getitem__(self, name: str) -> ParamSpec:
        return self._specs[name]

    def __contains__(self, name: object) -> bool:
        return name in self._specs

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(self._specs)

    def defaults(self) -> ParameterVector:
        return {s.name: s.clamp(s.default) for s in self}

    def sample(self, rng: np.random.Generator) -> ParameterVector:
        """Draw every coordinate independently and uniformly from its range."""
        return {s.name: s.sample(rng) for s in self}

    def clamp(self, vector: Mapping[str, float]) -> ParameterVector:
        return {s.name: s.clamp(vector[s.name]) for s in self}

    def validate(self, vector: Mapping[str, float]) -> ParameterVector:
        """Exactly the schema's keys, each finite and inside its bounds."""
        keys = set(vector)
        expected = set(self._specs)
        if keys != expected:
            missing = sorted(expected - keys)
            extra = sorted(keys - expected)
            raise MalformedInputError(
                f"Parameter vector keys mismatch (missing={missing}, extra={extra})"
            )
        out: ParameterVector = {}
        for spec in self:
            value = vector[spec.name]
            try:
                fv = float(value)
            except (TypeError, ValueError):
                raise MalformedInputError(
                    f"{spec.name}: non-numeric value {value!r}"
                ) from None
            if not math.isfinite(fv) or not (float(spec.min) <= fv <= float(spec.max)):
                raise MalformedInputError(
                    f"{spec.name}: {fv} outside [{spec.min}, {spec.max}]"
                )
            out[spec.name] = int(round(fv)) if spec.is_int else fv
        return out

    # -------- array views (swarm search) --------
    def lower(self) -> np.ndarray:
        return np.array([float(s.min) for s in self], dtype=float)

    def upper(self) -> np.ndarray:
        return np.array([float(s.max) for s in self], dtype=float)

    def to_array(self, vector: Mapping[str, float]) -> np.ndarray:
        return np.array([float(vector[name]) for name in self.names], dtype=float)

    def from_array(self, values: np.ndarray) -> ParameterVector:
        return {s.name: s.clamp(v) for s, v in zip(self, values)}

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        return {
            s.name: {"min": s.min, "max": s.max, "default": s.default, "kind": s.kind}
            for s in self
        }

    def __repr__(self) -> str:
        return f"ParameterSchema({', '.join(self.names)})"


__all__ = ["ParamSpec", "ParameterSchema", "ParameterVector"]
