from __future__ import annotations

import numpy as np
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Sequence

from .curves import INTERPOLATORS, InterpolatedCurve
from .errors import ConfigurationError, DimensionError


class CurveTemplate(ABC):
    """
    Generates a curve from a flat parameter vector.

    Implementations are immutable and side-effect free: generating twice from
    the same parameters gives equal curves.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @property
    @abstractmethod
    def parameter_count(self) -> int:
        ...

    @abstractmethod
    def _build(self, parameters: np.ndarray):
        ...

    def generate(self, parameters: Sequence[float]):
        params = np.asarray(parameters, dtype=float).ravel()
        if len(params) != self.parameter_count:
            raise DimensionError(
                f"Template expects {self.parameter_count} parameters, got {len(params)}",
                curve_name=self.name,
            )
        return self._build(params)


@dataclass(frozen=True, eq=False)
class InterpolatedCurveTemplate(CurveTemplate):
    """Nodal zero rate curve; one parameter per node time."""
    curve_name: str
    x_values: Sequence[float]
    interpolator: str = "linear"

    def __post_init__(self):
        x = np.asarray(self.x_values, dtype=float).ravel()
        if len(x) == 0:
            raise ConfigurationError("Curve template needs at least one node.", curve_name=self.curve_name)
        if np.any(np.diff(x) <= 0):
            raise ConfigurationError("Node times must be strictly increasing.", curve_name=self.curve_name)
        if self.interpolator not in INTERPOLATORS:
            raise ConfigurationError(f"Unsupported interpolator {self.interpolator!r}", curve_name=self.curve_name)
        x.setflags(write=False)
        object.__setattr__(self, "x_values", x)

    @property
    def name(self) -> str:
        return self.curve_name

    @property
    def parameter_count(self) -> int:
        return len(self.x_values)

    def _build(self, parameters: np.ndarray) -> InterpolatedCurve:
        return InterpolatedCurve(self.curve_name, self.x_values, parameters.copy(), self.interpolator)


@dataclass(frozen=True, eq=False)
class CalibrationCurveData:
    """One curve of a calibration group: its template, the trades fitted and the starting parameters."""
    template: CurveTemplate
    trades: Sequence
    initial_guess: Sequence[float]

    def __post_init__(self):
        guess = tuple(float(v) for v in self.initial_guess)
        if len(guess) != self.template.parameter_count:
            raise DimensionError(
                f"Initial guess has {len(guess)} values, template declares {self.template.parameter_count}",
                curve_name=self.template.name,
            )
        object.__setattr__(self, "trades", tuple(self.trades))
        object.__setattr__(self, "initial_guess", guess)

    @property
    def name(self) -> str:
        return self.template.name
