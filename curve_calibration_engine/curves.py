from __future__ import annotations

import numpy as np
import pandas as pd
from dataclasses import dataclass, field
from typing import Union

from scipy.interpolate import CubicSpline


INTERPOLATORS = ("linear", "natural_cubic")

ArrayLike = Union[float, np.ndarray]


@dataclass(frozen=True, eq=False)
class InterpolatedCurve:
    """
    Zero rate curve defined by continuously-compounded zero rates at node times
    (year fractions from the valuation date).

    - Within node range: linear or natural cubic spline on zero rates.
    - Extrapolation: flat zero rate on both sides.
    - The node zero rates are the curve parameters.
    """
    name: str
    x_values: np.ndarray
    y_values: np.ndarray
    interpolator: str = "linear"
    _spline: object = field(default=None, init=False, repr=False)
    _unit_spline: object = field(default=None, init=False, repr=False)

    def __post_init__(self):
        x = np.asarray(self.x_values, dtype=float).ravel()
        y = np.asarray(self.y_values, dtype=float).ravel()
        if len(x) == 0:
            raise ValueError(f"{self.name}: curve needs at least one node.")
        if len(x) != len(y):
            raise ValueError(f"{self.name}: {len(x)} node times but {len(y)} values.")
        if np.any(np.diff(x) <= 0):
            raise ValueError(f"{self.name}: node times must be strictly increasing.")
        if self.interpolator not in INTERPOLATORS:
            raise ValueError(f"{self.name}: unsupported interpolator {self.interpolator!r}")

        object.__setattr__(self, "x_values", x)
        object.__setattr__(self, "y_values", y)

        if self.interpolator == "natural_cubic" and len(x) >= 2:
            object.__setattr__(self, "_spline", CubicSpline(x, y, bc_type="natural"))
            # spline is linear in y: splining the identity gives the node weights
            object.__setattr__(self, "_unit_spline", CubicSpline(x, np.eye(len(x)), bc_type="natural"))

    @property
    def parameter_count(self) -> int:
        return len(self.y_values)

    def with_parameters(self, parameters: np.ndarray) -> "InterpolatedCurve":
        return InterpolatedCurve(self.name, self.x_values.copy(), np.asarray(parameters, dtype=float), self.interpolator)

    def zero_rate(self, t: ArrayLike) -> ArrayLike:
        t_arr = np.asarray(t, dtype=float)
        if len(self.x_values) == 1:
            out = np.full_like(t_arr, self.y_values[0])
        elif self._spline is not None:
            out = self._spline(np.clip(t_arr, self.x_values[0], self.x_values[-1]))
        else:
            out = np.interp(t_arr, self.x_values, self.y_values)
        return float(out) if np.ndim(t) == 0 else out

    def df(self, t: ArrayLike) -> ArrayLike:
        """Discount factor exp(-z(t) t); equals 1 at t=0."""
        t_arr = np.asarray(t, dtype=float)
        out = np.exp(-np.asarray(self.zero_rate(t_arr)) * t_arr)
        return float(out) if np.ndim(t) == 0 else out

    def forward_rate(self, start: float, end: float) -> float:
        """Simply-compounded forward rate over [start, end]."""
        tau = end - start
        if tau <= 0:
            raise ValueError("Forward period end must be after start.")
        return (self.df(start) / self.df(end) - 1.0) / tau

    def zero_rate_parameter_sensitivity(self, t: float) -> np.ndarray:
        """d z(t) / d y_i for every node i."""
        n = len(self.x_values)
        x = self.x_values
        w = np.zeros(n)

        if n == 1:
            w[0] = 1.0
            return w

        if self._unit_spline is not None:
            return np.asarray(self._unit_spline(min(max(float(t), x[0]), x[-1])), dtype=float)

        if t <= x[0]:
            w[0] = 1.0
        elif t >= x[-1]:
            w[-1] = 1.0
        else:
            i = int(np.searchsorted(x, t, side="right")) - 1
            a = (t - x[i]) / (x[i + 1] - x[i])
            w[i] = 1.0 - a
            w[i + 1] = a
        return w


def curve_qc_report(curve: InterpolatedCurve) -> pd.DataFrame:
    taus = curve.x_values
    zeros = np.asarray(curve.zero_rate(taus), dtype=float)
    dfs = np.exp(-zeros * taus)

    return pd.DataFrame(
        {
            "curve": curve.name,
            "tau": taus,
            "zero_cc": zeros,
            "df": dfs,
            "df_positive": dfs > 0,
            "df_monotone": np.r_[True, np.diff(dfs) <= 1e-10],
        }
    )
