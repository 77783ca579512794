"""
Calibration Jacobians and the building block bundle.

For a calibrated group with trades T, own parameters p and earlier parameters q,
the implicit function theorem on measures(T; p, q) = 0 gives

    dp/dm = inv(S_direct)                      (quotes of this group)
    dp/dq = -inv(S_direct) @ S_indirect
    dp/dm_before = dp/dq @ dq/dm_before        (quotes of earlier groups)

where dq/dm_before is the transition matrix assembled from the building blocks
already stored for the earlier curves.
"""
from __future__ import annotations

import numpy as np
import pandas as pd
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, NamedTuple, Sequence, Tuple

import scipy.linalg

from .errors import ConfigurationError, ConvergenceError, DimensionError


# above this condition number the direct block is treated as singular
MAX_CONDITION_NUMBER = 1e14


class CurveParameterSize(NamedTuple):
    name: str
    parameter_count: int


def total_parameter_count(order: Iterable[CurveParameterSize]) -> int:
    return sum(o.parameter_count for o in order)


def order_windows(order: Iterable[CurveParameterSize]) -> Dict[str, Tuple[int, int]]:
    """Curve name -> (offset, size) in the concatenated parameter vector."""
    out: Dict[str, Tuple[int, int]] = {}
    start = 0
    for o in order:
        if o.name in out:
            raise ConfigurationError("Curve appears twice in curve order.", curve_name=o.name)
        out[o.name] = (start, o.parameter_count)
        start += o.parameter_count
    return out


# ---- pure matrix helpers ----

def invert(matrix: np.ndarray) -> np.ndarray:
    m = np.asarray(matrix, dtype=float)
    if m.ndim != 2 or m.shape[0] != m.shape[1]:
        raise DimensionError(f"Cannot invert matrix of shape {m.shape}")
    if m.size == 0:
        return m.copy()
    if not np.all(np.isfinite(m)):
        raise ConvergenceError("Matrix contains non-finite entries.")
    cond = np.linalg.cond(m)
    if not np.isfinite(cond) or cond > MAX_CONDITION_NUMBER:
        raise ConvergenceError(f"Matrix is singular (condition number {cond:.3e}).")
    try:
        return scipy.linalg.inv(m)
    except scipy.linalg.LinAlgError as exc:
        raise ConvergenceError(f"Matrix is singular: {exc}") from exc


def multiply(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    if a.shape[-1] != b.shape[0]:
        raise DimensionError(f"Cannot multiply {a.shape} by {b.shape}")
    return a @ b


def scale(a: np.ndarray, factor: float) -> np.ndarray:
    return np.asarray(a, dtype=float) * factor


# ---- building blocks ----

@dataclass(frozen=True, eq=False)
class JacobianCalibrationMatrix:
    """
    Building block of one curve: d(curve parameters) / d(market quotes).

    Columns follow `order`, the curves of every group up to and including the
    curve's own group; each curve's quotes sit in the same window as its
    parameters.
    """
    order: Tuple[CurveParameterSize, ...]
    matrix: np.ndarray

    def __post_init__(self):
        order = tuple(CurveParameterSize(*o) for o in self.order)
        m = np.array(self.matrix, dtype=float, ndmin=2)
        if m.shape[1] != total_parameter_count(order):
            raise DimensionError(
                f"Jacobian has {m.shape[1]} columns, curve order declares {total_parameter_count(order)}"
            )
        m.setflags(write=False)
        object.__setattr__(self, "order", order)
        object.__setattr__(self, "matrix", m)

    @property
    def curve_names(self) -> Tuple[str, ...]:
        return tuple(o.name for o in self.order)

    def contains_curve(self, name: str) -> bool:
        return name in self.curve_names

    def window(self, name: str) -> Tuple[int, int]:
        windows = order_windows(self.order)
        if name not in windows:
            raise KeyError(name)
        return windows[name]

    def sub_matrix(self, name: str) -> np.ndarray:
        """Sensitivity to the quotes of one curve."""
        start, size = self.window(name)
        return self.matrix[:, start:start + size]

    def to_frame(self) -> pd.DataFrame:
        columns = pd.MultiIndex.from_tuples(
            [(o.name, i) for o in self.order for i in range(o.parameter_count)],
            names=["quote_curve", "quote"],
        )
        return pd.DataFrame(self.matrix, columns=columns)


@dataclass(frozen=True)
class CurveBuildingBlockBundle:
    """Immutable map curve name -> building block; grows by merging one group at a time."""
    blocks: Mapping[str, JacobianCalibrationMatrix] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "blocks", MappingProxyType(dict(self.blocks)))

    def __contains__(self, name: str) -> bool:
        return name in self.blocks

    def __len__(self) -> int:
        return len(self.blocks)

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(self.blocks)

    def get(self, name: str) -> JacobianCalibrationMatrix:
        try:
            return self.blocks[name]
        except KeyError:
            raise ConfigurationError("No building block for curve.", curve_name=name) from None

    def merged(self, new_blocks: Mapping[str, JacobianCalibrationMatrix]) -> "CurveBuildingBlockBundle":
        clash = set(new_blocks) & set(self.blocks)
        if clash:
            raise ConfigurationError(f"Curves calibrated twice: {sorted(clash)}")
        out = dict(self.blocks)
        out.update(new_blocks)
        return CurveBuildingBlockBundle(out)

    def to_frame(self, name: str) -> pd.DataFrame:
        df = self.get(name).to_frame()
        df.index = pd.MultiIndex.from_product([[name], range(len(df))], names=["curve", "parameter"])
        return df


# ---- group update ----

def transition_matrix(
    order_before: Sequence[CurveParameterSize],
    bundle: CurveBuildingBlockBundle,
) -> np.ndarray:
    """
    d(earlier parameters) / d(earlier quotes), assembled from stored blocks.

    Block (l, k) is curve l's sensitivity to curve k's quotes when curve l's
    building block covers k, zero otherwise.
    """
    n = total_parameter_count(order_before)
    transition = np.zeros((n, n))
    start_outer = 0
    for outer in order_before:
        block = bundle.get(outer.name)
        if block.matrix.shape[0] != outer.parameter_count:
            raise DimensionError(
                f"Building block has {block.matrix.shape[0]} rows, curve declares {outer.parameter_count}",
                curve_name=outer.name,
            )
        start_inner = 0
        for inner in order_before:
            if block.contains_curve(inner.name):
                s, size = block.window(inner.name)
                if size != inner.parameter_count:
                    raise DimensionError("Building block window size mismatch.", curve_name=inner.name)
                transition[start_outer:start_outer + outer.parameter_count, start_inner:start_inner + size] = (
                    block.matrix[:, s:s + size]
                )
            start_inner += inner.parameter_count
        start_outer += outer.parameter_count
    return transition


def jacobian_direct(sensitivity: np.ndarray, nb_params_before: int) -> np.ndarray:
    """inv(S_direct): d(group parameters) / d(group quotes)."""
    direct = sensitivity[:, nb_params_before:]
    return invert(direct)


def jacobian_indirect(
    sensitivity: np.ndarray,
    pdm_current: np.ndarray,
    order_before: Sequence[CurveParameterSize],
    bundle: CurveBuildingBlockBundle,
) -> np.ndarray:
    """d(group parameters) / d(earlier quotes); empty columns when nothing came before."""
    nb_before = total_parameter_count(order_before)
    if nb_before == 0:
        return np.zeros((pdm_current.shape[0], 0))
    non_direct = sensitivity[:, :nb_before]
    pdp_before = scale(multiply(pdm_current, non_direct), -1.0)
    return multiply(pdp_before, transition_matrix(order_before, bundle))


def building_blocks_for_group(
    sensitivity: np.ndarray,
    order_group: Sequence[CurveParameterSize],
    order_before: Sequence[CurveParameterSize],
    bundle: CurveBuildingBlockBundle,
) -> Dict[str, JacobianCalibrationMatrix]:
    """
    Building blocks for every curve of a freshly calibrated group.

    `sensitivity` holds d(trade measure)/d(parameter) for the group's trades
    against all parameters of order_before ++ order_group.
    """
    s = np.asarray(sensitivity, dtype=float)
    nb_group = total_parameter_count(order_group)
    nb_before = total_parameter_count(order_before)
    if s.ndim != 2 or s.shape != (nb_group, nb_before + nb_group):
        raise DimensionError(
            f"Group sensitivity has shape {s.shape}, expected ({nb_group}, {nb_before + nb_group})"
        )

    pdm_current = jacobian_direct(s, nb_before)
    pdm_before = jacobian_indirect(s, pdm_current, order_before, bundle)
    full = np.hstack([pdm_before, pdm_current])

    order_all = tuple(order_before) + tuple(order_group)
    out: Dict[str, JacobianCalibrationMatrix] = {}
    start = 0
    for o in order_group:
        out[o.name] = JacobianCalibrationMatrix(order_all, full[start:start + o.parameter_count, :])
        start += o.parameter_count
    return out
