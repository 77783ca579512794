from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Mapping

from .errors import ConfigurationError


@dataclass(frozen=True)
class RootFinderConfig:
    """
    Root finder settings shared by every group of a calibration run.

    - tolerance_abs: residual norm accepted as zero, always required
    - tolerance_rel: last step size accepted relative to the parameter norm
    - max_steps: iteration cap, the only timeout the engine knows
    """
    tolerance_abs: float = 1e-9
    tolerance_rel: float = 1e-9
    max_steps: int = 1000

    def __post_init__(self):
        if not self.tolerance_abs > 0.0:
            raise ConfigurationError(f"tolerance_abs must be positive, got {self.tolerance_abs}")
        if self.tolerance_rel < 0.0:
            raise ConfigurationError(f"tolerance_rel must be non-negative, got {self.tolerance_rel}")
        if int(self.max_steps) < 1:
            raise ConfigurationError(f"max_steps must be at least 1, got {self.max_steps}")

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> "RootFinderConfig":
        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise ConfigurationError(f"Unknown root finder settings: {sorted(unknown)}")
        return cls(
            tolerance_abs=float(values.get("tolerance_abs", cls.tolerance_abs)),
            tolerance_rel=float(values.get("tolerance_rel", cls.tolerance_rel)),
            max_steps=int(values.get("max_steps", cls.max_steps)),
        )


DEFAULT_ROOT_FINDER_CONFIG = RootFinderConfig()

# central difference shift used when no analytic Jacobian is supplied
FINITE_DIFFERENCE_SHIFT = 1e-7

# backtracking line search: halve the step at most this many times
MAX_LINE_SEARCH_HALVINGS = 20
