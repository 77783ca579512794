from __future__ import annotations

import logging
import numpy as np
from typing import Callable, Optional, Tuple

import scipy.linalg

from .config import (
    DEFAULT_ROOT_FINDER_CONFIG,
    FINITE_DIFFERENCE_SHIFT,
    MAX_LINE_SEARCH_HALVINGS,
    RootFinderConfig,
)
from .errors import ConvergenceError, DimensionError
from .jacobian import MAX_CONDITION_NUMBER

logger = logging.getLogger(__name__)

VectorFn = Callable[[np.ndarray], np.ndarray]
MatrixFn = Callable[[np.ndarray], np.ndarray]


def finite_difference_jacobian(fn: VectorFn, x: np.ndarray, shift: float = FINITE_DIFFERENCE_SHIFT) -> np.ndarray:
    """Central difference Jacobian of fn at x."""
    x = np.asarray(x, dtype=float)
    f0 = np.asarray(fn(x), dtype=float)
    jac = np.empty((len(f0), len(x)))
    for j in range(len(x)):
        up = x.copy()
        dn = x.copy()
        up[j] += shift
        dn[j] -= shift
        jac[:, j] = (np.asarray(fn(up), dtype=float) - np.asarray(fn(dn), dtype=float)) / (2.0 * shift)
    return jac


class NewtonVectorRootFinder:
    """
    Multi-dimensional Newton solver with backtracking on the residual norm.

    Converged when ||f(x)|| <= tolerance_abs and the last step is small:
    ||dx|| <= tolerance_abs + tolerance_rel * ||x||.
    The exact Jacobian is evaluated at every iterate.
    """

    def __init__(self, tolerance_abs: float = 1e-9, tolerance_rel: float = 1e-9, max_steps: int = 1000):
        # validation lives in the config
        cfg = RootFinderConfig(tolerance_abs, tolerance_rel, max_steps)
        self.tolerance_abs = cfg.tolerance_abs
        self.tolerance_rel = cfg.tolerance_rel
        self.max_steps = int(cfg.max_steps)

    @classmethod
    def from_config(cls, config: RootFinderConfig = DEFAULT_ROOT_FINDER_CONFIG):
        return cls(config.tolerance_abs, config.tolerance_rel, config.max_steps)

    # ---- hooks ----

    def _next_jacobian(
        self,
        jacobian_fn: MatrixFn,
        jac: np.ndarray,
        x: np.ndarray,
        x_new: np.ndarray,
        f: np.ndarray,
        f_new: np.ndarray,
    ) -> Tuple[np.ndarray, bool]:
        """Jacobian for the next iterate and whether it is exact."""
        return self._jacobian(jacobian_fn, x_new, len(x_new)), True

    # ---- helpers ----

    @staticmethod
    def _value(value_fn: VectorFn, x: np.ndarray) -> np.ndarray:
        return np.asarray(value_fn(x), dtype=float).ravel()

    @staticmethod
    def _jacobian(jacobian_fn: MatrixFn, x: np.ndarray, n: int) -> np.ndarray:
        jac = np.asarray(jacobian_fn(x), dtype=float)
        if jac.shape != (n, n):
            raise DimensionError(f"Jacobian has shape {jac.shape}, expected ({n}, {n})")
        return jac

    @staticmethod
    def _direction(jac: np.ndarray, f: np.ndarray) -> np.ndarray:
        if not np.all(np.isfinite(jac)):
            raise ConvergenceError("Jacobian contains non-finite entries.")
        cond = np.linalg.cond(jac)
        if not np.isfinite(cond) or cond > MAX_CONDITION_NUMBER:
            raise ConvergenceError(f"Jacobian is singular (condition number {cond:.3e}).")
        try:
            return scipy.linalg.solve(jac, -f)
        except scipy.linalg.LinAlgError as exc:
            raise ConvergenceError(f"Jacobian is singular: {exc}") from exc

    def _line_search(self, value_fn: VectorFn, x: np.ndarray, f: np.ndarray, dx: np.ndarray):
        norm = np.linalg.norm(f)
        alpha = 1.0
        for _ in range(MAX_LINE_SEARCH_HALVINGS + 1):
            x_trial = x + alpha * dx
            f_trial = self._value(value_fn, x_trial)
            if not np.all(np.isfinite(f_trial)):
                alpha *= 0.5
                continue
            norm_trial = np.linalg.norm(f_trial)
            # a residual already inside tolerance is accepted even without descent
            if norm_trial < norm or norm_trial <= self.tolerance_abs:
                return x_trial, f_trial
            alpha *= 0.5
        return None

    def _converged(self, x: np.ndarray, dx: np.ndarray, norm: float) -> bool:
        if norm > self.tolerance_abs:
            return False
        return float(np.linalg.norm(dx)) <= self.tolerance_abs + self.tolerance_rel * float(np.linalg.norm(x))

    # ---- main loop ----

    def solve(
        self,
        value_fn: VectorFn,
        jacobian_fn: Optional[MatrixFn],
        initial_guess,
    ) -> np.ndarray:
        x = np.array(initial_guess, dtype=float).ravel()
        n = len(x)
        f = self._value(value_fn, x)
        if len(f) != n:
            raise DimensionError(f"Root finding needs a square system: {n} parameters, {len(f)} values")
        if not np.all(np.isfinite(f)):
            raise ConvergenceError("Non-finite value at initial guess.")

        if jacobian_fn is None:
            jacobian_fn = lambda z: finite_difference_jacobian(value_fn, z)

        if float(np.linalg.norm(f)) <= self.tolerance_abs:
            return x

        jac = self._jacobian(jacobian_fn, x, n)
        exact = True
        for step in range(1, self.max_steps + 1):
            try:
                dx = self._direction(jac, f)
            except ConvergenceError:
                if exact:
                    raise
                logger.debug("step %d: approximate Jacobian singular, refreshing", step)
                jac, exact = self._jacobian(jacobian_fn, x, n), True
                continue

            accepted = self._line_search(value_fn, x, f, dx)
            if accepted is None:
                if not exact:
                    logger.debug("step %d: no descent, refreshing Jacobian", step)
                    jac, exact = self._jacobian(jacobian_fn, x, n), True
                    continue
                logger.warning("step %d: line search exhausted with exact Jacobian, taking full step", step)
                x_new = x + dx
                f_new = self._value(value_fn, x_new)
                if not np.all(np.isfinite(f_new)):
                    raise ConvergenceError(f"Non-finite value after step {step}.")
            else:
                x_new, f_new = accepted

            norm_new = float(np.linalg.norm(f_new))
            logger.debug("step %d: |f| = %.3e", step, norm_new)
            if self._converged(x_new, x_new - x, norm_new):
                logger.info("root found in %d steps, |f| = %.3e", step, norm_new)
                return x_new

            jac, exact = self._next_jacobian(jacobian_fn, jac, x, x_new, f, f_new)
            x, f = x_new, f_new

        raise ConvergenceError(
            f"No convergence after {self.max_steps} steps, |f| = {np.linalg.norm(f):.3e} (tolerance {self.tolerance_abs:.3e})"
        )


class BroydenVectorRootFinder(NewtonVectorRootFinder):
    """
    Quasi-Newton: exact Jacobian at the start, Broyden rank-one updates after
    each accepted step, exact Jacobian again when an update stops giving descent.
    """

    def _next_jacobian(self, jacobian_fn, jac, x, x_new, f, f_new):
        dx = x_new - x
        denom = float(dx @ dx)
        if denom == 0.0:
            return self._jacobian(jacobian_fn, x_new, len(x_new)), True
        jac_new = jac + np.outer((f_new - f) - jac @ dx, dx) / denom
        return jac_new, False
