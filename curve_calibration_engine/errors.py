from __future__ import annotations

from typing import Optional


class CalibrationError(Exception):
    """
    Base class for calibration failures.

    Context (group index, curve name, trade index) is filled in as the error
    travels outward through the calibration layers and is rendered by str().
    """

    def __init__(
        self,
        message: str,
        group_index: Optional[int] = None,
        curve_name: Optional[str] = None,
        trade_index: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.group_index = group_index
        self.curve_name = curve_name
        self.trade_index = trade_index

    def add_context(
        self,
        group_index: Optional[int] = None,
        curve_name: Optional[str] = None,
        trade_index: Optional[int] = None,
    ) -> "CalibrationError":
        # inner layers know more, never overwrite what they set
        if self.group_index is None:
            self.group_index = group_index
        if self.curve_name is None:
            self.curve_name = curve_name
        if self.trade_index is None:
            self.trade_index = trade_index
        return self

    def __str__(self) -> str:
        ctx = []
        if self.group_index is not None:
            ctx.append(f"group={self.group_index}")
        if self.curve_name is not None:
            ctx.append(f"curve={self.curve_name}")
        if self.trade_index is not None:
            ctx.append(f"trade={self.trade_index}")
        if not ctx:
            return self.message
        return f"{self.message} [{', '.join(ctx)}]"


class DimensionError(CalibrationError):
    """Trade count, parameter count or vector length mismatch."""


class ConvergenceError(CalibrationError):
    """Root finder did not converge, or a Jacobian block is singular."""


class UnsupportedInstrumentError(CalibrationError):
    """No measure registered for the trade kind."""


class ConfigurationError(CalibrationError):
    """Inconsistent calibration setup (curve mappings, tolerances, quotes)."""
