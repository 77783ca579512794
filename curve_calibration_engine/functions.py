from __future__ import annotations

import numpy as np
from typing import Sequence, Tuple

from .errors import CalibrationError
from .jacobian import CurveParameterSize
from .measures import CalibrationMeasures
from .provider import RatesProviderTemplate


class CalibrationValue:
    """Group parameters -> vector of trade measures (the function driven to zero)."""

    def __init__(self, trades: Sequence, measures: CalibrationMeasures, provider_template: RatesProviderTemplate):
        self.trades = tuple(trades)
        self.measures = measures
        self.provider_template = provider_template

    def __call__(self, x: np.ndarray) -> np.ndarray:
        provider = self.provider_template.generate(x)
        out = np.empty(len(self.trades))
        for i, trade in enumerate(self.trades):
            try:
                out[i] = self.measures.value(trade, provider)
            except CalibrationError as exc:
                raise exc.add_context(trade_index=i)
        return out


class CalibrationDerivative:
    """
    Group parameters -> Jacobian of the trade measures.

    Rows are trades; columns follow curve_order, which may cover more curves
    than the group itself.
    """

    def __init__(
        self,
        trades: Sequence,
        measures: CalibrationMeasures,
        provider_template: RatesProviderTemplate,
        curve_order: Sequence[CurveParameterSize],
    ):
        self.trades = tuple(trades)
        self.measures = measures
        self.provider_template = provider_template
        self.curve_order: Tuple[CurveParameterSize, ...] = tuple(curve_order)

    def __call__(self, x: np.ndarray) -> np.ndarray:
        provider = self.provider_template.generate(x)
        n_cols = sum(o.parameter_count for o in self.curve_order)
        out = np.empty((len(self.trades), n_cols))
        for i, trade in enumerate(self.trades):
            try:
                out[i, :] = self.measures.derivative(trade, provider, self.curve_order)
            except CalibrationError as exc:
                raise exc.add_context(trade_index=i)
        return out
