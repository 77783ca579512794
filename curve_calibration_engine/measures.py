from __future__ import annotations

import numpy as np
from types import MappingProxyType
from typing import Callable, Iterable, List, Mapping, Tuple

from .errors import DimensionError, UnsupportedInstrumentError
from .instruments import Fra, IborFixingDeposit, Swap, TermDeposit
from .jacobian import CurveParameterSize
from .provider import RatesProvider, ZeroRateSensitivity


ValueFn = Callable[[object, RatesProvider], float]
SensitivityFn = Callable[[object, RatesProvider], Iterable[ZeroRateSensitivity]]


class CalibrationMeasures:
    """
    Measure calculator used by calibration.

    Dispatches on the trade's `kind` tag to a registered (value, sensitivity)
    pair. The sensitivity returns point sensitivities, which the provider turns
    into curve parameter sensitivities.
    """

    def __init__(self, measures: Mapping[str, Tuple[ValueFn, SensitivityFn]]):
        self._measures: Mapping[str, Tuple[ValueFn, SensitivityFn]] = MappingProxyType(dict(measures))

    @property
    def kinds(self) -> Tuple[str, ...]:
        return tuple(self._measures)

    def with_measure(self, kind: str, value_fn: ValueFn, sensitivity_fn: SensitivityFn) -> "CalibrationMeasures":
        out = dict(self._measures)
        out[kind] = (value_fn, sensitivity_fn)
        return CalibrationMeasures(out)

    def _lookup(self, trade) -> Tuple[ValueFn, SensitivityFn]:
        kind = getattr(trade, "kind", None)
        if kind not in self._measures:
            raise UnsupportedInstrumentError(
                f"Trade kind {kind!r} ({type(trade).__name__}) not supported for calibration"
            )
        return self._measures[kind]

    def value(self, trade, provider: RatesProvider) -> float:
        value_fn, _ = self._lookup(trade)
        return float(value_fn(trade, provider))

    def derivative(self, trade, provider: RatesProvider, curve_order: Iterable[CurveParameterSize]) -> np.ndarray:
        """
        Sensitivity to curve parameters as one vector concatenated per curve_order.
        Curves the trade does not touch contribute zeros.
        """
        _, sensitivity_fn = self._lookup(trade)
        by_curve = provider.parameter_sensitivity(sensitivity_fn(trade, provider))

        parts: List[np.ndarray] = []
        for name, count in curve_order:
            s = by_curve.get(name)
            if s is None:
                parts.append(np.zeros(count))
                continue
            if len(s) != count:
                raise DimensionError(
                    f"Curve has {len(s)} parameters, curve order declares {count}", curve_name=name
                )
            parts.append(np.asarray(s, dtype=float))
        if not parts:
            return np.zeros(0)
        return np.concatenate(parts)


def _par_spread(trade, provider: RatesProvider) -> float:
    return trade.par_spread(provider)


def _par_spread_sensitivity(trade, provider: RatesProvider):
    return trade.par_spread_sensitivity(provider)


DEFAULT_MEASURES = CalibrationMeasures(
    {
        cls.kind: (_par_spread, _par_spread_sensitivity)
        for cls in (TermDeposit, IborFixingDeposit, Fra, Swap)
    }
)
