from __future__ import annotations

import numpy as np
import pandas as pd
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from .curves import InterpolatedCurve
from .errors import ConfigurationError, DimensionError
from .jacobian import CurveParameterSize
from .templates import CurveTemplate


DISCOUNT = "discount"
INDEX = "index"


@dataclass(frozen=True)
class ZeroRateSensitivity:
    """
    Point sensitivity of a measure to the zero rate of one curve at one time.

    curve_type is DISCOUNT (key = currency) or INDEX (key = rate index).
    """
    curve_type: str
    key: str
    time: float
    sensitivity: float


@dataclass(frozen=True, eq=False)
class RatesProvider:
    """
    Immutable snapshot of rates market state.

    Discount curves by currency, index curves by index, FX rates and fixing
    time series. FX and fixings are carried through calibration untouched.
    """
    valuation_date: Optional[pd.Timestamp] = None
    discount_curves: Mapping[str, InterpolatedCurve] = field(default_factory=dict)
    index_curves: Mapping[str, InterpolatedCurve] = field(default_factory=dict)
    fx_rates: Mapping[Tuple[str, str], float] = field(default_factory=dict)
    time_series: Mapping[str, pd.Series] = field(default_factory=dict)

    def __post_init__(self):
        if self.valuation_date is not None:
            object.__setattr__(self, "valuation_date", pd.Timestamp(self.valuation_date))
        for name in ("discount_curves", "index_curves", "fx_rates", "time_series"):
            object.__setattr__(self, name, MappingProxyType(dict(getattr(self, name))))

    def discount_curve(self, currency: str) -> InterpolatedCurve:
        try:
            return self.discount_curves[currency]
        except KeyError:
            raise ConfigurationError(f"No discount curve for currency {currency}") from None

    def index_curve(self, index: str) -> InterpolatedCurve:
        try:
            return self.index_curves[index]
        except KeyError:
            raise ConfigurationError(f"No forward curve for index {index}") from None

    def curve_for(self, curve_type: str, key: str) -> InterpolatedCurve:
        if curve_type == DISCOUNT:
            return self.discount_curve(key)
        if curve_type == INDEX:
            return self.index_curve(key)
        raise ValueError(f"Unknown curve type: {curve_type}")

    def curves(self) -> Dict[str, InterpolatedCurve]:
        """All distinct curves by name."""
        out: Dict[str, InterpolatedCurve] = {}
        for c in list(self.discount_curves.values()) + list(self.index_curves.values()):
            out.setdefault(c.name, c)
        return out

    def fx_rate(self, base: str, counter: str) -> float:
        if base == counter:
            return 1.0
        if (base, counter) in self.fx_rates:
            return float(self.fx_rates[(base, counter)])
        if (counter, base) in self.fx_rates:
            return 1.0 / float(self.fx_rates[(counter, base)])
        raise ConfigurationError(f"No FX rate for {base}/{counter}")

    def fixings(self, index: str) -> pd.Series:
        return self.time_series.get(index, pd.Series(dtype=float))

    def with_curves(
        self,
        discount_curves: Mapping[str, InterpolatedCurve],
        index_curves: Mapping[str, InterpolatedCurve],
    ) -> "RatesProvider":
        """New provider; the given curves replace existing ones for the same currency/index."""
        dsc = dict(self.discount_curves)
        dsc.update(discount_curves)
        idx = dict(self.index_curves)
        idx.update(index_curves)
        return RatesProvider(self.valuation_date, dsc, idx, self.fx_rates, self.time_series)

    def parameter_sensitivity(self, points: Iterable[ZeroRateSensitivity]) -> Dict[str, np.ndarray]:
        """
        Convert point sensitivities to curve parameter sensitivities, by curve name.

        Points landing on the same curve are summed, including a curve used both
        for discounting and for projection.
        """
        out: Dict[str, np.ndarray] = {}
        for p in points:
            curve = self.curve_for(p.curve_type, p.key)
            contrib = p.sensitivity * curve.zero_rate_parameter_sensitivity(p.time)
            if curve.name in out:
                out[curve.name] = out[curve.name] + contrib
            else:
                out[curve.name] = contrib
        return out


class RatesProviderTemplate:
    """
    Builds a full RatesProvider from the flat parameter vector of one group.

    The parameter vector is sliced into consecutive windows, one per template
    in declared order. Each curve is placed under the currency and indices it
    is mapped to; curves mapped to nothing are built and left out. Known
    curves named in the mappings are placed the same way, under the curves
    built here.
    """

    def __init__(
        self,
        known_provider: RatesProvider,
        templates: Sequence[CurveTemplate],
        discounting_names: Mapping[str, str],
        forward_names: Mapping[str, Iterable[str]],
    ):
        self.known_provider = known_provider
        self.templates: Tuple[CurveTemplate, ...] = tuple(templates)
        self.discounting_names: Dict[str, str] = dict(discounting_names)
        self.forward_names: Dict[str, Set[str]] = {k: set(v) for k, v in forward_names.items()}

    @property
    def curve_order(self) -> List[CurveParameterSize]:
        return [CurveParameterSize(t.name, t.parameter_count) for t in self.templates]

    @property
    def parameter_count(self) -> int:
        return sum(t.parameter_count for t in self.templates)

    def generate(self, parameters: Sequence[float]) -> RatesProvider:
        params = np.asarray(parameters, dtype=float).ravel()
        if len(params) != self.parameter_count:
            raise DimensionError(
                f"Provider template expects {self.parameter_count} parameters, got {len(params)}"
            )

        dsc: Dict[str, InterpolatedCurve] = {}
        idx: Dict[str, InterpolatedCurve] = {}

        # mapped curves that are not rebuilt here come from the known provider
        built = {t.name for t in self.templates}
        known = self.known_provider.curves()
        for name, ccy in self.discounting_names.items():
            if name not in built and name in known:
                dsc[ccy] = known[name]
        for name, indices in self.forward_names.items():
            if name not in built and name in known:
                for index in indices:
                    idx[index] = known[name]

        start = 0
        for template in self.templates:
            n = template.parameter_count
            curve = template.generate(params[start:start + n])
            start += n

            ccy = self.discounting_names.get(template.name)
            if ccy is not None:
                dsc[ccy] = curve
            for index in self.forward_names.get(template.name, ()):
                idx[index] = curve

        return self.known_provider.with_curves(dsc, idx)
