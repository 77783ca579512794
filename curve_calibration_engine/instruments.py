from __future__ import annotations

import pandas as pd
from dataclasses import dataclass
from typing import ClassVar, List, Optional, Sequence, Tuple

from .provider import DISCOUNT, INDEX, RatesProvider, ZeroRateSensitivity
from .utils import cached_schedule, yearfrac


# Times are year fractions from the valuation date, on the curve day count.
# Accruals default to the time difference when not given.


def _forward_ratio_points(curve_type: str, key: str, ratio: float, start: float, end: float, factor: float):
    """Points of factor * P(start)/P(end) with respect to zero rates at start and end."""
    return [
        ZeroRateSensitivity(curve_type, key, start, -start * ratio * factor),
        ZeroRateSensitivity(curve_type, key, end, end * ratio * factor),
    ]


def _check_period(start: float, end: float, accrual: Optional[float], label: str) -> float:
    if start < 0:
        raise ValueError(f"{label}: start time before valuation date.")
    if end <= start:
        raise ValueError(f"{label}: end must be after start.")
    tau = end - start if accrual is None else float(accrual)
    if tau <= 0:
        raise ValueError(f"{label}: accrual must be positive.")
    return tau


@dataclass(frozen=True)
class TermDeposit:
    """Deposit discounted on the currency curve; par spread = implied rate - rate."""
    kind: ClassVar[str] = "term_deposit"

    currency: str
    start: float
    end: float
    rate: float
    accrual: Optional[float] = None

    def __post_init__(self):
        object.__setattr__(self, "accrual", _check_period(self.start, self.end, self.accrual, "TermDeposit"))

    @property
    def maturity(self) -> float:
        return self.end

    def par_spread(self, provider: RatesProvider) -> float:
        curve = provider.discount_curve(self.currency)
        return (curve.df(self.start) / curve.df(self.end) - 1.0) / self.accrual - self.rate

    def par_spread_sensitivity(self, provider: RatesProvider) -> List[ZeroRateSensitivity]:
        curve = provider.discount_curve(self.currency)
        ratio = curve.df(self.start) / curve.df(self.end)
        return _forward_ratio_points(DISCOUNT, self.currency, ratio, self.start, self.end, 1.0 / self.accrual)


@dataclass(frozen=True)
class IborFixingDeposit:
    """Deposit fixing on an index; par spread = index forward - rate."""
    kind: ClassVar[str] = "ibor_fixing_deposit"

    index: str
    start: float
    end: float
    rate: float
    accrual: Optional[float] = None

    def __post_init__(self):
        object.__setattr__(self, "accrual", _check_period(self.start, self.end, self.accrual, "IborFixingDeposit"))

    @property
    def maturity(self) -> float:
        return self.end

    def par_spread(self, provider: RatesProvider) -> float:
        curve = provider.index_curve(self.index)
        return (curve.df(self.start) / curve.df(self.end) - 1.0) / self.accrual - self.rate

    def par_spread_sensitivity(self, provider: RatesProvider) -> List[ZeroRateSensitivity]:
        curve = provider.index_curve(self.index)
        ratio = curve.df(self.start) / curve.df(self.end)
        return _forward_ratio_points(INDEX, self.index, ratio, self.start, self.end, 1.0 / self.accrual)


@dataclass(frozen=True)
class Fra:
    """
    Forward rate agreement. The par rate is the index forward, so the par
    spread does not depend on discounting.
    """
    kind: ClassVar[str] = "fra"

    index: str
    start: float
    end: float
    rate: float
    accrual: Optional[float] = None

    def __post_init__(self):
        object.__setattr__(self, "accrual", _check_period(self.start, self.end, self.accrual, "Fra"))

    @property
    def maturity(self) -> float:
        return self.end

    def par_spread(self, provider: RatesProvider) -> float:
        curve = provider.index_curve(self.index)
        return (curve.df(self.start) / curve.df(self.end) - 1.0) / self.accrual - self.rate

    def par_spread_sensitivity(self, provider: RatesProvider) -> List[ZeroRateSensitivity]:
        curve = provider.index_curve(self.index)
        ratio = curve.df(self.start) / curve.df(self.end)
        return _forward_ratio_points(INDEX, self.index, ratio, self.start, self.end, 1.0 / self.accrual)


@dataclass(frozen=True)
class Swap:
    """
    Fixed vs floating swap. Floating periods project on the index curve and pay
    at period end; both legs discount on the currency curve.

    With an overnight index the period forward P(s)/P(e) - 1 is the compounded
    overnight rate, so the same trade covers OIS.

    par spread = float PV / fixed annuity - rate
    """
    kind: ClassVar[str] = "swap"

    currency: str
    index: str
    fixed_times: Tuple[float, ...]
    fixed_accruals: Tuple[float, ...]
    float_starts: Tuple[float, ...]
    float_ends: Tuple[float, ...]
    rate: float

    def __post_init__(self):
        for name in ("fixed_times", "fixed_accruals", "float_starts", "float_ends"):
            object.__setattr__(self, name, tuple(float(v) for v in getattr(self, name)))
        if len(self.fixed_times) == 0 or len(self.float_starts) == 0:
            raise ValueError("Swap: both legs need at least one period.")
        if len(self.fixed_times) != len(self.fixed_accruals):
            raise ValueError("Swap: fixed times and accruals differ in length.")
        if len(self.float_starts) != len(self.float_ends):
            raise ValueError("Swap: floating starts and ends differ in length.")
        if any(a <= 0 for a in self.fixed_accruals):
            raise ValueError("Swap: fixed accruals must be positive.")
        if any(t <= 0 for t in self.fixed_times):
            raise ValueError("Swap: fixed payments must be after valuation date.")
        for s, e in zip(self.float_starts, self.float_ends):
            _check_period(s, e, None, "Swap")

    @property
    def maturity(self) -> float:
        return max(self.fixed_times[-1], self.float_ends[-1])

    def annuity(self, provider: RatesProvider) -> float:
        dsc = provider.discount_curve(self.currency)
        return sum(a * dsc.df(t) for t, a in zip(self.fixed_times, self.fixed_accruals))

    def float_leg_pv(self, provider: RatesProvider) -> float:
        dsc = provider.discount_curve(self.currency)
        fwd = provider.index_curve(self.index)
        return sum(dsc.df(e) * (fwd.df(s) / fwd.df(e) - 1.0) for s, e in zip(self.float_starts, self.float_ends))

    def par_spread(self, provider: RatesProvider) -> float:
        return self.float_leg_pv(provider) / self.annuity(provider) - self.rate

    def par_spread_sensitivity(self, provider: RatesProvider) -> List[ZeroRateSensitivity]:
        dsc = provider.discount_curve(self.currency)
        fwd = provider.index_curve(self.index)
        annuity = self.annuity(provider)
        float_pv = self.float_leg_pv(provider)

        points: List[ZeroRateSensitivity] = []
        # float leg / annuity
        for s, e in zip(self.float_starts, self.float_ends):
            d_e = dsc.df(e)
            ratio = fwd.df(s) / fwd.df(e)
            points.append(ZeroRateSensitivity(DISCOUNT, self.currency, e, -e * d_e * (ratio - 1.0) / annuity))
            points.extend(_forward_ratio_points(INDEX, self.index, ratio, s, e, d_e / annuity))
        # - float PV / annuity^2 * d annuity
        factor = -float_pv / annuity ** 2
        for t, a in zip(self.fixed_times, self.fixed_accruals):
            points.append(ZeroRateSensitivity(DISCOUNT, self.currency, t, -t * a * dsc.df(t) * factor))
        return points


# ---- builders from dates ----

def fixed_float_swap(
    val_date: pd.Timestamp,
    start: pd.Timestamp,
    end: pd.Timestamp,
    currency: str,
    index: str,
    rate: float,
    fixed_frequency: str = "6M",
    float_frequency: str = "3M",
    fixed_day_count: str = "30/360",
    curve_day_count: str = "ACT/365F",
) -> Swap:
    """Swap from dates; times use the curve day count, fixed accruals their own."""
    fixed = cached_schedule(pd.Timestamp(start), pd.Timestamp(end), fixed_frequency)
    flt = cached_schedule(pd.Timestamp(start), pd.Timestamp(end), float_frequency)

    return Swap(
        currency=currency,
        index=index,
        fixed_times=[yearfrac(val_date, e, curve_day_count) for _, e in fixed],
        fixed_accruals=[yearfrac(s, e, fixed_day_count) for s, e in fixed],
        float_starts=[yearfrac(val_date, s, curve_day_count) for s, _ in flt],
        float_ends=[yearfrac(val_date, e, curve_day_count) for _, e in flt],
        rate=rate,
    )


def swap_from_times(currency: str, index: str, maturity: float, rate: float,
                    fixed_period: float = 0.5, float_period: float = 0.25, start: float = 0.0) -> Swap:
    """Swap on a regular year-fraction grid; handy when dates are irrelevant."""
    def grid(step: float) -> Sequence[float]:
        n = max(int(round((maturity - start) / step)), 1)
        return [start + (maturity - start) * k / n for k in range(n + 1)]

    fixed = grid(fixed_period)
    flt = grid(float_period)
    return Swap(
        currency=currency,
        index=index,
        fixed_times=fixed[1:],
        fixed_accruals=[b - a for a, b in zip(fixed[:-1], fixed[1:])],
        float_starts=flt[:-1],
        float_ends=flt[1:],
        rate=rate,
    )
