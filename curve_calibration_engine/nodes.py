"""
Curve nodes and curve group definitions.

A node turns a market quote into the trade used to calibrate one curve
parameter, and fixes the time of that parameter (the trade's end date).
A group definition lists the curves solved together, with the currency each
one discounts and the indices it projects.
"""
from __future__ import annotations

import pandas as pd
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Set, Tuple

from .errors import ConfigurationError
from .instruments import Fra, IborFixingDeposit, Swap, TermDeposit, fixed_float_swap
from .templates import CalibrationCurveData, InterpolatedCurveTemplate
from .utils import add_tenor, spot_date, yearfrac


CURVE_DAY_COUNT = "ACT/365F"


def _quote(quotes: Mapping[str, float], quote_id: str) -> float:
    try:
        return float(quotes[quote_id])
    except KeyError:
        raise ConfigurationError(f"Missing market quote {quote_id!r}") from None


@dataclass(frozen=True)
class TermDepositNode:
    currency: str
    tenor: str
    quote_id: str
    additional_spread: float = 0.0
    spot_lag_days: int = 0
    day_count: str = "ACT/360"

    def start_date(self, val_date: pd.Timestamp) -> pd.Timestamp:
        return spot_date(val_date, self.spot_lag_days)

    def end_date(self, val_date: pd.Timestamp) -> pd.Timestamp:
        return add_tenor(self.start_date(val_date), self.tenor)

    def node_time(self, val_date: pd.Timestamp) -> float:
        return yearfrac(val_date, self.end_date(val_date), CURVE_DAY_COUNT)

    @property
    def label(self) -> str:
        return f"DEP-{self.tenor}"

    def trade(self, val_date: pd.Timestamp, quotes: Mapping[str, float]) -> TermDeposit:
        s, e = self.start_date(val_date), self.end_date(val_date)
        return TermDeposit(
            currency=self.currency,
            start=yearfrac(val_date, s, CURVE_DAY_COUNT),
            end=yearfrac(val_date, e, CURVE_DAY_COUNT),
            rate=_quote(quotes, self.quote_id) + self.additional_spread,
            accrual=yearfrac(s, e, self.day_count),
        )


@dataclass(frozen=True)
class IborFixingDepositNode:
    """Deposit over the index tenor starting at spot; pins the short end of an index curve."""
    index: str
    tenor: str
    quote_id: str
    additional_spread: float = 0.0
    spot_lag_days: int = 0
    day_count: str = "ACT/360"

    def start_date(self, val_date: pd.Timestamp) -> pd.Timestamp:
        return spot_date(val_date, self.spot_lag_days)

    def end_date(self, val_date: pd.Timestamp) -> pd.Timestamp:
        return add_tenor(self.start_date(val_date), self.tenor)

    def node_time(self, val_date: pd.Timestamp) -> float:
        return yearfrac(val_date, self.end_date(val_date), CURVE_DAY_COUNT)

    @property
    def label(self) -> str:
        return f"FIX-{self.tenor}"

    def trade(self, val_date: pd.Timestamp, quotes: Mapping[str, float]) -> IborFixingDeposit:
        s, e = self.start_date(val_date), self.end_date(val_date)
        return IborFixingDeposit(
            index=self.index,
            start=yearfrac(val_date, s, CURVE_DAY_COUNT),
            end=yearfrac(val_date, e, CURVE_DAY_COUNT),
            rate=_quote(quotes, self.quote_id) + self.additional_spread,
            accrual=yearfrac(s, e, self.day_count),
        )


@dataclass(frozen=True)
class FraNode:
    """FRA from start_tenor to end_tenor after spot, e.g. 3M x 6M."""
    index: str
    start_tenor: str
    end_tenor: str
    quote_id: str
    additional_spread: float = 0.0
    spot_lag_days: int = 0
    day_count: str = "ACT/360"

    def start_date(self, val_date: pd.Timestamp) -> pd.Timestamp:
        return add_tenor(spot_date(val_date, self.spot_lag_days), self.start_tenor)

    def end_date(self, val_date: pd.Timestamp) -> pd.Timestamp:
        return add_tenor(spot_date(val_date, self.spot_lag_days), self.end_tenor)

    def node_time(self, val_date: pd.Timestamp) -> float:
        return yearfrac(val_date, self.end_date(val_date), CURVE_DAY_COUNT)

    @property
    def label(self) -> str:
        return f"FRA-{self.start_tenor}x{self.end_tenor}"

    def trade(self, val_date: pd.Timestamp, quotes: Mapping[str, float]) -> Fra:
        s, e = self.start_date(val_date), self.end_date(val_date)
        return Fra(
            index=self.index,
            start=yearfrac(val_date, s, CURVE_DAY_COUNT),
            end=yearfrac(val_date, e, CURVE_DAY_COUNT),
            rate=_quote(quotes, self.quote_id) + self.additional_spread,
            accrual=yearfrac(s, e, self.day_count),
        )


@dataclass(frozen=True)
class SwapNode:
    """Spot starting fixed vs float swap; with an overnight index and annual legs it is an OIS."""
    currency: str
    index: str
    tenor: str
    quote_id: str
    additional_spread: float = 0.0
    fixed_frequency: str = "6M"
    float_frequency: str = "3M"
    fixed_day_count: str = "30/360"
    spot_lag_days: int = 0

    def start_date(self, val_date: pd.Timestamp) -> pd.Timestamp:
        return spot_date(val_date, self.spot_lag_days)

    def end_date(self, val_date: pd.Timestamp) -> pd.Timestamp:
        return add_tenor(self.start_date(val_date), self.tenor)

    def node_time(self, val_date: pd.Timestamp) -> float:
        return yearfrac(val_date, self.end_date(val_date), CURVE_DAY_COUNT)

    @property
    def label(self) -> str:
        return f"SWAP-{self.tenor}"

    def trade(self, val_date: pd.Timestamp, quotes: Mapping[str, float]) -> Swap:
        return fixed_float_swap(
            val_date,
            self.start_date(val_date),
            self.end_date(val_date),
            currency=self.currency,
            index=self.index,
            rate=_quote(quotes, self.quote_id) + self.additional_spread,
            fixed_frequency=self.fixed_frequency,
            float_frequency=self.float_frequency,
            fixed_day_count=self.fixed_day_count,
            curve_day_count=CURVE_DAY_COUNT,
        )


@dataclass(frozen=True)
class CurveGroupEntry:
    name: str
    nodes: Tuple
    discount_currency: Optional[str] = None
    indices: Tuple[str, ...] = ()
    interpolator: str = "linear"

    def __post_init__(self):
        object.__setattr__(self, "nodes", tuple(self.nodes))
        object.__setattr__(self, "indices", tuple(self.indices))
        if not self.nodes:
            raise ConfigurationError("Curve has no nodes.", curve_name=self.name)

    def template(self, val_date: pd.Timestamp) -> InterpolatedCurveTemplate:
        times = [n.node_time(val_date) for n in self.nodes]
        return InterpolatedCurveTemplate(self.name, times, self.interpolator)

    def calibration_data(self, val_date: pd.Timestamp, quotes: Mapping[str, float]) -> CalibrationCurveData:
        # quoted rates are a good start for zero rates
        trades = [n.trade(val_date, quotes) for n in self.nodes]
        guess = [_quote(quotes, n.quote_id) + n.additional_spread for n in self.nodes]
        return CalibrationCurveData(self.template(val_date), trades, guess)

    def quote_ids(self) -> List[str]:
        return [n.quote_id for n in self.nodes]


@dataclass(frozen=True)
class CurveGroupDefinition:
    """Curves calibrated together as one square system."""
    entries: Tuple[CurveGroupEntry, ...]
    name: str = "GROUP"

    def __post_init__(self):
        object.__setattr__(self, "entries", tuple(self.entries))
        names = [e.name for e in self.entries]
        if len(set(names)) != len(names):
            raise ConfigurationError(f"Duplicate curve names in group {self.name}: {names}")

    def calibration_data(self, val_date: pd.Timestamp, quotes: Mapping[str, float]) -> List[CalibrationCurveData]:
        return [e.calibration_data(pd.Timestamp(val_date), quotes) for e in self.entries]

    def discounting_names(self) -> Dict[str, str]:
        return {e.name: e.discount_currency for e in self.entries if e.discount_currency}

    def forward_names(self) -> Dict[str, Set[str]]:
        return {e.name: set(e.indices) for e in self.entries if e.indices}

    def quote_ids(self) -> List[str]:
        return [q for e in self.entries for q in e.quote_ids()]

    def node_frame(self, val_date: pd.Timestamp) -> pd.DataFrame:
        """One row per curve node: label, quote id, end date and node time."""
        val_date = pd.Timestamp(val_date)
        rows = [
            {
                "group": self.name,
                "curve": e.name,
                "label": n.label,
                "quote_id": n.quote_id,
                "end_date": n.end_date(val_date),
                "node_time": n.node_time(val_date),
            }
            for e in self.entries
            for n in e.nodes
        ]
        return pd.DataFrame(rows, columns=["group", "curve", "label", "quote_id", "end_date", "node_time"])


# ---- quote tables ----

def _text(r: pd.Series, column: str, default: Optional[str] = None) -> Optional[str]:
    v = r.get(column)
    if isinstance(v, str) and v.strip():
        return v.strip()
    return default


def _node_from_row(r: pd.Series):
    kind = str(r["type"]).strip().lower()
    spread = r.get("spread", 0.0)
    spread = 0.0 if pd.isna(spread) else float(spread)
    quote_id = str(r["quote_id"])

    if kind == "term_deposit":
        return TermDepositNode(str(r["currency"]), str(r["tenor"]), quote_id, spread)
    if kind == "ibor_fixing_deposit":
        return IborFixingDepositNode(str(r["index"]), str(r["tenor"]), quote_id, spread)
    if kind == "fra":
        return FraNode(str(r["index"]), str(r["start"]), str(r["tenor"]), quote_id, spread)
    if kind in ("swap", "ois"):
        fixed_freq = _text(r, "fixed_frequency", "12M" if kind == "ois" else "6M")
        float_freq = _text(r, "float_frequency", "12M" if kind == "ois" else "3M")
        fixed_dc = "ACT/360" if kind == "ois" else "30/360"
        return SwapNode(str(r["currency"]), str(r["index"]), str(r["tenor"]), quote_id, spread,
                        fixed_freq, float_freq, fixed_dc)
    raise ConfigurationError(f"Unknown node type {kind!r} for quote {quote_id}")


def definitions_from_frame(frame: pd.DataFrame) -> List[CurveGroupDefinition]:
    """
    Build ordered group definitions from a node table.

    Required columns: group, curve, type, tenor, quote_id.
    Depending on type: currency, index, start (FRA start tenor).
    Curve mapping columns, read from the first row of each curve:
    discount_currency, indices (comma separated).
    Rows keep their order within a curve; groups are sorted by `group`.
    """
    missing = {"group", "curve", "type", "tenor", "quote_id"} - set(frame.columns)
    if missing:
        raise ConfigurationError(f"Node table lacks columns: {sorted(missing)}")

    out: List[CurveGroupDefinition] = []
    for g, gdf in frame.groupby("group", sort=True):
        entries = []
        for curve, cdf in gdf.groupby("curve", sort=False):
            first = cdf.iloc[0]
            raw = _text(first, "indices", "")
            entries.append(
                CurveGroupEntry(
                    name=str(curve),
                    nodes=tuple(_node_from_row(r) for _, r in cdf.iterrows()),
                    discount_currency=_text(first, "discount_currency"),
                    indices=tuple(s.strip() for s in raw.split(",") if s.strip()),
                    interpolator=_text(first, "interpolator", "linear"),
                )
            )
        out.append(CurveGroupDefinition(tuple(entries), name=str(g)))
    return out


def quotes_from_frame(frame: pd.DataFrame) -> Dict[str, float]:
    if not {"quote_id", "quote"}.issubset(frame.columns):
        raise ConfigurationError("Quote table needs quote_id and quote columns.")
    if frame["quote_id"].duplicated().any():
        dup = frame.loc[frame["quote_id"].duplicated(), "quote_id"].tolist()
        raise ConfigurationError(f"Duplicate quote ids: {dup}")
    return dict(zip(frame["quote_id"].astype(str), frame["quote"].astype(float)))


def merged_names(definitions: Sequence[CurveGroupDefinition]) -> Tuple[Dict[str, str], Dict[str, Set[str]]]:
    """Discounting and forward maps across all groups."""
    dsc: Dict[str, str] = {}
    fwd: Dict[str, Set[str]] = {}
    for d in definitions:
        dsc.update(d.discounting_names())
        fwd.update(d.forward_names())
    return dsc, fwd
