from __future__ import annotations

import logging
import numpy as np
import pandas as pd
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from .config import DEFAULT_ROOT_FINDER_CONFIG, RootFinderConfig
from .errors import CalibrationError, ConfigurationError, DimensionError
from .functions import CalibrationDerivative, CalibrationValue
from .jacobian import (
    CurveBuildingBlockBundle,
    CurveParameterSize,
    JacobianCalibrationMatrix,
    building_blocks_for_group,
)
from .measures import DEFAULT_MEASURES, CalibrationMeasures
from .nodes import CurveGroupDefinition, merged_names
from .provider import RatesProvider, RatesProviderTemplate
from .root_finding import BroydenVectorRootFinder
from .templates import CalibrationCurveData

logger = logging.getLogger(__name__)

Group = Sequence[CalibrationCurveData]


@dataclass(frozen=True, eq=False)
class GroupCalibration:
    """Result of one solved group, before it is merged into the run."""
    provider: RatesProvider
    parameters: np.ndarray
    curve_order: Tuple[CurveParameterSize, ...]
    blocks: Mapping[str, JacobianCalibrationMatrix]


def _check_square(group: Group) -> None:
    nb_trades = sum(len(d.trades) for d in group)
    nb_params = sum(d.template.parameter_count for d in group)
    if nb_trades != nb_params:
        raise DimensionError(f"Group has {nb_trades} trades for {nb_params} parameters")


def _check_configuration(
    groups: Sequence[Group],
    known_provider: RatesProvider,
    discounting_names: Mapping[str, str],
    forward_names: Mapping[str, Iterable[str]],
) -> None:
    seen: Dict[str, int] = {}
    for i, group in enumerate(groups):
        if len(group) == 0:
            raise ConfigurationError("Calibration group has no curves.", group_index=i)
        for data in group:
            if data.name in seen:
                raise ConfigurationError(
                    f"Curve already calibrated in group {seen[data.name]}", group_index=i, curve_name=data.name
                )
            seen[data.name] = i
        try:
            _check_square(group)
        except DimensionError as exc:
            raise exc.add_context(group_index=i)

    # curves already in the known provider may be referenced too
    available = set(seen) | set(known_provider.curves())
    for name in list(discounting_names) + list(forward_names):
        if name not in available:
            raise ConfigurationError("Curve mapping references a curve that is not calibrated.", curve_name=name)


class CurveCalibrator:
    """
    Calibrates ordered groups of curves.

    Each group is solved as one square system on top of the provider produced
    by the previous group, then its Jacobian is chained onto the building
    blocks of the earlier groups.
    """

    def __init__(
        self,
        config: RootFinderConfig = DEFAULT_ROOT_FINDER_CONFIG,
        measures: CalibrationMeasures = DEFAULT_MEASURES,
        root_finder=None,
    ):
        self.config = config
        self.measures = measures
        self.root_finder = root_finder if root_finder is not None else BroydenVectorRootFinder.from_config(config)

    @classmethod
    def of(
        cls,
        tolerance_abs: float,
        tolerance_rel: float,
        max_steps: int,
        measures: CalibrationMeasures = DEFAULT_MEASURES,
    ) -> "CurveCalibrator":
        return cls(RootFinderConfig(tolerance_abs, tolerance_rel, max_steps), measures)

    def calibrate_group(
        self,
        group: Group,
        provider: RatesProvider,
        order_before: Sequence[CurveParameterSize],
        bundle: CurveBuildingBlockBundle,
        discounting_names: Mapping[str, str],
        forward_names: Mapping[str, Iterable[str]],
    ) -> GroupCalibration:
        trades: List = []
        guess: List[float] = []
        for data in group:
            trades.extend(data.trades)
            guess.extend(data.initial_guess)
        templates = [d.template for d in group]
        order_group = tuple(CurveParameterSize(t.name, t.parameter_count) for t in templates)
        order_all = tuple(order_before) + order_group

        _check_square(group)

        provider_template = RatesProviderTemplate(provider, templates, discounting_names, forward_names)
        value_fn = CalibrationValue(trades, self.measures, provider_template)
        derivative_fn = CalibrationDerivative(trades, self.measures, provider_template, order_group)

        logger.info("calibrating curves %s: %d trades", [o.name for o in order_group], len(trades))
        params = self.root_finder.solve(value_fn, derivative_fn, np.array(guess, dtype=float))
        calibrated = provider_template.generate(params)

        # sensitivity of the group's trades to every parameter so far
        sensitivity = CalibrationDerivative(trades, self.measures, provider_template, order_all)(params)
        blocks = building_blocks_for_group(sensitivity, order_group, order_before, bundle)

        return GroupCalibration(calibrated, params, order_group, blocks)

    def calibrate(
        self,
        groups: Sequence[Group],
        known_provider: RatesProvider,
        discounting_names: Mapping[str, str],
        forward_names: Mapping[str, Iterable[str]],
    ) -> Tuple[RatesProvider, CurveBuildingBlockBundle]:
        groups = [tuple(g) for g in groups]
        _check_configuration(groups, known_provider, discounting_names, forward_names)

        provider = known_provider
        bundle = CurveBuildingBlockBundle()
        order: Tuple[CurveParameterSize, ...] = ()
        for i, group in enumerate(groups):
            try:
                result = self.calibrate_group(group, provider, order, bundle, discounting_names, forward_names)
            except CalibrationError as exc:
                raise exc.add_context(group_index=i)
            provider = result.provider
            bundle = bundle.merged(result.blocks)
            order = order + result.curve_order
            logger.info("group %d of %d calibrated", i + 1, len(groups))
        return provider, bundle

    def calibrate_definitions(
        self,
        definitions: Sequence[CurveGroupDefinition],
        valuation_date: pd.Timestamp,
        quotes: Mapping[str, float],
        time_series: Optional[Mapping[str, pd.Series]] = None,
        fx_rates: Optional[Mapping[Tuple[str, str], float]] = None,
        known_provider: Optional[RatesProvider] = None,
    ) -> Tuple[RatesProvider, CurveBuildingBlockBundle]:
        """Build trades from quotes, then calibrate the groups in order."""
        valuation_date = pd.Timestamp(valuation_date)
        if known_provider is None:
            known_provider = RatesProvider(valuation_date, fx_rates=fx_rates or {}, time_series=time_series or {})
        groups = [d.calibration_data(valuation_date, quotes) for d in definitions]
        dsc, fwd = merged_names(definitions)
        return self.calibrate(groups, known_provider, dsc, fwd)


def calibrate(
    groups: Sequence[Group],
    starting_provider: RatesProvider,
    discounting_names: Mapping[str, str],
    forward_names: Mapping[str, Set[str]],
    calculator: CalibrationMeasures = DEFAULT_MEASURES,
    root_finder_config: RootFinderConfig = DEFAULT_ROOT_FINDER_CONFIG,
) -> Tuple[RatesProvider, CurveBuildingBlockBundle]:
    return CurveCalibrator(root_finder_config, calculator).calibrate(
        groups, starting_provider, discounting_names, forward_names
    )


def calibration_report(
    provider: RatesProvider,
    groups: Sequence[Group],
    measures: CalibrationMeasures = DEFAULT_MEASURES,
) -> pd.DataFrame:
    """Measure of every calibration trade against a provider; zero when calibrated."""
    rows = []
    for g, group in enumerate(groups):
        for data in group:
            for t, trade in enumerate(data.trades):
                v = measures.value(trade, provider)
                rows.append(
                    {
                        "group": g,
                        "curve": data.name,
                        "trade": t,
                        "kind": getattr(trade, "kind", type(trade).__name__),
                        "maturity": getattr(trade, "maturity", np.nan),
                        "measure": v,
                        "abs_measure": abs(v),
                    }
                )
    return pd.DataFrame(rows, columns=["group", "curve", "trade", "kind", "maturity", "measure", "abs_measure"])
