from __future__ import annotations

import logging
import numpy as np
import pandas as pd
from typing import Dict, List, Mapping, Sequence

from .errors import ConfigurationError
from .nodes import CurveGroupDefinition

logger = logging.getLogger(__name__)


def bumped_quotes(quotes: Mapping[str, float], quote_id: str, shift: float) -> Dict[str, float]:
    if quote_id not in quotes:
        raise ConfigurationError(f"Missing market quote {quote_id!r}")
    out = dict(quotes)
    out[quote_id] = float(out[quote_id]) + shift
    return out


def _curve_parameters(calibrator, definitions, valuation_date, quotes, curve_name) -> np.ndarray:
    provider, _ = calibrator.calibrate_definitions(definitions, valuation_date, quotes)
    return np.asarray(provider.curves()[curve_name].y_values, dtype=float)


def quote_bump_jacobian(
    calibrator,
    definitions: Sequence[CurveGroupDefinition],
    valuation_date: pd.Timestamp,
    quotes: Mapping[str, float],
    curve_name: str,
    shift: float = 1e-6,
) -> pd.DataFrame:
    """
    d(curve parameters) / d(market quotes) of one curve by bump and recalibration.

    Each quote of the curve's own group and of the groups before it is bumped
    up and down by `shift`; the curve parameters of both recalibrations give a
    central difference. Rows are the curve's parameters, columns follow the
    same (quote_curve, quote) layout as the calibrated building block.
    """
    used: List[CurveGroupDefinition] = []
    for d in definitions:
        used.append(d)
        if any(e.name == curve_name for e in d.entries):
            break
    else:
        raise ConfigurationError("Curve is not part of any group definition.", curve_name=curve_name)

    columns = []
    cols = []
    for d in used:
        for e in d.entries:
            for i, q in enumerate(e.quote_ids()):
                up = _curve_parameters(calibrator, used, valuation_date, bumped_quotes(quotes, q, shift), curve_name)
                dn = _curve_parameters(calibrator, used, valuation_date, bumped_quotes(quotes, q, -shift), curve_name)
                cols.append((up - dn) / (2.0 * shift))
                columns.append((e.name, i))
                logger.debug("bumped quote %s for curve %s", q, curve_name)

    index = pd.MultiIndex.from_product([[curve_name], range(len(cols[0]))], names=["curve", "parameter"])
    return pd.DataFrame(
        np.column_stack(cols),
        index=index,
        columns=pd.MultiIndex.from_tuples(columns, names=["quote_curve", "quote"]),
    )
