import numpy as np
import pandas as pd
import pytest

from curve_calibration_engine.curves import InterpolatedCurve
from curve_calibration_engine.errors import ConfigurationError, DimensionError
from curve_calibration_engine.jacobian import CurveParameterSize
from curve_calibration_engine.provider import (
    DISCOUNT,
    INDEX,
    RatesProvider,
    RatesProviderTemplate,
    ZeroRateSensitivity,
)
from curve_calibration_engine.templates import InterpolatedCurveTemplate


@pytest.fixture(scope="module")
def eur_curve():
    return InterpolatedCurve("EUR-ESTR", [1.0, 5.0], [0.02, 0.025])


@pytest.fixture(scope="module")
def known_provider(eur_curve):
    stale_usd = InterpolatedCurve("USD-OLD", [1.0], [0.10])
    fixings = pd.Series([0.041, 0.042], index=pd.to_datetime(["2026-02-11", "2026-02-12"]))
    return RatesProvider(
        valuation_date=pd.Timestamp("2026-02-13"),
        discount_curves={"EUR": eur_curve, "USD": stale_usd},
        fx_rates={("EUR", "USD"): 1.08},
        time_series={"USD-LIBOR-3M": fixings},
    )


@pytest.fixture(scope="module")
def provider_template(known_provider):
    templates = [
        InterpolatedCurveTemplate("USD-OIS", [1.0, 2.0]),
        InterpolatedCurveTemplate("USD-LIBOR-3M", [0.25, 1.0, 2.0]),
    ]
    return RatesProviderTemplate(
        known_provider,
        templates,
        discounting_names={"USD-OIS": "USD"},
        forward_names={"USD-OIS": {"USD-FEDFUNDS"}, "USD-LIBOR-3M": {"USD-LIBOR-3M", "USD-LIBOR-3M-ALT"}},
    )


def test_template_curve_order(provider_template):
    assert provider_template.curve_order == [CurveParameterSize("USD-OIS", 2), CurveParameterSize("USD-LIBOR-3M", 3)]
    assert provider_template.parameter_count == 5


def test_template_slices_parameters_in_declared_order(provider_template):
    provider = provider_template.generate([0.01, 0.02, 0.03, 0.04, 0.05])

    np.testing.assert_allclose(provider.discount_curve("USD").y_values, [0.01, 0.02])
    np.testing.assert_allclose(provider.index_curve("USD-LIBOR-3M").y_values, [0.03, 0.04, 0.05])
    assert provider.index_curve("USD-FEDFUNDS") is provider.discount_curve("USD")
    assert provider.index_curve("USD-LIBOR-3M-ALT") is provider.index_curve("USD-LIBOR-3M")


def test_template_keeps_known_data(provider_template, known_provider, eur_curve):
    provider = provider_template.generate(np.zeros(5))

    # new USD curve overrides the stale one, EUR untouched
    assert provider.discount_curve("USD").name == "USD-OIS"
    assert provider.discount_curve("EUR") is eur_curve
    assert provider.fx_rate("USD", "EUR") == pytest.approx(1.0 / 1.08)
    assert len(provider.fixings("USD-LIBOR-3M")) == 2
    assert provider.valuation_date == known_provider.valuation_date

    # the known provider itself is unchanged
    assert known_provider.discount_curve("USD").name == "USD-OLD"


def test_template_rejects_wrong_length(provider_template):
    with pytest.raises(DimensionError):
        provider_template.generate([0.01, 0.02, 0.03, 0.04])


def test_missing_curves_and_fx_raise(known_provider):
    with pytest.raises(ConfigurationError):
        known_provider.discount_curve("GBP")
    with pytest.raises(ConfigurationError):
        known_provider.index_curve("USD-LIBOR-3M")
    with pytest.raises(ConfigurationError):
        known_provider.fx_rate("EUR", "GBP")
    assert known_provider.fx_rate("EUR", "EUR") == 1.0
    assert known_provider.fixings("GBP-SONIA").empty


def test_provider_is_read_only(known_provider):
    with pytest.raises(TypeError):
        known_provider.discount_curves["GBP"] = known_provider.discount_curve("EUR")


def test_curves_by_name(provider_template):
    provider = provider_template.generate(np.zeros(5))
    assert set(provider.curves()) == {"USD-OIS", "USD-LIBOR-3M", "EUR-ESTR"}


def test_parameter_sensitivity_sums_points_on_same_curve():
    c = InterpolatedCurve("USD-SINGLE", [1.0, 2.0], [0.01, 0.02])
    provider = RatesProvider(discount_curves={"USD": c}, index_curves={"USD-LIBOR-3M": c})
    points = [
        ZeroRateSensitivity(DISCOUNT, "USD", 1.5, 2.0),
        ZeroRateSensitivity(INDEX, "USD-LIBOR-3M", 2.0, 3.0),
        ZeroRateSensitivity(INDEX, "USD-LIBOR-3M", 1.0, -1.0),
    ]
    out = provider.parameter_sensitivity(points)
    assert list(out) == ["USD-SINGLE"]
    np.testing.assert_allclose(out["USD-SINGLE"], [1.0 - 1.0, 1.0 + 3.0])


def test_template_places_mapped_known_curves(known_provider):
    template = RatesProviderTemplate(
        known_provider,
        [InterpolatedCurveTemplate("USD-OIS", [1.0, 2.0])],
        discounting_names={"USD-OIS": "USD", "USD-OLD": "GBP"},
        forward_names={"EUR-ESTR": {"EUR-ESTR"}},
    )
    provider = template.generate([0.01, 0.02])

    assert provider.discount_curve("GBP").name == "USD-OLD"
    assert provider.discount_curve("USD").name == "USD-OIS"
    assert provider.index_curve("EUR-ESTR") is known_provider.discount_curve("EUR")
