import pandas as pd
import pytest

from curve_calibration_engine.errors import ConfigurationError
from curve_calibration_engine.instruments import Fra, IborFixingDeposit, Swap, TermDeposit
from curve_calibration_engine.nodes import (
    CurveGroupDefinition,
    CurveGroupEntry,
    FraNode,
    SwapNode,
    TermDepositNode,
    definitions_from_frame,
    merged_names,
    quotes_from_frame,
)


@pytest.fixture(scope="module")
def val_date():
    return pd.Timestamp("2026-02-13")


@pytest.fixture(scope="module")
def node_table():
    return pd.DataFrame(
        [
            {"group": 1, "curve": "USD-OIS", "type": "ois", "tenor": "1Y", "quote_id": "OIS1Y",
             "currency": "USD", "index": "USD-FEDFUNDS", "discount_currency": "USD", "indices": "USD-FEDFUNDS"},
            {"group": 1, "curve": "USD-OIS", "type": "ois", "tenor": "2Y", "quote_id": "OIS2Y",
             "currency": "USD", "index": "USD-FEDFUNDS"},
            {"group": 2, "curve": "USD-LIBOR-3M", "type": "ibor_fixing_deposit", "tenor": "3M", "quote_id": "L3M",
             "index": "USD-LIBOR-3M", "indices": "USD-LIBOR-3M, USD-LIBOR-3M-ALT"},
            {"group": 2, "curve": "USD-LIBOR-3M", "type": "fra", "start": "3M", "tenor": "6M", "quote_id": "FRA3x6",
             "index": "USD-LIBOR-3M", "spread": 0.0005},
            {"group": 2, "curve": "USD-LIBOR-3M", "type": "swap", "tenor": "2Y", "quote_id": "IRS2Y",
             "currency": "USD", "index": "USD-LIBOR-3M"},
        ]
    )


@pytest.fixture(scope="module")
def quotes():
    return {"OIS1Y": 0.040, "OIS2Y": 0.038, "L3M": 0.042, "FRA3x6": 0.043, "IRS2Y": 0.045}


def test_deposit_node_trade(val_date, quotes):
    node = TermDepositNode("USD", "6M", "OIS1Y", additional_spread=0.001)
    trade = node.trade(val_date, quotes)
    assert isinstance(trade, TermDeposit)
    assert trade.rate == pytest.approx(0.041)
    assert trade.start == 0.0
    assert trade.end == pytest.approx(node.node_time(val_date))
    assert trade.accrual == pytest.approx(181.0 / 360.0)
    assert node.label == "DEP-6M"


def test_fra_node_dates(val_date, quotes):
    node = FraNode("USD-LIBOR-3M", "3M", "6M", "FRA3x6")
    assert node.start_date(val_date) == pd.Timestamp("2026-05-13")
    assert node.end_date(val_date) == pd.Timestamp("2026-08-13")
    assert node.label == "FRA-3Mx6M"
    assert isinstance(node.trade(val_date, quotes), Fra)


def test_swap_node_spot_lag(val_date, quotes):
    node = SwapNode("USD", "USD-LIBOR-3M", "1Y", "IRS2Y", spot_lag_days=2)
    trade = node.trade(val_date, quotes)
    assert isinstance(trade, Swap)
    assert trade.float_starts[0] == pytest.approx(2.0 / 365.0)
    assert node.node_time(val_date) == pytest.approx(trade.maturity)


def test_missing_quote_raises(val_date):
    with pytest.raises(ConfigurationError):
        TermDepositNode("USD", "3M", "DEP3M").trade(val_date, {})


def test_entry_calibration_data_uses_quotes_as_guess(val_date, quotes):
    entry = CurveGroupEntry(
        "USD-DSC",
        [TermDepositNode("USD", "3M", "L3M"), TermDepositNode("USD", "6M", "FRA3x6", additional_spread=0.001)],
        discount_currency="USD",
    )
    data = entry.calibration_data(val_date, quotes)
    assert data.name == "USD-DSC"
    assert data.template.parameter_count == 2
    assert data.initial_guess == pytest.approx((0.042, 0.044))
    assert len(data.trades) == 2
    assert entry.quote_ids() == ["L3M", "FRA3x6"]


def test_entry_and_definition_validation():
    with pytest.raises(ConfigurationError):
        CurveGroupEntry("EMPTY", [])
    entry = CurveGroupEntry("A", [TermDepositNode("USD", "3M", "Q")])
    with pytest.raises(ConfigurationError):
        CurveGroupDefinition((entry, entry))


def test_definitions_from_frame(node_table, val_date, quotes):
    definitions = definitions_from_frame(node_table)
    assert [d.name for d in definitions] == ["1", "2"]

    ois, libor = definitions
    assert ois.discounting_names() == {"USD-OIS": "USD"}
    assert ois.forward_names() == {"USD-OIS": {"USD-FEDFUNDS"}}
    assert libor.discounting_names() == {}
    assert libor.forward_names() == {"USD-LIBOR-3M": {"USD-LIBOR-3M", "USD-LIBOR-3M-ALT"}}
    assert libor.quote_ids() == ["L3M", "FRA3x6", "IRS2Y"]

    ois_swap = ois.entries[0].nodes[0]
    assert (ois_swap.fixed_frequency, ois_swap.float_frequency, ois_swap.fixed_day_count) == ("12M", "12M", "ACT/360")

    fra_node = libor.entries[0].nodes[1]
    assert fra_node.additional_spread == pytest.approx(0.0005)
    assert libor.entries[0].nodes[0].additional_spread == 0.0

    data = libor.calibration_data(val_date, quotes)
    assert [type(t) for t in data[0].trades] == [IborFixingDeposit, Fra, Swap]


def test_definitions_from_frame_errors(node_table):
    with pytest.raises(ConfigurationError):
        definitions_from_frame(node_table.drop(columns=["quote_id"]))
    bad = node_table.copy()
    bad.loc[0, "type"] = "bond"
    with pytest.raises(ConfigurationError):
        definitions_from_frame(bad)


def test_merged_names(node_table):
    dsc, fwd = merged_names(definitions_from_frame(node_table))
    assert dsc == {"USD-OIS": "USD"}
    assert set(fwd) == {"USD-OIS", "USD-LIBOR-3M"}


def test_quotes_from_frame():
    frame = pd.DataFrame({"quote_id": ["A", "B"], "quote": [0.01, 0.02]})
    assert quotes_from_frame(frame) == {"A": 0.01, "B": 0.02}
    with pytest.raises(ConfigurationError):
        quotes_from_frame(pd.DataFrame({"quote_id": ["A", "A"], "quote": [0.01, 0.02]}))
    with pytest.raises(ConfigurationError):
        quotes_from_frame(pd.DataFrame({"id": ["A"], "value": [0.01]}))


def test_node_frame(node_table, val_date):
    _, libor = definitions_from_frame(node_table)
    frame = libor.node_frame(val_date)

    assert list(frame.columns) == ["group", "curve", "label", "quote_id", "end_date", "node_time"]
    assert list(frame["label"]) == ["FIX-3M", "FRA-3Mx6M", "SWAP-2Y"]
    assert list(frame["quote_id"]) == libor.quote_ids()
    assert set(frame["group"]) == {"2"}
    assert frame["node_time"].is_monotonic_increasing
    assert frame.loc[1, "end_date"] == pd.Timestamp("2026-08-13")
    assert list(frame["node_time"]) == pytest.approx(list(libor.entries[0].template(val_date).x_values))
