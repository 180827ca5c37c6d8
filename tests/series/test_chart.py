"""Unit tests for chart grouping."""

import random

from pxtables.data.flatten import flatten_sparse
from pxtables.data.models import CanonicalRow, Frequency, RawDataRow
from pxtables.series.chart import group_for_chart, series_key, series_label


def _row(dimensions, labels, date, value):
    return CanonicalRow(
        id="|".join([*dimensions.values(), date]),
        dimensions=dimensions,
        dimension_labels=labels,
        date=date,
        date_label=date[:4],
        period=date[:4],
        frequency=Frequency.ANNUAL,
        value=value,
    )


def test_series_key_orders_by_code():
    """Keys sort dimensions by variable code."""
    row = _row({"Tiedot": "vaesto", "Alue": "FI"}, {}, "2020-01-01", 1.0)
    assert series_key(row) == "FI|vaesto"


def test_series_label_skips_totals_and_blanks():
    """Aggregate and empty labels do not appear in the legend."""
    row = _row(
        {"Alue": "FI", "Sukupuoli": "SSS", "Ika": "x"},
        {"Alue": "Finland", "Sukupuoli": "Total", "Ika": ""},
        "2020-01-01",
        1.0,
    )
    assert series_label(row) == "Finland"
    assert series_label(row, total_markers=set()) == "Finland, Total"

    only_totals = _row({"Alue": "SSS"}, {"Alue": "YHTEENSÄ"}, "2020-01-01", 1.0)
    assert series_label(only_totals) == "Series"


def test_group_for_chart_skips_unselected_and_nulls():
    """Unselected rows and missing values are left out."""
    rows = [
        _row({"Alue": "FI"}, {"Alue": "Finland"}, "2021-01-01", 2.0),
        _row({"Alue": "FI"}, {"Alue": "Finland"}, "2020-01-01", None),
        _row({"Alue": "SE"}, {"Alue": "Sweden"}, "2020-01-01", 3.0),
    ]
    grouped = group_for_chart(rows, ["FI|2021-01-01", "FI|2020-01-01"])
    assert list(grouped) == ["FI"]
    assert grouped["FI"].points == [("2021-01-01", 2.0)]
    assert grouped["FI"].dates == ["2021-01-01"]
    assert grouped["FI"].values == [2.0]


def test_group_for_chart_is_order_independent(population_metadata):
    """Shuffling the input yields the same keys and point sequences."""
    raw = [
        RawDataRow(key=[year, region], values=[str(index)])
        for index, (year, region) in enumerate(
            (year, region) for year in ("2020", "2021", "2022") for region in ("FI", "SE")
        )
    ]
    rows = flatten_sparse(raw, population_metadata)
    ids = [row.id for row in rows]
    expected = {key: series.points for key, series in group_for_chart(rows, ids).items()}

    shuffled = list(rows)
    random.Random(7).shuffle(shuffled)
    grouped = group_for_chart(shuffled, ids)

    assert list(grouped) == list(expected)
    assert {key: series.points for key, series in grouped.items()} == expected
    assert expected["FI"] == [("2020-01-01", 0.0), ("2021-01-01", 2.0), ("2022-01-01", 4.0)]


def test_series_key_escapes_separators():
    """Dimension values containing the separator map to different series."""
    left = _row({"A": "x|y", "B": "z"}, {}, "2020-01-01", 1.0)
    right = _row({"A": "x", "B": "y|z"}, {}, "2020-01-01", 2.0)
    assert series_key(left) != series_key(right)
