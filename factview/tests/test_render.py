from datetime import date

import petl as etl
import pytest

from factview import FactViewUserError, Sink
from factview.render import apply_column_formats, attach_filters, format_value, render_table


def _view():
    return render_table(
        ["Project", "Qty", "Total", "Due"],
        [
            ["Apollo", 3, 28.5, date(2024, 1, 31)],
            ["Gemini", "1200", -4, None],
            ["Apollo", 1, 1234567.891, "soon"],
        ],
    )


def test_format_value_patterns():
    assert format_value(1234.5, "#,##0.00") == "1,234.50"
    assert format_value("-3", "$#,##0.00") == "-$3.00"
    assert format_value(date(2024, 2, 1), "yyyy-mm-dd") == "2024-02-01"
    assert format_value(None, "$#,##0.00") == ""
    assert format_value("n/a", "#,##0.00") == "n/a"


def test_apply_column_formats_drives_display_rows():
    view = apply_column_formats(_view(), ["STRING", "NUMBER", "CURRENCY", "DATE"])

    assert view.formats["Total"] == "$#,##0.00"
    assert view.display_rows() == [
        ["Apollo", "3.00", "$28.50", "2024-01-31"],
        ["Gemini", "1,200.00", "-$4.00", ""],
        ["Apollo", "1.00", "$1,234,567.89", "soon"],
    ]


def test_apply_column_formats_rejects_wrong_width_and_unknown_type():
    with pytest.raises(FactViewUserError) as ex:
        apply_column_formats(_view(), ["STRING"])
    assert ex.value.code == "E_FORMAT_WIDTH"

    with pytest.raises(FactViewUserError) as ex:
        apply_column_formats(_view(), ["STRING", "NUMBER", "MONEY", "DATE"])
    assert ex.value.code == "E_FORMAT_TYPE"


def test_slicers_list_values_and_filter_rows():
    view = _view()
    project, = attach_filters(view, ["Project"])

    assert project.values() == ["Apollo", "Gemini"]
    assert view.filtered({"Project": ["Apollo"]}) == [
        ["Apollo", 3, 28.5, date(2024, 1, 31)],
        ["Apollo", 1, 1234567.891, "soon"],
    ]


def test_slicer_on_unknown_column():
    with pytest.raises(FactViewUserError) as ex:
        attach_filters(_view(), ["Owner"])
    assert ex.value.code == "E_SLICER_UNKNOWN_COL"


def test_filtered_requires_attached_slicer():
    with pytest.raises(FactViewUserError) as ex:
        _view().filtered({"Qty": [3]})
    assert ex.value.code == "E_SLICER_UNKNOWN"


def test_render_table_writes_through_sink(tmp_path):
    out = tmp_path / "view.csv"

    render_table(["a", "b"], [[1, None]], sink=Sink(out))

    assert list(etl.fromcsv(str(out))) == [("a", "b"), ("1", "")]


def test_write_formatted(tmp_path):
    out = tmp_path / "view.csv"
    view = apply_column_formats(render_table(["n"], [[1000]]), ["CURRENCY"])

    view.write(Sink(out), formatted=True)

    assert list(etl.fromcsv(str(out))) == [("n",), ("$1,000.00",)]


def test_write_without_sink():
    with pytest.raises(FactViewUserError) as ex:
        _view().write()
    assert ex.value.code == "E_SINK_MISSING"
