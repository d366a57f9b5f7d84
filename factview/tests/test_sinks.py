import openpyxl
import petl as etl
import pytest

from factview import FactViewUserError, Sink


def test_sink_infers_type_from_extension(tmp_path):
    assert Sink(str(tmp_path / "out.csv")).type == "csv"
    assert Sink(str(tmp_path / "out.xlsx")).type == "xlsx"


def test_sink_infer_type_failure():
    with pytest.raises(FactViewUserError) as ex:
        Sink("out")
    assert getattr(ex.value, "code", None) == "E_SINK_TYPE_INFER"


def test_sink_rejects_unsupported_type(tmp_path):
    with pytest.raises(FactViewUserError) as ex:
        Sink(str(tmp_path / "out.csv"), type="json")
    assert getattr(ex.value, "code", None) == "E_SINK_TYPE_UNSUPPORTED"


def test_sink_requires_existing_directory(tmp_path):
    with pytest.raises(FactViewUserError) as ex:
        Sink(str(tmp_path / "missing" / "out.csv"))
    assert getattr(ex.value, "code", None) == "E_SINK_DIR_NOT_FOUND"


def test_sink_requires_writable_directory(monkeypatch, tmp_path):
    d = tmp_path / "dir"
    d.mkdir()
    monkeypatch.setattr("factview.models.sinks.os.access", lambda path, mode: False)

    with pytest.raises(FactViewUserError) as ex:
        Sink(str(d / "out.csv"))
    assert getattr(ex.value, "code", None) == "E_SINK_NOT_WRITABLE"


def test_sink_write_delegates_to_petl(monkeypatch, tmp_path):
    """write() delegates to petl.tocsv with provided options."""
    p = tmp_path / "out.csv"
    s = Sink(str(p), options={"delimiter": ";"})
    calls = []
    monkeypatch.setattr(
        "factview.models.sinks.etl.tocsv",
        lambda table, uri, **opts: calls.append((uri, opts)),
    )

    s.write([("a",), (1,)])

    assert calls == [(str(p), {"delimiter": ";"})]


def test_sink_write_wraps_unexpected_errors(monkeypatch, tmp_path):
    s = Sink(str(tmp_path / "out.csv"))

    def boom(*args, **kwargs):
        raise ValueError("bad delimiter")

    monkeypatch.setattr("factview.models.sinks.etl.tocsv", boom)

    with pytest.raises(FactViewUserError) as ex:
        s.write([("a",), (1,)])
    assert ex.value.code == "E_SINK_WRITE"
    assert "bad delimiter" in str(ex.value)


def test_xlsx_sink_replaces_existing_sheet_and_keeps_others(tmp_path):
    book = tmp_path / "report.xlsx"
    etl.toxlsx(etl.wrap([("k",), ("keep",)]), str(book), sheet="DATA")
    sink = Sink(book, options={"sheet": "VIEW"})

    sink.write(etl.wrap([("h",), ("first",)]))
    sink.write(etl.wrap([("h",), ("second",)]))

    assert list(etl.fromxlsx(str(book), sheet="VIEW")) == [("h",), ("second",)]
    assert list(etl.fromxlsx(str(book), sheet="DATA")) == [("k",), ("keep",)]


def test_xlsx_sink_creates_workbook_and_applies_formats_and_filter(tmp_path):
    book = tmp_path / "new.xlsx"
    sink = Sink(book, options={"sheet": "VIEW"})

    sink.write(
        etl.wrap([("name", "amt"), ("a", 1.5), ("b", 2)]),
        formats={"amt": "$#,##0.00"},
        auto_filter=True,
    )

    ws = openpyxl.load_workbook(str(book))["VIEW"]
    assert ws["B2"].number_format == "$#,##0.00"
    assert ws["B3"].number_format == "$#,##0.00"
    assert ws["B1"].number_format == "General"
    assert ws["A2"].number_format == "General"
    assert ws.auto_filter.ref == "A1:B3"


def test_csv_sink_ignores_formats(tmp_path):
    out = tmp_path / "out.csv"

    Sink(out).write(etl.wrap([("amt",), (1.5,)]), formats={"amt": "$#,##0.00"}, auto_filter=True)

    assert list(etl.fromcsv(str(out))) == [("amt",), ("1.5",)]
