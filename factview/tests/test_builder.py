import logging

import pytest

from factview import (
    Catalog,
    ColumnNotFound,
    DimensionTableSpec,
    FactTableSpec,
    OutputColumn,
    Source,
    ViewBuilder,
    index_dimension,
    merge_row,
    project_row,
)
from factview.models.builder import BuildContext, Join
from factview.models.tables import TableSnapshot


def _catalog(project_id="P-1"):
    return Catalog({
        "PROJECT_ITEMS": Source.from_rows(
            "PROJECT_ITEMS", ["Line Item ID", "Quantity", "Project ID"], [("LI-1", 3, project_id)]
        ),
        "PROJECTS": Source.from_rows("PROJECTS", ["Project ID", "Project Name"], [("P-1", "Apollo")]),
        "LINE_ITEMS": Source.from_rows(
            "LINE_ITEMS",
            ["Line Item ID", "Line Item", "Description", "Price Act"],
            [("LI-1", "Widget", "A widget", 9.5)],
        ),
    })


FACT = FactTableSpec("PROJECT_ITEMS", ["Line Item ID", "Quantity", "Project ID"])
DIMS = [
    DimensionTableSpec("PROJECTS", "Project ID", "Project ID", ["Project ID", "Project Name"]),
    DimensionTableSpec("LINE_ITEMS", "Line Item ID", "Line Item ID",
                       ["Line Item ID", "Line Item", "Description", "Price Act"]),
]
COLUMNS = [
    OutputColumn.dimension("Project Name", "PROJECTS"),
    OutputColumn.dimension("Line Item", "LINE_ITEMS"),
    OutputColumn.fact("Quantity", type="NUMBER"),
    OutputColumn.calculated("Total", lambda r: r["Quantity"] * r["Price Act"], type="CURRENCY"),
]


def test_build_joins_dimensions_and_evaluates_calculated_columns():
    result = ViewBuilder(_catalog()).build(FACT, DIMS, COLUMNS)

    assert result.header == ["Project Name", "Line Item", "Quantity", "Total"]
    assert result.rows == [["Apollo", "Widget", 3, 28.5]]
    assert result.diagnostics == []


def test_unmatched_dimension_leaves_gap_without_error():
    result = ViewBuilder(_catalog(project_id="P-9")).build(FACT, DIMS, COLUMNS)

    assert result.rows == [[None, "Widget", 3, 28.5]]
    assert result.diagnostics == []


def test_every_fact_row_produces_one_output_row_in_order():
    cat = Catalog({
        "F": Source.from_rows("F", ["id", "k"], [(3, "a"), (1, "zz"), (2, "a"), (1, "a")]),
        "D": Source.from_rows("D", ["k", "label"], [("a", "A")]),
    })
    result = ViewBuilder(cat).build(
        FactTableSpec("F", ["id", "k"]),
        [DimensionTableSpec("D", "k", "k", ["k", "label"])],
        [OutputColumn.fact("id"), OutputColumn.dimension("label", "D")],
    )

    assert result.rows == [[3, "A"], [1, None], [2, "A"], [1, "A"]]


def test_projection_order_follows_output_columns_not_schema():
    result = ViewBuilder(_catalog()).build(FACT, DIMS, [
        OutputColumn.dimension("Price", "LINE_ITEMS", "Price Act"),
        OutputColumn.fact("Project ID"),
        OutputColumn.fact("Line Item ID"),
    ])
    assert result.rows == [[9.5, "P-1", "LI-1"]]


def test_calculated_failure_is_isolated_to_one_cell(caplog):
    cat = Catalog({
        "F": Source.from_rows("F", ["id", "qty"], [("a", 2), ("b", 0), ("c", 4)]),
    })
    columns = [
        OutputColumn.fact("id"),
        OutputColumn.calculated("inverse", lambda r: 1 / r["qty"]),
        OutputColumn.calculated("double", lambda r: r["qty"] * 2),
    ]

    with caplog.at_level(logging.WARNING, logger="factview.models.builder"):
        result = ViewBuilder(cat).build(FactTableSpec("F", ["id", "qty"]), [], columns)

    assert result.rows == [["a", 0.5, 4], ["b", None, 0], ["c", 0.25, 8]]
    assert len(result.diagnostics) == 1
    err = result.diagnostics[0]
    assert (err.row_index, err.row_key, err.header, err.error_type) == (1, "b", "inverse", "ZeroDivisionError")
    assert "inverse" in caplog.text


def test_missing_fact_column_fails_build():
    with pytest.raises(ColumnNotFound) as ex:
        ViewBuilder(_catalog()).build(FactTableSpec("PROJECT_ITEMS", ["Qty"]), [], [])
    assert ex.value.source == "PROJECT_ITEMS"
    assert ex.value.column == "Qty"


def test_missing_dimension_column_fails_build():
    dims = [DimensionTableSpec("PROJECTS", "Project ID", "Project ID", ["Project ID", "Owner"])]
    with pytest.raises(ColumnNotFound) as ex:
        ViewBuilder(_catalog()).build(FACT, dims, COLUMNS)
    assert (ex.value.source, ex.value.column) == ("PROJECTS", "Owner")


def test_build_records_checkpoints_per_source():
    result = ViewBuilder(_catalog()).build(FACT, DIMS, COLUMNS)

    kinds = [c[0] for c in result.context.checkpoints]
    assert kinds == ["fact", "dimension", "dimension"]
    assert result.context.checkpoints[1][1]["keys"] == 1


# ---------- index ----------
def test_index_last_row_wins_on_key_collision():
    snap = TableSnapshot("D", ["k", "v"], [("a", 1), ("b", 2), ("a", 3)])

    index = index_dimension(snap, "k")

    assert len(index) == 2
    assert index.lookup("a") == ("a", 3)
    assert index.header == ("k", "v")


def test_index_stringifies_keys():
    snap = TableSnapshot("D", ["k", "v"], [(1, "int"), (True, "bool"), (None, "null"), (2.0, "float")])

    index = index_dimension(snap, "k")

    assert set(index.rows) == {"1", "true", "null", "2"}
    assert index.lookup("2") == (2.0, "float")
    assert index.lookup(1.0) == (1, "int")


def test_index_unknown_join_column():
    with pytest.raises(ColumnNotFound):
        index_dimension(TableSnapshot("D", ["k"], [("a",)]), "key")


# ---------- merge ----------
def _join(source, header, rows, on, fact_col=None):
    return Join(fact_col or on, index_dimension(TableSnapshot(source, header, rows), on))


def test_merge_later_dimension_overwrites_same_name():
    joins = [
        _join("A", ["k", "name"], [("1", "from A")], "k"),
        _join("B", ["k", "name"], [("1", "from B")], "k"),
    ]
    attrs = merge_row(["k", "name"], ["1", "fact"], joins)
    assert attrs == {"k": "1", "name": "from B"}


def test_merge_can_join_on_column_from_earlier_dimension():
    joins = [
        _join("ITEMS", ["item", "vendor_id"], [("i1", "v7")], "item"),
        _join("VENDORS", ["id", "vendor"], [("v7", "Acme")], "id", fact_col="vendor_id"),
    ]
    attrs = merge_row(["item"], ["i1"], joins)
    assert attrs["vendor"] == "Acme"


def test_merge_chain_breaks_when_earlier_join_misses():
    joins = [
        _join("ITEMS", ["item", "vendor_id"], [("i1", "v7")], "item"),
        _join("VENDORS", ["id", "vendor"], [("v7", "Acme")], "id", fact_col="vendor_id"),
    ]
    attrs = merge_row(["item"], ["i2"], joins)
    assert attrs == {"item": "i2"}


# ---------- project ----------
def test_project_row_missing_attribute_is_none_and_records_nothing():
    ctx = BuildContext()
    row = project_row({"a": 1}, [OutputColumn.fact("b"), OutputColumn.fact("a")], context=ctx)
    assert row == [None, 1]
    assert ctx.diagnostics == []


def test_project_row_formula_sees_read_only_map():
    def mutate(r):
        r["x"] = 1

    ctx = BuildContext()
    row = project_row({"a": 1}, [OutputColumn.calculated("m", mutate), OutputColumn.fact("a")], context=ctx)
    assert row == [None, 1]
    assert ctx.diagnostics[0].error_type == "TypeError"
