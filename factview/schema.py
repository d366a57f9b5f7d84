from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

from factview.errors import FactViewUserError
from factview.models.sinks import Sink
from factview.models.sources import Catalog, Source, as_source
from factview.models.view import DimensionTableSpec, FactTableSpec, OutputColumn, SlicerSpec
from factview.util import _norm_path

IR_VERSION = 0

# camelCase spellings accepted on input
_ALIASES = {
    "sourceId": "source_id",
    "keyColumns": "key_columns",
    "joinColumnFact": "join_column_fact",
    "joinColumnDim": "join_column_dim",
    "selectColumns": "select_columns",
    "columnName": "column_name",
}


def _snake(d: Dict[str, Any]) -> Dict[str, Any]:
    return {_ALIASES.get(k, k): v for k, v in d.items()}


def _require_mapping(d: Any, code: str, what: str, example: str) -> Dict[str, Any]:
    if not isinstance(d, dict):
        raise FactViewUserError(code, f"IR {what} must be a mapping.", hint=f"Example: {example}")
    return _snake(d)


def _str_list(v: Any, code: str, what: str) -> List[str]:
    if not isinstance(v, list) or not all(isinstance(x, str) and x for x in v):
        raise FactViewUserError(code, f"IR {what} must be a list of column name strings.", hint=repr(v))
    return list(v)


# ---------- to IR ----------
def _source_to_ir(src: Source) -> Dict[str, Any]:
    if src.type == "memory":
        raise FactViewUserError(
            "E_IR_SOURCE",
            f"In-memory source {src.uri!r} cannot be serialized.",
            hint="Point the source at a CSV file or workbook sheet instead.",
        )
    d: Dict[str, Any] = {"uri": src.uri}
    if src.type is not None:
        d["type"] = src.type
    if src.options:
        d["options"] = dict(src.options)
    return d


def _sink_to_ir(sink: Sink) -> Dict[str, Any]:
    d: Dict[str, Any] = {"uri": sink.uri}
    if sink.type is not None:
        d["type"] = sink.type
    if sink.options:
        d["options"] = dict(sink.options)
    return d


def _catalog_to_ir(catalog: Catalog) -> Dict[str, Any]:
    d: Dict[str, Any] = {}
    if catalog.base_dir is not None:
        d["base_dir"] = str(catalog.base_dir)
    if catalog.workbook:
        d["workbook"] = catalog.workbook
    if catalog.sources:
        d["sources"] = {sid: _source_to_ir(s) for sid, s in catalog.sources.items()}
    return d


def _fact_to_ir(fact: FactTableSpec) -> Dict[str, Any]:
    return {"source_id": fact.source_id, "key_columns": list(fact.key_columns)}


def _dimension_to_ir(dim: DimensionTableSpec) -> Dict[str, Any]:
    return {
        "source_id": dim.source_id,
        "join_column_fact": dim.join_column_fact,
        "join_column_dim": dim.join_column_dim,
        "select_columns": list(dim.select_columns),
    }


def _column_to_ir(col: OutputColumn) -> Dict[str, Any]:
    d: Dict[str, Any] = {"header": col.header, "source": col.source, "type": col.type}
    if col.source == "calculated":
        expr = getattr(col.formula, "expr", None)
        if not isinstance(expr, str):
            raise FactViewUserError(
                "E_IR_FORMULA",
                f"Calculated column {col.header!r} uses a Python callable, which cannot be serialized.",
                hint="Use an expression string, e.g. OutputColumn.calculated('Total', 'Quantity * Price').",
            )
        d["expr"] = expr
        return d
    if col.source_id:
        d["source_id"] = col.source_id
    d["column_name"] = col.column_name
    return d


# ---------- from IR ----------
def _fact_from_ir(d: Any) -> FactTableSpec:
    d = _require_mapping(d, "E_IR_FACT", "fact", "fact: {source_id: ITEMS, key_columns: [Item ID, Qty]}")
    return FactTableSpec(
        d.get("source_id"),
        _str_list(d.get("key_columns"), "E_IR_FACT", "fact.key_columns"),
    )


def _dimension_from_ir(d: Any, i: int) -> DimensionTableSpec:
    d = _require_mapping(
        d, "E_IR_DIMENSION", f"dimensions[{i}]",
        "{source_id: PROJECTS, join_column_fact: Project ID, join_column_dim: Project ID, select_columns: [...]}",
    )
    return DimensionTableSpec(
        d.get("source_id"),
        d.get("join_column_fact"),
        d.get("join_column_dim"),
        _str_list(d.get("select_columns"), "E_IR_DIMENSION", f"dimensions[{i}].select_columns"),
    )


def _column_from_ir(d: Any, i: int) -> OutputColumn:
    d = _require_mapping(d, "E_IR_COLUMN", f"columns[{i}]", "{header: Total, source: calculated, expr: 'a * b'}")
    if "formula" in d and "expr" not in d:
        d["expr"] = d.pop("formula")
    return OutputColumn(
        d.get("header"),
        d.get("source"),
        type=d.get("type", "STRING"),
        column_name=d.get("column_name"),
        source_id=d.get("source_id"),
        formula=d.get("expr"),
    )


def _slicer_from_ir(d: Any, i: int) -> SlicerSpec:
    if isinstance(d, str):
        return SlicerSpec(d)
    d = _require_mapping(d, "E_IR_SLICER", f"slicers[{i}]", "{column_name: Project Name}")
    name = d.get("column_name")
    if not isinstance(name, str) or not name:
        raise FactViewUserError("E_IR_SLICER", f"IR slicers[{i}] requires a column_name.")
    return SlicerSpec(name)


def _catalog_from_ir(view: Dict[str, Any], *, base_dir: Optional[Path]) -> Catalog:
    sources = view.get("sources") or {}
    if not isinstance(sources, dict):
        raise FactViewUserError(
            "E_IR_SOURCES",
            "IR view.sources must be a mapping of source id to uri or descriptor.",
            hint="Example: sources: {PROJECTS: projects.csv}",
        )
    workbook = view.get("workbook")
    if workbook is not None and not isinstance(workbook, str):
        raise FactViewUserError("E_IR_WORKBOOK", "IR view.workbook must be a path string.")
    csv_dir = view.get("base_dir")
    if csv_dir is not None and not isinstance(csv_dir, str):
        raise FactViewUserError("E_IR_BASE_DIR", "IR view.base_dir must be a path string.")
    return Catalog(
        {sid: as_source(s, base_dir=base_dir) for sid, s in sources.items()},
        workbook=_norm_path(workbook, base_dir=base_dir) if workbook else None,
        base_dir=Path(_norm_path(csv_dir, base_dir=base_dir)) if csv_dir else base_dir,
    )


def _sink_from_ir(d: Any, *, base_dir: Optional[Path]) -> Sink:
    if isinstance(d, str):
        d = {"uri": d}
    d = _require_mapping(d, "E_IR_SINK", "sink", "sink: {uri: out/view.csv}")
    uri = d.get("uri")
    if not isinstance(uri, str) or not uri:
        raise FactViewUserError("E_IR_SINK", "IR sink requires a non-empty 'uri' string.",
                                hint="Example: sink: {uri: out/view.csv}")
    return Sink(_norm_path(uri, base_dir=base_dir), type=d.get("type"), options=d.get("options") or {})


def _check_version(ir: Any) -> Dict[str, Any]:
    if not isinstance(ir, dict):
        raise FactViewUserError(
            "E_IR_ROOT",
            "IR must be a mapping at the root.",
            hint="Expected keys: factview, view.",
        )
    version = ir.get("factview", IR_VERSION)
    if version != IR_VERSION:
        raise FactViewUserError(
            "E_IR_VERSION",
            f"Unsupported IR version: {version!r}.",
            hint=f"Supported: factview: {IR_VERSION}",
        )
    view = ir.get("view")
    if not isinstance(view, dict):
        raise FactViewUserError(
            "E_IR_VIEW",
            "IR requires a 'view' mapping.",
            hint="Example: {factview: 0, view: {fact: {...}, dimensions: [...], columns: [...]}}",
        )
    for key in ("dimensions", "columns", "slicers"):
        if view.get(key) is not None and not isinstance(view[key], list):
            raise FactViewUserError("E_IR_VIEW", f"IR view.{key} must be a list.")
    return view
