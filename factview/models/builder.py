from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import petl as etl

from factview.models.sources import Catalog
from factview.models.tables import Row, TableSnapshot
from factview.models.view import DimensionTableSpec, FactTableSpec, OutputColumn
from factview.util import key_text

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DimensionIndex:
    """Rows of one dimension table keyed by the text of their join value."""
    source_id: str
    join_column: str
    header: Tuple[str, ...]
    rows: Dict[str, Row]

    def lookup(self, value: Any) -> Optional[Row]:
        return self.rows.get(key_text(value))

    def __len__(self) -> int:
        return len(self.rows)


def index_dimension(snapshot: TableSnapshot, join_column: str) -> DimensionIndex:
    """Index a loaded dimension table by ``join_column``.

    Equal keys overwrite silently: the last row loaded wins.
    """
    pos = snapshot.position(join_column)
    rows: Dict[str, Row] = {}
    for r in snapshot.rows:
        rows[key_text(r[pos])] = r
    return DimensionIndex(snapshot.source, join_column, snapshot.header, rows)


@dataclass(frozen=True)
class Join:
    join_column_fact: str
    index: DimensionIndex


def merge_row(fact_header: Sequence[str], fact_row: Sequence[Any], joins: Sequence[Join]) -> Dict[str, Any]:
    """Left-join one fact row against every dimension, in order.

    The fact-side key is read from the attributes merged so far, and matched
    dimension values overwrite attributes of the same name. An unmatched join
    leaves that dimension's columns out of the map.
    """
    attrs: Dict[str, Any] = dict(zip(fact_header, fact_row))
    for join in joins:
        if join.join_column_fact not in attrs:
            continue
        match = join.index.lookup(attrs[join.join_column_fact])
        if match is None:
            continue
        attrs.update(zip(join.index.header, match))
    return attrs


@dataclass(frozen=True)
class CellError:
    """A calculated column that raised while evaluating one row."""
    row_index: int
    row_key: Any
    header: str
    error_type: str
    message: str

    def __str__(self) -> str:
        return f"row {self.row_index} ({self.row_key!r}) column {self.header!r}: {self.error_type}: {self.message}"


@dataclass
class BuildContext:
    checkpoints: List[Tuple[str, Dict[str, Any]]] = field(default_factory=list)
    diagnostics: List[CellError] = field(default_factory=list)


def project_row(
    attrs: Mapping[str, Any],
    columns: Sequence[OutputColumn],
    *,
    context: Optional[BuildContext] = None,
    row_index: int = -1,
    row_key: Any = None,
) -> List[Any]:
    """One value per output column, in column order.

    Missing attributes project as None. A calculated column that raises yields
    None for this cell only; the failure is logged and recorded on ``context``.
    """
    view = MappingProxyType(dict(attrs))
    out: List[Any] = []
    for col in columns:
        if col.source != "calculated":
            out.append(view.get(col.column_name))
            continue
        try:
            out.append(col.formula(view))
        except Exception as e:
            logger.warning("calculated column %r failed on row %d (%r): %s", col.header, row_index, row_key, e)
            if context is not None:
                context.diagnostics.append(
                    CellError(row_index, row_key, col.header, type(e).__name__, str(e))
                )
            out.append(None)
    return out


@dataclass
class ViewResult:
    columns: Tuple[OutputColumn, ...]
    rows: List[List[Any]]
    context: BuildContext

    @property
    def header(self) -> List[str]:
        return [c.header for c in self.columns]

    @property
    def diagnostics(self) -> List[CellError]:
        return self.context.diagnostics

    def table(self):
        return etl.wrap([tuple(self.header)] + [tuple(r) for r in self.rows])

    def __len__(self) -> int:
        return len(self.rows)


class ViewBuilder:
    """Loads the fact and dimension tables, joins and projects every fact row."""

    def __init__(self, catalog: Catalog):
        self.catalog = catalog

    def load_dimensions(self, dimensions: Sequence[DimensionTableSpec], context: BuildContext) -> List[Join]:
        joins: List[Join] = []
        for dim in dimensions:
            snapshot = self.catalog.load(dim.source_id, dim.select_columns)
            index = index_dimension(snapshot, dim.join_column_dim)
            logger.debug("indexed %s on %r: %d rows, %d keys", dim.source_id, dim.join_column_dim,
                         len(snapshot), len(index))
            context.checkpoints.append(
                (
                    "dimension",
                    {
                        "source_id": dim.source_id,
                        "header": list(snapshot.header),
                        "rows": len(snapshot),
                        "keys": len(index),
                        "join": [dim.join_column_fact, dim.join_column_dim],
                    },
                )
            )
            joins.append(Join(dim.join_column_fact, index))
        return joins

    def build(
        self,
        fact: FactTableSpec,
        dimensions: Sequence[DimensionTableSpec],
        columns: Sequence[OutputColumn],
    ) -> ViewResult:
        ctx = BuildContext()
        logger.info("building view from %s with %d dimension(s), %d column(s)",
                    fact.source_id, len(dimensions), len(columns))

        facts = self.catalog.load(fact.source_id, fact.key_columns)
        ctx.checkpoints.append(
            ("fact", {"source_id": fact.source_id, "header": list(facts.header), "rows": len(facts)})
        )
        joins = self.load_dimensions(dimensions, ctx)

        matrix: List[List[Any]] = []
        for i, r in enumerate(facts.rows):
            attrs = merge_row(facts.header, r, joins)
            matrix.append(project_row(attrs, columns, context=ctx, row_index=i, row_key=r[0]))

        logger.info("built view: %d rows, %d failed cell(s)", len(matrix), len(ctx.diagnostics))
        return ViewResult(tuple(columns), matrix, ctx)
