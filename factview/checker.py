from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from factview.models.view import DimensionTableSpec, FactTableSpec, OutputColumn, SlicerSpec


@dataclass
class Issue:
    code: str
    message: str
    path: Optional[str] = None  # e.g. "columns[3].column_name"

    @property
    def is_error(self) -> bool:
        return self.code.startswith("E_")


class ViewStaticChecker:
    """Checks a view definition for wiring mistakes without reading any data.

    ``E_*`` issues make the build fail or the presentation step refuse; ``W_*``
    issues build fine but usually render empty or surprising cells.
    """

    def check(
        self,
        fact: FactTableSpec,
        dimensions: Sequence[DimensionTableSpec],
        columns: Sequence[OutputColumn],
        slicers: Sequence[SlicerSpec] = (),
    ) -> List[Issue]:
        issues: List[Issue] = []

        retained: Dict[str, List[str]] = {fact.source_id: list(fact.key_columns)}
        dims_by_id: Dict[str, DimensionTableSpec] = {}
        for i, dim in enumerate(dimensions):
            if dim.source_id in dims_by_id or dim.source_id == fact.source_id:
                issues.append(Issue("W_DUP_SOURCE", f"Source {dim.source_id!r} is joined more than once.",
                                    path=f"dimensions[{i}].source_id"))
            dims_by_id[dim.source_id] = dim
            retained.setdefault(dim.source_id, list(dim.select_columns))

        # Attribute names visible to a join at its position in the order.
        available = set(fact.key_columns)
        for i, dim in enumerate(dimensions):
            if dim.join_column_fact not in available:
                issues.append(Issue(
                    "W_JOIN_COLUMN_UNKNOWN",
                    f"Join column {dim.join_column_fact!r} for {dim.source_id!r} is not kept by the fact table "
                    "or any earlier dimension; every row will miss this join.",
                    path=f"dimensions[{i}].join_column_fact",
                ))
            available.update(dim.select_columns)

        owners: Dict[str, List[str]] = {}
        for sid, cols in retained.items():
            for c in cols:
                owners.setdefault(c, []).append(sid)
        for name, sids in owners.items():
            # join columns shared by both sides are expected
            if len(sids) > 1 and not any(
                d.join_column_dim == name and d.source_id in sids for d in dimensions
            ):
                issues.append(Issue(
                    "W_ATTRIBUTE_COLLISION",
                    f"Column {name!r} is kept by {sids}; the last one joined wins.",
                ))

        seen_headers = set()
        for i, col in enumerate(columns):
            if col.header in seen_headers:
                issues.append(Issue("W_DUP_HEADER", f"Output header {col.header!r} is used twice.",
                                    path=f"columns[{i}].header"))
            seen_headers.add(col.header)

            if col.source == "fact" and col.column_name not in fact.key_columns:
                issues.append(Issue(
                    "W_COLUMN_NOT_RETAINED",
                    f"Column {col.column_name!r} is not among the fact table's key_columns.",
                    path=f"columns[{i}].column_name",
                ))
            elif col.source == "dimension":
                dim = dims_by_id.get(col.source_id)
                if dim is None:
                    issues.append(Issue(
                        "E_DIM_UNKNOWN",
                        f"Output column {col.header!r} names dimension {col.source_id!r}, which is not joined.",
                        path=f"columns[{i}].source_id",
                    ))
                elif col.column_name not in dim.select_columns:
                    issues.append(Issue(
                        "W_COLUMN_NOT_RETAINED",
                        f"Column {col.column_name!r} is not selected from {col.source_id!r}.",
                        path=f"columns[{i}].column_name",
                    ))
            elif col.source == "calculated":
                for ref in sorted(getattr(col.formula, "columns", ()) or ()):
                    if ref not in available:
                        issues.append(Issue(
                            "W_COLUMN_NOT_RETAINED",
                            f"Expression for {col.header!r} reads {ref!r}, which no table keeps.",
                            path=f"columns[{i}].expr",
                        ))

        for i, s in enumerate(slicers):
            if s.column_name not in seen_headers:
                issues.append(Issue(
                    "E_SLICER_UNKNOWN_COL",
                    f"Slicer column {s.column_name!r} is not an output header.",
                    path=f"slicers[{i}].column_name",
                ))

        return issues
