"""Presentation adapters: materialize a built view, format it, filter it."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import petl as etl

from factview.errors import FactViewUserError
from factview.expr import _looks_number, _to_number
from factview.models.sinks import Sink

logger = logging.getLogger(__name__)

NUMBER_FORMATS: Dict[str, str] = {
    "STRING": "@",
    "NUMBER": "#,##0.00",
    "CURRENCY": "$#,##0.00",
    "DATE": "yyyy-mm-dd",
}


def format_value(value: Any, pattern: Optional[str]) -> str:
    """Render one cell the way a spreadsheet would show it under ``pattern``."""
    if value is None or value == "":
        return ""
    if pattern in ("#,##0.00", "$#,##0.00") and _looks_number(value):
        n = _to_number(value)
        text = f"{abs(n):,.2f}"
        if pattern.startswith("$"):
            text = "$" + text
        return "-" + text if n < 0 else text
    if pattern == "yyyy-mm-dd" and isinstance(value, (datetime, date)):
        return value.strftime("%Y-%m-%d")
    return str(value)


@dataclass
class Slicer:
    """An interactive filter bound to one column of a rendered view."""
    view: "RenderedView" = field(repr=False, compare=False)
    column_name: str

    def values(self) -> List[Any]:
        """Distinct values of the column, in first-seen order."""
        seen: Dict[Any, None] = {}
        for v in etl.values(self.view.table(), self.column_name):
            seen.setdefault(v, None)
        return list(seen)


@dataclass
class RenderedView:
    header: List[str]
    rows: List[List[Any]]
    formats: Dict[str, str] = field(default_factory=dict)
    slicers: List[Slicer] = field(default_factory=list)
    sink: Optional[Sink] = None

    def table(self):
        return etl.wrap([tuple(self.header)] + [tuple(r) for r in self.rows])

    def display_rows(self) -> List[List[str]]:
        patterns = [self.formats.get(h) for h in self.header]
        return [[format_value(v, p) for v, p in zip(r, patterns)] for r in self.rows]

    def filtered(self, selections: Mapping[str, Iterable[Any]]) -> List[List[Any]]:
        """Rows whose value in every selected slicer column is among the allowed values."""
        bound = {s.column_name for s in self.slicers}
        tbl = self.table()
        for col, allowed in selections.items():
            if col not in bound:
                raise FactViewUserError(
                    "E_SLICER_UNKNOWN",
                    f"No slicer is attached to column {col!r}.",
                    hint="Slicers: " + (", ".join(sorted(bound)) or "(none)"),
                )
            tbl = etl.selectin(tbl, col, list(allowed))
        return [list(r) for r in etl.data(tbl)]

    def write(self, sink: Optional[Sink] = None, *, formatted: bool = False) -> None:
        target = sink or self.sink
        if target is None:
            raise FactViewUserError(
                "E_SINK_MISSING",
                "This view has no sink to write to.",
                hint="Pass a Sink, e.g. view.write(Sink('out/view.csv')).",
            )
        body = self.display_rows() if formatted else self.rows
        target.write(
            etl.wrap([tuple(self.header)] + [tuple(r) for r in body]),
            formats=self.formats,
            auto_filter=bool(self.slicers),
        )

    def __str__(self) -> str:
        return str(etl.look(etl.wrap([tuple(self.header)] + [tuple(r) for r in self.display_rows()])))


def render_table(header: Sequence[str], matrix: Sequence[Sequence[Any]], sink: Optional[Sink] = None) -> RenderedView:
    view = RenderedView(list(header), [list(r) for r in matrix], sink=sink)
    if sink is not None:
        view.write()
    return view


def apply_column_formats(view: RenderedView, types: Sequence[str]) -> RenderedView:
    if len(types) != len(view.header):
        raise FactViewUserError(
            "E_FORMAT_WIDTH",
            f"Got {len(types)} column type(s) for {len(view.header)} column(s).",
        )
    for h, t in zip(view.header, types):
        try:
            view.formats[h] = NUMBER_FORMATS[t]
        except KeyError:
            raise FactViewUserError(
                "E_FORMAT_TYPE",
                f"Unknown column type {t!r} for column {h!r}.",
                hint="Types: " + ", ".join(NUMBER_FORMATS) + ".",
            ) from None
    return view


def attach_filters(view: RenderedView, column_names: Sequence[str]) -> List[Slicer]:
    created = []
    for name in column_names:
        if name not in view.header:
            raise FactViewUserError(
                "E_SLICER_UNKNOWN_COL",
                f"Cannot attach a slicer to {name!r}: it is not an output column.",
                hint="Output columns: " + ", ".join(view.header),
            )
        slicer = Slicer(view, name)
        view.slicers.append(slicer)
        created.append(slicer)
    logger.debug("attached %d slicer(s): %s", len(created), list(column_names))
    return created
