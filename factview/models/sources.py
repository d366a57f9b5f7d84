from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import petl as etl

from factview.errors import ColumnNotFound, FactViewUserError
from factview.models.tables import TableSnapshot
from factview.util import _infer_type_from_uri, _norm_path

logger = logging.getLogger(__name__)

SUPPORTED_SOURCE_TYPES = ("csv", "xlsx", "memory")


@dataclass(frozen=True)
class Source:
    """A named tabular source read through PETL.

    ``csv`` reads a delimited file, ``xlsx`` one worksheet of a workbook
    (``options={'sheet': 'PROJECTS'}``) and ``memory`` a header/rows pair held in
    ``options['data']`` (see :meth:`from_rows`).
    """
    uri: str
    type: Optional[str] = None
    options: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        uri = self.uri
        if isinstance(uri, os.PathLike):
            uri = os.fspath(uri)
        if not isinstance(uri, str) or not uri:
            raise FactViewUserError(
                "E_SOURCE_URI_TYPE",
                f"Source uri must be a non-empty string or path, got {type(self.uri).__name__}.",
                hint="Example: Source('data/projects.csv')",
            )
        object.__setattr__(self, "uri", uri)

        inferred = self.type or _infer_type_from_uri(uri)
        object.__setattr__(self, "type", inferred)
        if self.type is None:
            raise FactViewUserError(
                "E_SOURCE_TYPE_INFER",
                f"Could not infer Source type from uri='{uri}'.",
                hint="Provide type explicitly, e.g. Source('file.txt', type='csv').",
            )
        if self.type not in SUPPORTED_SOURCE_TYPES:
            raise FactViewUserError(
                "E_SOURCE_TYPE_UNSUPPORTED",
                f"Source type '{self.type}' is not supported.",
                hint="Supported source types: " + ", ".join(SUPPORTED_SOURCE_TYPES) + ".",
            )

        # Fail fast on files that are plainly missing.
        if self.type in ("csv", "xlsx") and not os.path.exists(uri):
            raise FactViewUserError(
                "E_SOURCE_NOT_FOUND",
                f"Source file not found: '{uri}'.",
                hint="Check the path, or the base directory the view definition is resolved against.",
            )

    @classmethod
    def from_rows(cls, name: str, header: Sequence[str], rows: Iterable[Sequence[Any]]) -> "Source":
        data = [tuple(header)] + [tuple(r) for r in rows]
        return cls(name, type="memory", options={"data": data})

    # ---------- PETL table (lazy) ----------
    def table(self):
        """
        Return a PETL table. PETL is lazy for file sources; reading occurs on iteration.
        """
        if self.type == "memory":
            return etl.wrap(self.options.get("data") or [()])
        try:
            if self.type == "csv":
                return etl.fromcsv(self.uri, **self.options)
            return etl.fromxlsx(self.uri, **self.options)
        except FileNotFoundError as e:
            raise FactViewUserError(
                "E_SOURCE_NOT_FOUND",
                f"Source file not found: '{self.uri}'.",
                hint="Check the path, or the base directory the view definition is resolved against.",
            ) from e

    def read(self) -> List[tuple]:
        """Header row followed by every data row, fully materialized."""
        try:
            return [tuple(r) for r in self.table()]
        except FactViewUserError:
            raise
        except FileNotFoundError as e:
            raise FactViewUserError(
                "E_SOURCE_NOT_FOUND",
                f"Source file not found: '{self.uri}'.",
                hint="Check the path, or the base directory the view definition is resolved against.",
            ) from e
        except Exception as e:
            raise FactViewUserError(
                "E_SOURCE_READ",
                f"Could not read source '{self}': {type(e).__name__}: {e}",
                hint="Check the file format and Source options (delimiter/encoding/sheet).",
            ) from e

    # ---------- Table loader ----------
    def load(self, columns: Sequence[str], *, name: Optional[str] = None) -> TableSnapshot:
        """Read the whole source and keep only ``columns``, in that order.

        Raises ColumnNotFound before returning anything if a requested column is
        absent from the native header.
        """
        label = name or self.label
        data = self.read()
        native = [str(h) for h in data[0]] if data else []

        positions = []
        for col in columns:
            try:
                positions.append(native.index(col))
            except ValueError:
                raise ColumnNotFound(col, label, native) from None

        rows = []
        for r in data[1:]:
            # short rows (ragged CSV) read as nulls
            rows.append(tuple(r[p] if p < len(r) else None for p in positions))

        logger.debug("loaded %s: %d rows, columns=%s", label, len(rows), list(columns))
        return TableSnapshot(label, tuple(columns), tuple(rows))

    @property
    def label(self) -> str:
        sheet = self.options.get("sheet") if self.type == "xlsx" else None
        return f"{self.uri}!{sheet}" if sheet else self.uri

    def __str__(self) -> str:
        return f'Source("{self.label}")  kind={self.type}'


@dataclass
class Catalog:
    """Resolves source ids (sheet names) to Sources.

    Order: an explicit entry in ``sources``; else the ``workbook`` sheet named by
    the id; else ``<base_dir>/<id>.csv``.
    """
    sources: Dict[str, Source] = field(default_factory=dict)
    workbook: Optional[str] = None
    base_dir: Optional[Path] = None

    def resolve(self, source_id: str) -> Source:
        src = self.sources.get(source_id)
        if src is not None:
            return src
        if self.workbook:
            return Source(
                _norm_path(self.workbook, base_dir=self.base_dir),
                type="xlsx",
                options={"sheet": source_id},
            )
        if self.base_dir is not None:
            path = Path(self.base_dir) / f"{source_id}.csv"
            if path.exists():
                return Source(str(path))
        raise FactViewUserError(
            "E_SOURCE_UNKNOWN",
            f"No source is configured for id {source_id!r}.",
            hint="Add it under 'sources', set a 'workbook', or place "
                 f"'{source_id}.csv' in the base directory.",
        )

    def load(self, source_id: str, columns: Sequence[str]) -> TableSnapshot:
        return self.resolve(source_id).load(columns, name=source_id)


def as_source(value: Union[str, os.PathLike, Dict[str, Any], Source], *, base_dir: Optional[Path] = None) -> Source:
    """Build a Source from a URI string/path, a mapping descriptor, or a Source."""
    if isinstance(value, Source):
        return value
    if isinstance(value, (str, os.PathLike)):
        return Source(_norm_path(os.fspath(value), base_dir=base_dir))
    if isinstance(value, dict):
        uri = value.get("uri")
        if not isinstance(uri, str) or not uri:
            raise FactViewUserError(
                "E_IR_SOURCE",
                "Source descriptor requires a non-empty 'uri' string.",
                hint="Example: sources: {PROJECTS: {uri: projects.csv}}",
            )
        return Source(
            _norm_path(uri, base_dir=base_dir),
            type=value.get("type"),
            options=dict(value.get("options") or {}),
        )
    raise FactViewUserError(
        "E_IR_SOURCE",
        f"Cannot interpret {value!r} as a source.",
        hint="Use a URI string like 'projects.csv' or a mapping like {'uri': 'projects.csv'}.",
    )
