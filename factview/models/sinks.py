from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import openpyxl
import petl as etl

from factview.errors import FactViewUserError
from factview.util import _infer_type_from_uri

logger = logging.getLogger(__name__)

SUPPORTED_SINK_TYPES = ("csv", "xlsx")


@dataclass(frozen=True)
class Sink:
    """Where a rendered view is written.

    ``xlsx`` sinks write one worksheet (``options={'sheet': 'VIEW'}``), replacing
    it when it exists and creating it (and the workbook) when it does not.
    """
    uri: str
    type: Optional[str] = None
    options: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if isinstance(self.uri, os.PathLike):
            object.__setattr__(self, "uri", os.fspath(self.uri))
        if not isinstance(self.uri, str) or not self.uri:
            raise FactViewUserError(
                "E_SINK_URI_TYPE",
                "Sink uri must be a non-empty string or path.",
                hint="Example: Sink('out/view.csv')",
            )
        inferred = self.type or _infer_type_from_uri(self.uri)
        object.__setattr__(self, "type", inferred)
        if self.type is None:
            raise FactViewUserError(
                "E_SINK_TYPE_INFER",
                f"Could not infer Sink type from uri='{self.uri}'.",
                hint="Provide type explicitly, e.g. Sink('out.data', type='csv').",
            )

        if self.type not in SUPPORTED_SINK_TYPES:
            raise FactViewUserError(
                "E_SINK_TYPE_UNSUPPORTED",
                f"Sink type '{self.type}' is not supported.",
                hint="Supported sink types: " + ", ".join(SUPPORTED_SINK_TYPES) + ".",
            )

        # Fail fast: ensure the output directory exists and is writable before building the view.
        parent = os.path.dirname(self.uri) or "."
        if not os.path.isdir(parent):
            raise FactViewUserError(
                "E_SINK_DIR_NOT_FOUND",
                f"Output directory does not exist: '{parent}'.",
                hint="Create the directory or choose a different output path.",
            )
        if not os.access(parent, os.W_OK):
            raise FactViewUserError(
                "E_SINK_NOT_WRITABLE",
                f"Output directory is not writable: '{parent}'.",
                hint="Check permissions or choose a different output location.",
            )

    def write(self, table, *, formats: Optional[Dict[str, str]] = None, auto_filter: bool = False) -> None:
        """Write ``table``. Workbook sinks also get ``formats`` (header -> number format)
        on the data cells and, with ``auto_filter``, a filter over the written range.
        """
        parent = os.path.dirname(self.uri) or "."
        try:
            if self.type == "csv":
                etl.tocsv(table, self.uri, **self.options)
            else:
                self._write_xlsx(table, formats or {}, auto_filter)
        except FileNotFoundError as e:
            raise FactViewUserError(
                "E_SINK_DIR_NOT_FOUND",
                f"Output directory does not exist: '{parent}'.",
                hint="Create the directory or choose a different output path.",
            ) from e
        except PermissionError as e:
            raise FactViewUserError(
                "E_SINK_NOT_WRITABLE",
                f"Cannot write to output directory: '{parent}'.",
                hint="Check permissions or choose a different output location.",
            ) from e
        except Exception as e:
            raise FactViewUserError(
                "E_SINK_WRITE",
                f"Could not write sink '{self.uri}': {type(e).__name__}: {e}",
                hint="Check file permissions and Sink options (delimiter/encoding/sheet).",
            ) from e
        logger.info("wrote view to %s", self)

    def __str__(self) -> str:
        sheet = self.options.get("sheet") if self.type == "xlsx" else None
        where = f"{self.uri}!{sheet}" if sheet else self.uri
        return f'Sink("{where}")  kind={self.type}'

    def _write_xlsx(self, table, formats: Dict[str, str], auto_filter: bool) -> None:
        sheet = self.options.get("sheet")
        if sheet:
            etl.toxlsx(table, self.uri, sheet=sheet, mode="replace")
        else:
            etl.toxlsx(table, self.uri, mode="overwrite")
        if formats or auto_filter:
            self._style_xlsx(sheet, formats, auto_filter)

    def _style_xlsx(self, sheet: Optional[str], formats: Dict[str, str], auto_filter: bool) -> None:
        """Set per-column number formats on data cells and an autofilter over the table."""
        wb = openpyxl.load_workbook(self.uri)
        ws = wb[sheet] if sheet else wb.active
        header = [c.value for c in ws[1]]
        for col_idx, name in enumerate(header, start=1):
            pattern = formats.get(name)
            if not pattern:
                continue
            for (cell,) in ws.iter_rows(min_row=2, min_col=col_idx, max_col=col_idx):
                cell.number_format = pattern
        if auto_filter:
            ws.auto_filter.ref = ws.dimensions
        wb.save(self.uri)
