from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator, Tuple

from factview.errors import ColumnNotFound, FactViewUserError

Row = Tuple[Any, ...]


@dataclass(frozen=True)
class TableSnapshot:
    """Header plus fully materialized rows of one loaded source.

    Built once per load and never mutated; rows are positionally aligned to
    ``header``.
    """
    source: str
    header: Tuple[str, ...]
    rows: Tuple[Row, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "header", tuple(self.header))
        object.__setattr__(self, "rows", tuple(tuple(r) for r in self.rows))
        if len(set(self.header)) != len(self.header):
            dupes = sorted({h for h in self.header if self.header.count(h) > 1})
            raise FactViewUserError(
                "E_SNAPSHOT_DUP_COL",
                f"Source {self.source!r} requests duplicate column(s): {dupes}.",
                hint="List each column once.",
            )
        width = len(self.header)
        for i, r in enumerate(self.rows):
            if len(r) != width:
                raise FactViewUserError(
                    "E_SNAPSHOT_ROW_WIDTH",
                    f"Row #{i} of {self.source!r} has {len(r)} values but the header has {width}.",
                )

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[Row]:
        return iter(self.rows)

    def position(self, column: str) -> int:
        try:
            return self.header.index(column)
        except ValueError:
            raise ColumnNotFound(column, self.source, self.header) from None

