from __future__ import annotations

import difflib
from typing import Optional, Sequence


class FactViewUserError(Exception):
    """An instructional error intended for end users.

    Use this for mistakes in the view definition (invalid specs, missing columns, etc.).
    It carries a short error code and an optional hint to guide the user.
    """

    def __init__(self, code: str, message: str, *, hint: Optional[str] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.hint = hint

    def __str__(self) -> str:
        base = f"[{self.code}] {self.message}"
        if self.hint:
            return base + f"\nHint: {self.hint}"
        return base


class ColumnNotFound(FactViewUserError):
    """A configured column name does not exist in a source's header.

    This is a wiring mistake, so builds never recover from it.
    """

    def __init__(self, column: str, source: str, available: Sequence[str] = ()):
        self.column = column
        self.source = source
        super().__init__(
            "E_COLUMN_NOT_FOUND",
            f"Column {column!r} not found in source {source!r}.",
            hint=_suggest(column, available),
        )


def _suggest(column: str, available: Sequence[str]) -> Optional[str]:
    names = [str(a) for a in available]
    if not names:
        return None
    matches = difflib.get_close_matches(str(column), names, n=3, cutoff=0.6)
    if matches:
        return f"Did you mean {matches[0]!r}?"
    return "Available columns: " + ", ".join(names)
