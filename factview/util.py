from __future__ import annotations

from datetime import date, datetime
from pathlib import Path
from typing import Any, Optional

NULL_KEY = "null"


def _is_probably_url(s: str) -> bool:
    return s.startswith("http://") or s.startswith("https://") or s.startswith("s3://")


def _norm_path(p: str, *, base_dir: Optional[Path]) -> str:
    """Normalize a URI/path relative to a base directory (when provided).

    - Leaves absolute paths and URLs unchanged.
    - If base_dir is provided and p is relative, returns an absolute resolved path.
    """
    if not isinstance(p, str) or not p:
        return p
    if _is_probably_url(p):
        return p
    pp = Path(p)
    if pp.is_absolute():
        return str(pp)
    if base_dir is None:
        return p
    return str((Path(base_dir) / pp).resolve())


def _infer_type_from_uri(uri: str) -> Optional[str]:
    ext = Path(uri).suffix.lower()
    if ext == ".csv":
        return "csv"
    if ext in (".xlsx", ".xlsm"):
        return "xlsx"
    return None


def key_text(value: Any) -> str:
    """Textual form of a join key.

    Fact and dimension sides go through the same function, so a key read as
    ``1`` from a workbook matches ``"1"`` read from a CSV file.
    """
    if value is None:
        return NULL_KEY
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)
