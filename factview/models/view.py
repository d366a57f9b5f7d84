from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Tuple

from factview.errors import FactViewUserError
from factview.expr import Formula

SOURCE_KINDS = ("fact", "dimension", "calculated")
COLUMN_TYPES = ("STRING", "NUMBER", "CURRENCY", "DATE")

FormulaFn = Callable[[Mapping[str, Any]], Any]


@dataclass(frozen=True)
class FactTableSpec:
    """The fact source and the columns kept from it, in output order."""
    source_id: str
    key_columns: Tuple[str, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "key_columns", tuple(self.key_columns))
        if not isinstance(self.source_id, str) or not self.source_id:
            raise FactViewUserError(
                "E_FACT_SPEC",
                "Fact table spec requires a non-empty source_id.",
                hint="Example: FactTableSpec('PROJECT_ITEMS', ['Line Item ID', 'Quantity'])",
            )
        if not self.key_columns:
            raise FactViewUserError(
                "E_FACT_SPEC",
                f"Fact table {self.source_id!r} must keep at least one column.",
                hint="List the columns used by output columns and dimension joins.",
            )


@dataclass(frozen=True)
class DimensionTableSpec:
    """A lookup source joined onto each fact row.

    ``join_column_fact`` is read from the row's merged attributes, so it may name
    a column brought in by an earlier dimension.
    """
    source_id: str
    join_column_fact: str
    join_column_dim: str
    select_columns: Tuple[str, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "select_columns", tuple(self.select_columns))
        for name in ("source_id", "join_column_fact", "join_column_dim"):
            v = getattr(self, name)
            if not isinstance(v, str) or not v:
                raise FactViewUserError(
                    "E_DIM_SPEC",
                    f"Dimension spec requires a non-empty {name}.",
                    hint="Example: DimensionTableSpec('PROJECTS', 'Project ID', 'Project ID', ['Project ID', 'Project Name'])",
                )
        if self.join_column_dim not in self.select_columns:
            raise FactViewUserError(
                "E_DIM_SPEC",
                f"Dimension {self.source_id!r} must select its join column {self.join_column_dim!r}.",
                hint="Add the join column to select_columns.",
            )


@dataclass(frozen=True)
class OutputColumn:
    header: str
    source: str
    type: str = "STRING"
    column_name: Optional[str] = None
    source_id: Optional[str] = None
    formula: Optional[FormulaFn] = None

    def __post_init__(self) -> None:
        if not isinstance(self.header, str) or not self.header:
            raise FactViewUserError(
                "E_COLUMN_SPEC",
                "Output column requires a non-empty header.",
            )
        if self.source not in SOURCE_KINDS:
            raise FactViewUserError(
                "E_COLUMN_SPEC",
                f"Output column {self.header!r} has unknown source {self.source!r}.",
                hint="source must be one of: " + ", ".join(SOURCE_KINDS) + ".",
            )
        if self.type not in COLUMN_TYPES:
            raise FactViewUserError(
                "E_COLUMN_SPEC",
                f"Output column {self.header!r} has unknown type {self.type!r}.",
                hint="type must be one of: " + ", ".join(COLUMN_TYPES) + ".",
            )
        if self.source in ("fact", "dimension") and not self.column_name:
            raise FactViewUserError(
                "E_COLUMN_SPEC",
                f"Output column {self.header!r} ({self.source}) requires column_name.",
            )
        if self.source == "dimension" and not self.source_id:
            raise FactViewUserError(
                "E_COLUMN_SPEC",
                f"Output column {self.header!r} (dimension) requires source_id.",
                hint="Name the dimension table the column comes from.",
            )
        if self.source == "calculated":
            if isinstance(self.formula, str):
                object.__setattr__(self, "formula", Formula(self.formula))
            if not callable(self.formula):
                raise FactViewUserError(
                    "E_COLUMN_SPEC",
                    f"Output column {self.header!r} (calculated) requires a callable formula or expression.",
                    hint="Example: OutputColumn.calculated('Total', 'Quantity * [Price Act]', type='CURRENCY')",
                )

    @classmethod
    def fact(cls, header: str, column_name: Optional[str] = None, *, type: str = "STRING") -> "OutputColumn":
        return cls(header, "fact", type=type, column_name=column_name or header)

    @classmethod
    def dimension(cls, header: str, source_id: str, column_name: Optional[str] = None, *,
                  type: str = "STRING") -> "OutputColumn":
        return cls(header, "dimension", type=type, column_name=column_name or header, source_id=source_id)

    @classmethod
    def calculated(cls, header: str, formula, *, type: str = "NUMBER") -> "OutputColumn":
        return cls(header, "calculated", type=type, formula=formula)

    def __str__(self) -> str:
        if self.source == "calculated":
            return f"{self.header} = {getattr(self.formula, 'expr', '<callable>')}"
        where = f"{self.source_id}." if self.source_id else ""
        return f"{self.header} <- {where}{self.column_name}"


@dataclass(frozen=True)
class SlicerSpec:
    column_name: str
