from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from factview.checker import Issue, ViewStaticChecker
from factview.errors import FactViewUserError
from factview.models.builder import ViewBuilder, ViewResult
from factview.models.sinks import Sink
from factview.models.sources import Catalog
from factview.models.view import DimensionTableSpec, FactTableSpec, OutputColumn, SlicerSpec
from factview.render import RenderedView, apply_column_formats, attach_filters, render_table
from factview.schema import (
    IR_VERSION,
    _catalog_from_ir,
    _catalog_to_ir,
    _check_version,
    _column_from_ir,
    _column_to_ir,
    _dimension_from_ir,
    _dimension_to_ir,
    _fact_from_ir,
    _fact_to_ir,
    _sink_from_ir,
    _sink_to_ir,
    _slicer_from_ir,
)

logger = logging.getLogger(__name__)


@dataclass
class ViewDefinition:
    """
    One fact table, its dimensions in join order, the output columns and slicers.
    """
    catalog: Catalog
    fact: FactTableSpec
    dimensions: List[DimensionTableSpec] = field(default_factory=list)
    columns: List[OutputColumn] = field(default_factory=list)
    slicers: List[SlicerSpec] = field(default_factory=list)
    sink: Optional[Sink] = None

    def __str__(self) -> str:
        parts = [f"View(fact={self.fact.source_id} {list(self.fact.key_columns)})"]
        for d in self.dimensions:
            parts.append(f"  join {d.source_id} on {d.join_column_fact} = {d.join_column_dim}")
        for c in self.columns:
            parts.append(f"  -> {c}")
        if self.sink is not None:
            parts.append(f"  => {self.sink}")
        return "\n".join(parts)

    def check(self, *, raise_on_error: bool = False) -> List[Issue]:
        """Static wiring issues. With ``raise_on_error``, any E_* issue raises E_VIEW_CHECK."""
        issues = ViewStaticChecker().check(self.fact, self.dimensions, self.columns, self.slicers)
        errors = [i for i in issues if i.is_error]
        if raise_on_error and errors:
            raise FactViewUserError(
                "E_VIEW_CHECK",
                f"View definition has {len(errors)} error(s).",
                hint="; ".join(f"{i.code}: {i.message}" for i in errors),
            )
        return issues

    def build(self) -> ViewResult:
        return ViewBuilder(self.catalog).build(self.fact, self.dimensions, self.columns)

    def run(self) -> RenderedView:
        """Build the view, then render, format, attach slicers and write the sink."""
        result = self.build()
        view = render_table(result.header, result.rows)
        apply_column_formats(view, [c.type for c in self.columns])
        attach_filters(view, [s.column_name for s in self.slicers])
        if self.sink is not None:
            view.sink = self.sink
            view.write()
        for err in result.diagnostics:
            logger.info("empty cell: %s", err)
        return view

    def to_ir(self) -> Dict[str, Any]:
        """Serialize this view to a YAML-friendly IR (dict)."""
        view: Dict[str, Any] = _catalog_to_ir(self.catalog)
        view["fact"] = _fact_to_ir(self.fact)
        view["dimensions"] = [_dimension_to_ir(d) for d in self.dimensions]
        view["columns"] = [_column_to_ir(c) for c in self.columns]
        if self.slicers:
            view["slicers"] = [{"column_name": s.column_name} for s in self.slicers]
        if self.sink is not None:
            view["sink"] = _sink_to_ir(self.sink)
        return {"factview": IR_VERSION, "view": view}

    @classmethod
    def from_ir(cls, ir: Dict[str, Any], *, base_dir: Optional[Path] = None) -> "ViewDefinition":
        """Deserialize a view from IR (dict). Relative URIs resolve against base_dir."""
        view = _check_version(ir)
        return cls(
            _catalog_from_ir(view, base_dir=base_dir),
            _fact_from_ir(view.get("fact")),
            [_dimension_from_ir(d, i) for i, d in enumerate(view.get("dimensions") or [])],
            [_column_from_ir(c, i) for i, c in enumerate(view.get("columns") or [])],
            [_slicer_from_ir(s, i) for i, s in enumerate(view.get("slicers") or [])],
            _sink_from_ir(view["sink"], base_dir=base_dir) if view.get("sink") else None,
        )

    def to_yaml(self, path: Optional[Union[str, Path]] = None) -> str:
        """Dump IR to YAML string. If `path` is provided, also write the file."""
        text = yaml.safe_dump(self.to_ir(), sort_keys=False)
        if path is not None:
            Path(path).write_text(text, encoding="utf-8")
        return text

    @classmethod
    def from_yaml(cls, text_or_path: Union[str, Path], *, base_dir: Optional[Path] = None) -> "ViewDefinition":
        """Load a view from YAML string or file path."""
        text = str(text_or_path)
        if isinstance(text_or_path, Path) or "\n" not in text:
            p = Path(text_or_path)
            try:
                is_file = p.is_file()
            except OSError:
                # inline YAML longer than a file name allows
                is_file = False
            if is_file:
                base_dir = base_dir or p.parent
                text = p.read_text(encoding="utf-8")
        try:
            ir = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise FactViewUserError(
                "E_YAML_PARSE",
                f"Failed to parse YAML: {e}",
                hint="Check indentation and quoting.",
            ) from e
        return cls.from_ir(ir, base_dir=base_dir)

    def save_yaml(self, path: Union[str, Path]) -> None:
        """Write YAML IR to a file."""
        self.to_yaml(path)

    @classmethod
    def load_yaml(cls, path: Union[str, Path]) -> "ViewDefinition":
        """Load YAML IR from a file."""
        p = Path(path)
        return cls.from_yaml(p.read_text(encoding="utf-8"), base_dir=p.parent)
