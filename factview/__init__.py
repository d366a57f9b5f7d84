from factview.errors import ColumnNotFound, FactViewUserError
from factview.models.builder import ViewBuilder, ViewResult, index_dimension, merge_row, project_row
from factview.models.definition import ViewDefinition
from factview.models.sinks import Sink
from factview.models.sources import Catalog, Source
from factview.models.view import DimensionTableSpec, FactTableSpec, OutputColumn, SlicerSpec

__all__ = [
    "Catalog",
    "ColumnNotFound",
    "DimensionTableSpec",
    "FactTableSpec",
    "FactViewUserError",
    "OutputColumn",
    "Sink",
    "SlicerSpec",
    "Source",
    "ViewBuilder",
    "ViewDefinition",
    "ViewResult",
    "index_dimension",
    "merge_row",
    "project_row",
]
