"""Model source and property service collaborators."""

from .base import ModelSource, PropertyService
from .memory import InMemoryModelSource, InMemoryPropertyService
from .geodata import DataFramePropertyService, GeoDataFrameModelSource, load_model_layers

__all__ = [
    "ModelSource",
    "PropertyService",
    "InMemoryModelSource",
    "InMemoryPropertyService",
    "GeoDataFrameModelSource",
    "DataFramePropertyService",
    "load_model_layers",
]
