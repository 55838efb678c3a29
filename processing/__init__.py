"""
Processing package for cadastral parcel ingestion

This package turns GeoJSON and zipped shapefile uploads into canonical parcel
records. The batch importer lives in ``processing.parcel_import`` and is
imported from there, since it depends on the ``ops`` repositories.
"""

__version__ = "0.1.0"

# Import key utilities for easy access
from .errors import (
    ArchiveError,
    CadastralIngestError,
    MappingError,
    ParseError,
    StorageError,
    UnsupportedFormatError,
)
from .field_mapper import map_field_names
from .geojson_processor import parse_geojson_text, process_geojson
from .geometry_normalizer import UTMApproximation, detect_coordinate_system, normalize_geometry
from .records import BatchResult, CanonicalParcelRecord, FeatureError
from .shapefile_extractor import extract_shapefile

__all__ = [
    "ArchiveError",
    "BatchResult",
    "CadastralIngestError",
    "CanonicalParcelRecord",
    "FeatureError",
    "MappingError",
    "ParseError",
    "StorageError",
    "UTMApproximation",
    "UnsupportedFormatError",
    "detect_coordinate_system",
    "extract_shapefile",
    "map_field_names",
    "normalize_geometry",
    "parse_geojson_text",
    "process_geojson",
]
