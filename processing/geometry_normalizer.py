#!/usr/bin/env python3
"""
geometry_normalizer.py - Coordinate-system detection and MultiPolygon output

Parcel geometries reach us either in geographic longitude/latitude or in
projected UTM meters, and shapefiles from the land office rarely carry a
usable .prj. The coordinate system is therefore guessed from magnitude: a
longitude/latitude pair never exceeds 180/90, while UTM eastings and northings
are in the hundreds of thousands.

Projected coordinates are converted with a fixed linear approximation around
one central meridian (UTM zone 47N by default). It ignores the ellipsoid and
is only good for display-level accuracy near that meridian; it is not a
geodetic transform and must not be used for survey work.

Everything polygonal leaves this module as a MultiPolygon, which is what the
parcel table's geometry column stores.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
from loguru import logger

GEOGRAPHIC = "geographic"
PROJECTED = "projected"

POLYGONAL_TYPES = ("Polygon", "MultiPolygon")

DEFAULT_PROJECTED_THRESHOLD = 1000.0


@dataclass(frozen=True)
class UTMApproximation:
    """Constants of the linear UTM -> geographic approximation."""

    central_meridian: float = 99.0
    false_easting: float = 500000.0
    scale_factor: float = 0.9996
    meters_per_degree: float = 111319.9
    projected_threshold: float = DEFAULT_PROJECTED_THRESHOLD

    @classmethod
    def from_config(cls, config) -> "UTMApproximation":
        """Build the approximation from the ``ingest`` section of a Config."""
        utm = config.get_ingest_setting("utm") or {}
        defaults = cls()
        return cls(
            central_meridian=float(utm.get("central_meridian", defaults.central_meridian)),
            false_easting=float(utm.get("false_easting", defaults.false_easting)),
            scale_factor=float(utm.get("scale_factor", defaults.scale_factor)),
            meters_per_degree=float(utm.get("meters_per_degree", defaults.meters_per_degree)),
            projected_threshold=float(
                config.get_ingest_setting("projected_threshold") or defaults.projected_threshold
            ),
        )


DEFAULT_APPROXIMATION = UTMApproximation()


def detect_coordinate_system(
    position: Optional[Sequence[Any]], threshold: float = DEFAULT_PROJECTED_THRESHOLD
) -> str:
    """Classify a single position as geographic or projected.

    A missing or one-dimensional position counts as geographic.
    """
    if not position or len(position) < 2:
        return GEOGRAPHIC

    x, y = position[0], position[1]
    if abs(x) > threshold or abs(y) > threshold:
        return PROJECTED
    return GEOGRAPHIC


def first_position(geometry: Dict[str, Any]) -> Optional[Sequence[Any]]:
    """First position of the first ring of a Polygon or MultiPolygon."""
    coords = geometry.get("coordinates")
    depth = 2 if geometry.get("type") == "Polygon" else 3
    try:
        for _ in range(depth):
            coords = coords[0]
    except (IndexError, KeyError, TypeError):
        return None
    return coords


def convert_ring(ring: Sequence[Sequence[float]], params: UTMApproximation = DEFAULT_APPROXIMATION) -> List[List[float]]:
    """Convert one ring of UTM easting/northing pairs to longitude/latitude.

    Z and M ordinates are dropped.
    """
    positions = np.asarray(ring, dtype=float)
    if positions.size == 0:
        return []
    if positions.ndim != 2 or positions.shape[1] < 2:
        raise ValueError(f"Ring positions must have at least two ordinates, got shape {positions.shape}")

    eastings = positions[:, 0]
    northings = positions[:, 1]

    longitudes = params.central_meridian + (eastings - params.false_easting) / (
        params.scale_factor * params.meters_per_degree
    )
    latitudes = northings / params.meters_per_degree

    return np.column_stack((longitudes, latitudes)).tolist()


def convert_polygon(polygon: Sequence[Any], params: UTMApproximation = DEFAULT_APPROXIMATION) -> List[Any]:
    """Convert every ring of a polygon independently."""
    return [convert_ring(ring, params) for ring in polygon]


def normalize_geometry(
    geometry: Dict[str, Any], params: UTMApproximation = DEFAULT_APPROXIMATION
) -> Dict[str, Any]:
    """Normalize a Polygon/MultiPolygon into a geographic MultiPolygon.

    Other geometry types, and geometries without coordinates, are returned
    unchanged.

    Args:
        geometry: GeoJSON geometry object
        params: Approximation constants for projected input

    Returns:
        GeoJSON geometry object
    """
    if not geometry or not geometry.get("coordinates"):
        return geometry

    geometry_type = geometry.get("type")
    if geometry_type not in POLYGONAL_TYPES:
        return geometry

    coordinate_system = detect_coordinate_system(first_position(geometry), params.projected_threshold)

    if coordinate_system == GEOGRAPHIC:
        logger.debug("  🌐 Coordinates detected as geographic (WGS84)")
        if geometry_type == "Polygon":
            return {"type": "MultiPolygon", "coordinates": [geometry["coordinates"]]}
        return geometry

    logger.debug(
        f"  🔄 Coordinates detected as projected, approximating from central meridian "
        f"{params.central_meridian}°"
    )

    if geometry_type == "Polygon":
        return {"type": "MultiPolygon", "coordinates": [convert_polygon(geometry["coordinates"], params)]}

    return {
        "type": "MultiPolygon",
        "coordinates": [convert_polygon(polygon, params) for polygon in geometry["coordinates"]],
    }
