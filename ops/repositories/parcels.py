"""Parcel storage and spatial queries through PostGIS remote procedures."""

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from loguru import logger
from shapely import wkb
from shapely.geometry import mapping

from processing.errors import StorageError

from ..config_loader import Config
from ..supabase_integration import SupabaseDatabase


@dataclass(frozen=True)
class SpatialBounds:
    """Rectangular bounds in EPSG:4326 longitude/latitude."""

    min_lng: float
    min_lat: float
    max_lng: float
    max_lat: float


# Same column list as the map data loader: every attribute plus the geometry as GeoJSON text
EXPORT_COLUMNS = ["*", "geometry_geojson:ST_AsGeoJSON(geometry)"]


def _storage_error(function_name: str, error: Exception) -> StorageError:
    message = getattr(error, "message", None) or str(error)
    details = {
        key: getattr(error, key)
        for key in ("code", "details", "hint")
        if getattr(error, key, None)
    }
    return StorageError(f"{function_name} failed: {message}", details=details or None)


def _parse_geometry(value: Any) -> Optional[Dict[str, Any]]:
    """GeoJSON geometry from a JSON string, a GeoJSON object or hex-encoded WKB."""
    if value is None or isinstance(value, dict):
        return value
    try:
        return json.loads(value)
    except ValueError:
        return dict(mapping(wkb.loads(value, hex=True)))


def _extract_id(data: Any) -> Optional[int]:
    if isinstance(data, list):
        data = data[0] if data else None
    if isinstance(data, dict):
        data = data.get("id")
    if isinstance(data, bool) or data is None:
        return None
    try:
        return int(data)
    except (TypeError, ValueError):
        return None


class ParcelRepository:
    """
    Persistence gateway for cadastral parcels.

    Everything spatial is delegated to PostGIS functions exposed as RPCs; this
    class only shapes arguments and results. Failed calls are logged and
    re-raised as StorageError.

    Example:
        db = SupabaseDatabase(config)
        parcels = ParcelRepository(db, config)
        rows = parcels.get_parcels_in_bounds(SpatialBounds(98.5, 3.5, 98.7, 3.7))
    """

    def __init__(self, db: SupabaseDatabase, config: Optional[Config] = None):
        """Initialize the parcel repository.

        Args:
            db: SupabaseDatabase instance for executing calls
            config: Optional Config instance, defaults to the database's config
        """
        self.db = db
        self.config = config or db.config

    def _call(self, rpc_key: str, params: Dict[str, Any]) -> Any:
        function_name = self.config.get_rpc_name(rpc_key)
        try:
            return self.db.rpc(function_name, params)
        except Exception as e:
            raise _storage_error(function_name, e) from e

    def check_postgis_status(self) -> Dict[str, Any]:
        """Report whether PostGIS answers; never raises."""
        try:
            version = self._call("postgis_version", {})
        except StorageError as e:
            logger.warning(f"⚠️ PostGIS status check failed: {e}")
            return {"enabled": False, "error": str(e)}

        logger.debug(f"🗺️ PostGIS version: {version}")
        return {"enabled": True, "version": version}

    def insert_parcel_with_geometry(
        self, parcel_data: Dict[str, Any], geometry: Dict[str, Any]
    ) -> Optional[int]:
        """Insert one parcel with its GeoJSON geometry.

        The coordinate-detecting insert function is tried first; if the
        database rejects it, the WGS84-only variant is tried once.

        Returns:
            Stored row id when the function returns one
        """
        params = {"parcel_data": parcel_data, "geom_geojson": json.dumps(geometry)}
        parcel_id = parcel_data.get("parcel_id")

        try:
            data = self._call("insert_parcel", params)
        except StorageError as first_error:
            logger.debug(f"    🔄 First attempt failed for {parcel_id}, trying simple function: {first_error}")
            try:
                data = self._call("insert_parcel_simple", params)
            except StorageError as e:
                logger.error(f"    ❌ Insert error for {parcel_id}: {e}")
                raise

        return _extract_id(data)

    def get_parcels_in_bounds(self, bounds: SpatialBounds) -> List[Dict[str, Any]]:
        """Parcels intersecting a longitude/latitude rectangle."""
        data = self._call(
            "parcels_in_bounds",
            {
                "min_lng": bounds.min_lng,
                "min_lat": bounds.min_lat,
                "max_lng": bounds.max_lng,
                "max_lat": bounds.max_lat,
            },
        )
        return [self._with_geometry(row) for row in data or []]

    def find_intersecting_parcels(self, geometry: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Parcels intersecting a GeoJSON geometry."""
        data = self._call("intersecting_parcels", {"search_geom": json.dumps(geometry)})
        return [self._with_geometry(row) for row in data or []]

    def calculate_area(self, geometry: Dict[str, Any]) -> Optional[float]:
        """Area of a GeoJSON geometry in square meters, computed by PostGIS."""
        data = self._call("calculate_area", {"geom_geojson": json.dumps(geometry)})
        return None if data is None else float(data)

    def get_cadastral_stats(self) -> Dict[str, Any]:
        """Parcel totals and per-province breakdown."""
        data = self._call("statistics", {})
        return data or {
            "totalParcels": 0,
            "totalArea": 0,
            "avgParcelSize": 0,
            "parcelsByProvince": [],
        }

    def validate_and_repair_geometry(self, geometry: Dict[str, Any]) -> Dict[str, Any]:
        """Ask PostGIS whether a geometry is valid and for a repaired version if not."""
        data = self._call("validate_geometry", {"geom_geojson": json.dumps(geometry)}) or {}
        repaired = data.get("repaired_geom")
        return {
            "is_valid": bool(data.get("is_valid")),
            "repaired": _parse_geometry(repaired) if repaired else None,
        }

    def get_parcels_as_geojson(self, limit: int = 1000, offset: int = 0) -> Dict[str, Any]:
        """Most recent parcels as a FeatureCollection; rows without geometry are skipped."""
        table = self.config.get_table_name()
        try:
            rows = self.db.select(
                table=table,
                columns=EXPORT_COLUMNS,
                order_by="created_at",
                descending=True,
                limit=limit,
                offset=offset,
            )
        except Exception as e:
            raise _storage_error(f"select from {table}", e) from e

        features = []
        for row in rows or []:
            properties = dict(row)
            geometry = _parse_geometry(
                properties.pop("geometry_geojson", None) or properties.pop("geometry", None)
            )
            properties.pop("geometry", None)
            if geometry is None:
                continue
            features.append({"type": "Feature", "properties": properties, "geometry": geometry})

        return {"type": "FeatureCollection", "features": features}

    @staticmethod
    def _with_geometry(row: Dict[str, Any]) -> Dict[str, Any]:
        parsed = dict(row)
        geometry_json = parsed.pop("geometry_json", None)
        if geometry_json is not None:
            parsed["geometry"] = _parse_geometry(geometry_json)
        return parsed
