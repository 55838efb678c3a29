#!/usr/bin/env python3
"""
shapefile_extractor.py - Zipped shapefile extraction for cadastral uploads

Land-office exports arrive as a ZIP holding a .shp/.dbf pair (plus the usual
.shx, .prj and .cpg). The pair is staged in a temporary directory under a
common stem, decoded with geopandas, and every feature is sent through the
same record building as GeoJSON uploads.

The .prj member is read for the log only. Coordinate systems are detected
from the coordinates themselves by the geometry normalizer, because the .prj
files in circulation are frequently wrong or missing.
"""

import io
import math
import tempfile
import zipfile
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import geopandas as gpd
import numpy as np
import pandas as pd
from loguru import logger
from pyogrio import set_gdal_config_options
from shapely.geometry import mapping

from .errors import ArchiveError, ParseError
from .geometry_normalizer import DEFAULT_APPROXIMATION, UTMApproximation
from .records import PARCEL_ID_PREFIX, BatchResult, build_feature_batch

STAGED_STEM = "layer"

# Carried along with the .shp/.dbf pair when present
SIDECAR_EXTENSIONS = (".shx", ".cpg")


def find_member(names: List[str], extension: str) -> Optional[str]:
    """First archive member with the given extension, case-insensitively."""
    for name in names:
        if name.startswith("__MACOSX/"):
            continue
        if name.lower().endswith(extension):
            return name
    return None


def find_sidecar(names: List[str], shp_name: str, extension: str) -> Optional[str]:
    """Sidecar member sharing the .shp stem.

    A member with another stem is only accepted when it is the archive's only
    member with that extension, so two layers are never mixed.
    """
    stem = shp_name[: -len(".shp")].lower()
    candidates = []
    for name in names:
        if name.startswith("__MACOSX/") or not name.lower().endswith(extension):
            continue
        if name.lower() == stem + extension:
            return name
        candidates.append(name)
    return candidates[0] if len(candidates) == 1 else None


def _plain_value(value: Any) -> Any:
    """Turn a DataFrame cell into a plain Python value."""
    if isinstance(value, (list, tuple, dict)):
        return value
    if value is None or pd.isna(value):
        return None
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, datetime):
        if (value.hour, value.minute, value.second, value.microsecond) == (0, 0, 0, 0):
            return value.strftime("%Y-%m-%d")
        return value.isoformat()
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def _as_lists(obj: Any) -> Any:
    if isinstance(obj, (list, tuple)):
        return [_as_lists(item) for item in obj]
    return obj


def _geometry_dict(geom: Any) -> Optional[Dict[str, Any]]:
    if geom is None or geom.is_empty:
        return None
    geojson = mapping(geom)
    return {"type": geojson["type"], "coordinates": _as_lists(geojson["coordinates"])}


def iter_shapefile_features(gdf: gpd.GeoDataFrame) -> Iterator[Dict[str, Any]]:
    """Yield GeoJSON-like features with plain Python attribute values."""
    attributes = pd.DataFrame(gdf.drop(columns=gdf.geometry.name)).to_dict(orient="records")
    for properties, geom in zip(attributes, gdf.geometry):
        yield {
            "type": "Feature",
            "properties": {str(key): _plain_value(value) for key, value in properties.items()},
            "geometry": _geometry_dict(geom),
        }


def read_shapefile_archive(zip_bytes: bytes) -> gpd.GeoDataFrame:
    """Decode the .shp/.dbf pair of a zipped shapefile.

    Raises:
        ParseError: the bytes are not a ZIP archive or the shapefile cannot be decoded
        ArchiveError: the archive has no .shp or no .dbf member
    """
    try:
        archive = zipfile.ZipFile(io.BytesIO(zip_bytes))
    except zipfile.BadZipFile as e:
        raise ParseError(f"Upload is not a valid ZIP archive: {e}") from e

    with archive:
        names = [info.filename for info in archive.infolist() if not info.is_dir()]

        shp_name = find_member(names, ".shp")
        if shp_name is None:
            raise ArchiveError("No .shp file found in ZIP archive")

        dbf_name = find_sidecar(names, shp_name, ".dbf")
        if dbf_name is None:
            raise ArchiveError(f"No .dbf file found in ZIP archive for {shp_name}")

        prj_name = find_sidecar(names, shp_name, ".prj")
        if prj_name is not None:
            projection_info = archive.read(prj_name).decode("utf-8", errors="replace")
            logger.info(f"  📐 Found projection info: {projection_info[:100]}...")
        else:
            logger.info("  📐 No .prj member, coordinate system will be detected from coordinates")

        logger.info(f"  📂 Found shapefile: {shp_name}")

        with tempfile.TemporaryDirectory() as temp_dir:
            staged = Path(temp_dir) / f"{STAGED_STEM}.shp"
            staged.write_bytes(archive.read(shp_name))
            staged.with_suffix(".dbf").write_bytes(archive.read(dbf_name))

            has_index = False
            for extension in SIDECAR_EXTENSIONS:
                sidecar = find_sidecar(names, shp_name, extension)
                if sidecar is not None:
                    staged.with_suffix(extension).write_bytes(archive.read(sidecar))
                    has_index = has_index or extension == ".shx"

            if not has_index:
                logger.warning("  ⚠️ No .shx member, rebuilding the shape index")
                set_gdal_config_options({"SHAPE_RESTORE_SHX": True})

            try:
                gdf = gpd.read_file(staged, engine="pyogrio")
            except Exception as e:
                raise ParseError(f"Failed to process shapefile: {e}") from e
            finally:
                # GDAL config options are process-wide
                if not has_index:
                    set_gdal_config_options({"SHAPE_RESTORE_SHX": None})

    return gdf


def extract_shapefile(
    zip_bytes: bytes,
    params: UTMApproximation = DEFAULT_APPROXIMATION,
    prefix: str = PARCEL_ID_PREFIX,
) -> BatchResult:
    """Build parcel records from a zipped shapefile.

    Args:
        zip_bytes: Uploaded ZIP archive
        params: Approximation constants for projected coordinates
        prefix: Prefix of generated parcel identifiers

    Returns:
        BatchResult with records and per-feature errors
    """
    logger.info("🗜️ Processing shapefile ZIP...")

    gdf = read_shapefile_archive(zip_bytes)
    logger.info(f"  📊 Processing {len(gdf):,} features from shapefile")

    batch = build_feature_batch(iter_shapefile_features(gdf), params, prefix)

    logger.success(
        f"  ✅ Successfully processed {len(batch.records):,} features, {len(batch.errors):,} errors"
    )
    return batch
