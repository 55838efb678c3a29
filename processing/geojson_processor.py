#!/usr/bin/env python3
"""
geojson_processor.py - GeoJSON batch processing for cadastral uploads

Accepts a FeatureCollection or a single bare Feature, runs every feature
through the field mapper and geometry normalizer, and returns the records and
per-feature errors in input order. One bad feature never aborts the batch.

Usage:
    from processing.geojson_processor import parse_geojson_text, process_geojson

    geojson = parse_geojson_text(uploaded_bytes)
    batch = process_geojson(geojson)
"""

import json
from typing import Any, Dict, List, Union

from loguru import logger

from .errors import ParseError
from .geometry_normalizer import DEFAULT_APPROXIMATION, UTMApproximation
from .records import PARCEL_ID_PREFIX, BatchResult, build_feature_batch

BOM = "\ufeff"


def parse_geojson_text(data: Union[bytes, str]) -> Dict[str, Any]:
    """Decode and parse uploaded GeoJSON text.

    A leading byte order mark is stripped before parsing.

    Raises:
        ParseError: the payload is not UTF-8 JSON or not a JSON object
    """
    if isinstance(data, bytes):
        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ParseError(f"GeoJSON upload is not valid UTF-8: {e}") from e
    else:
        text = data[1:] if data.startswith(BOM) else data

    try:
        geojson = json.loads(text)
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid GeoJSON: {e}") from e

    if not isinstance(geojson, dict):
        raise ParseError("GeoJSON upload must be a FeatureCollection or Feature object")

    return geojson


def collect_features(geojson: Dict[str, Any]) -> List[Any]:
    """Features of a FeatureCollection, or a bare Feature as a one-element list."""
    if "features" in geojson:
        features = geojson["features"]
        if not isinstance(features, list):
            raise ParseError("FeatureCollection 'features' must be an array")
        return features

    if geojson.get("type") == "FeatureCollection":
        return []

    return [geojson]


def process_geojson(
    geojson: Dict[str, Any],
    params: UTMApproximation = DEFAULT_APPROXIMATION,
    prefix: str = PARCEL_ID_PREFIX,
) -> BatchResult:
    """Build parcel records from a GeoJSON document.

    Args:
        geojson: Parsed FeatureCollection or Feature
        params: Approximation constants for projected coordinates
        prefix: Prefix of generated parcel identifiers

    Returns:
        BatchResult with records and per-feature errors
    """
    if not isinstance(geojson, dict):
        raise ParseError("GeoJSON upload must be a FeatureCollection or Feature object")

    features = collect_features(geojson)
    logger.info(f"🗺️ Processing {len(features):,} GeoJSON features")

    batch = build_feature_batch(features, params, prefix)

    logger.info(f"  ✅ Processed {len(batch.records):,} features, {len(batch.errors):,} errors")
    return batch
