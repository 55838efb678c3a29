#!/usr/bin/env python3
"""
records.py - Canonical parcel records and per-feature error reporting

A CanonicalParcelRecord is built once per input feature during an import and
never mutated afterwards. Features that cannot be normalized produce a
FeatureError instead; ``build_feature_batch`` collects both, in input order.
"""

import json
import time
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Iterable, List, Optional, Tuple

from loguru import logger

from .errors import MappingError
from .field_mapper import map_field_names
from .geometry_normalizer import (
    DEFAULT_APPROXIMATION,
    POLYGONAL_TYPES,
    UTMApproximation,
    normalize_geometry,
)

DEFAULT_STATUS = "active"
PARCEL_ID_PREFIX = "PARCEL"

# Fallback order for the parcel identifier
IDENTIFIER_FIELDS = ("parcel_id", "nib", "hak")


@dataclass(frozen=True)
class CanonicalParcelRecord:
    """A normalized parcel ready for the parcel table."""

    parcel_id: str
    geometry: Dict[str, Any]
    provinsi: Optional[str] = None
    kabupaten: Optional[str] = None
    kecamatan: Optional[str] = None
    desa: Optional[str] = None
    nib: Optional[str] = None
    su: Optional[str] = None
    hak: Optional[str] = None
    tipe_hak: Optional[str] = None
    luas_tertulis: Optional[float] = None
    luas_peta: Optional[float] = None
    sk: Optional[str] = None
    tanggal_sk: Optional[str] = None
    tanggal_terbit_hak: Optional[str] = None
    berakhir_hak: Optional[str] = None
    pemilik: Optional[str] = None
    tipe_pemilik: Optional[str] = None
    guna_tanah_klasifikasi: Optional[str] = None
    guna_tanah_utama: Optional[str] = None
    penggunaan: Optional[str] = None
    terpetakan: Optional[str] = None
    kasus: Optional[str] = None
    pihak_bersengketa: List[Any] = field(default_factory=list)
    solusi: Optional[str] = None
    hasil: Optional[str] = None
    upaya_penanganan: Optional[str] = None
    no_peta: Optional[str] = None
    status: str = DEFAULT_STATUS
    keterangan: Optional[str] = None
    extras: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def column_names(cls) -> Tuple[str, ...]:
        """Columns sent to the database, in table order."""
        return tuple(f.name for f in fields(cls) if f.name not in ("geometry", "extras"))

    @classmethod
    def from_mapping(
        cls,
        parcel_id: str,
        mapped: Dict[str, Any],
        geometry: Dict[str, Any],
    ) -> "CanonicalParcelRecord":
        """Build a record from Field Mapper output and a normalized geometry."""
        columns = set(cls.column_names())
        values: Dict[str, Any] = {}
        extras: Dict[str, Any] = {}

        for key, value in mapped.items():
            if key == "parcel_id":
                continue
            if key in columns:
                values[key] = value
            elif key not in ("geometry", "extras"):
                extras[key] = value

        for name in _TEXT_COLUMNS:
            if name in values:
                values[name] = _as_text(values[name])

        if values.get("pihak_bersengketa") is None:
            values["pihak_bersengketa"] = []

        values["status"] = values.get("status") or DEFAULT_STATUS

        return cls(parcel_id=parcel_id, geometry=geometry, extras=extras, **values)

    def to_insert_payload(self) -> Dict[str, Any]:
        """Column values for the insert RPC, without geometry."""
        return {name: getattr(self, name) for name in self.column_names()}

    def geometry_json(self) -> str:
        """Geometry serialized as GeoJSON text."""
        return json.dumps(self.geometry)

    def to_feature(self) -> Dict[str, Any]:
        """The record as a GeoJSON Feature."""
        return {
            "type": "Feature",
            "properties": self.to_insert_payload(),
            "geometry": self.geometry,
        }


_TEXT_COLUMNS = tuple(
    f.name
    for f in fields(CanonicalParcelRecord)
    if f.name
    not in ("parcel_id", "geometry", "extras", "luas_tertulis", "luas_peta", "pihak_bersengketa")
)


def _as_text(value: Any) -> Optional[str]:
    """Render DBF numbers and other scalars as text; None stays None."""
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


@dataclass
class FeatureError:
    """A feature that could not be mapped, or a record the database rejected."""

    message: str
    index: Optional[int] = None
    parcel_id: Optional[str] = None
    details: Any = None
    feature: Any = None
    geometry_sample: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Error entry for the import report; absent context is omitted."""
        entry: Dict[str, Any] = {}
        if self.index is not None:
            entry["index"] = self.index
        if self.parcel_id is not None:
            entry["parcel_id"] = self.parcel_id
        entry["message"] = self.message
        for key in ("details", "feature", "geometry_sample"):
            value = getattr(self, key)
            if value is not None:
                entry[key] = value
        return entry


@dataclass
class BatchResult:
    """Records and per-feature errors of one extraction, in input order."""

    records: List[CanonicalParcelRecord] = field(default_factory=list)
    errors: List[FeatureError] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.records) + len(self.errors)


def batch_timestamp() -> int:
    """Milliseconds since the epoch, shared by all generated identifiers of a batch."""
    return int(time.time() * 1000)


def resolve_parcel_id(
    mapped: Dict[str, Any], index: int, timestamp: int, prefix: str = PARCEL_ID_PREFIX
) -> str:
    """Pick the parcel identifier, generating ``<prefix>_<timestamp>_<index>`` when absent."""
    for name in IDENTIFIER_FIELDS:
        value = _as_text(mapped.get(name))
        if value and value.strip():
            return value
    return f"{prefix}_{timestamp}_{index}"


def build_parcel_record(
    feature: Any,
    index: int,
    timestamp: int,
    params: UTMApproximation = DEFAULT_APPROXIMATION,
    prefix: str = PARCEL_ID_PREFIX,
) -> CanonicalParcelRecord:
    """Map, normalize and identify one feature.

    Raises:
        MappingError: the feature cannot become a parcel record
    """
    if not isinstance(feature, dict):
        raise MappingError(f"Feature {index} is not an object")

    properties = feature.get("properties") or {}
    if not isinstance(properties, dict):
        raise MappingError(f"Feature {index} has non-object properties")

    geometry = feature.get("geometry")
    if not isinstance(geometry, dict):
        raise MappingError(f"Feature {index} has no geometry")

    geometry_type = geometry.get("type")
    if geometry_type not in POLYGONAL_TYPES:
        raise MappingError(f"Unsupported geometry type {geometry_type!r}, expected Polygon or MultiPolygon")

    mapped = map_field_names(properties)

    try:
        normalized = normalize_geometry(geometry, params)
    except (ValueError, TypeError, IndexError) as e:
        raise MappingError(f"Invalid {geometry_type} coordinates: {e}") from e

    if normalized.get("type") != "MultiPolygon" or not normalized.get("coordinates"):
        raise MappingError(f"{geometry_type} has no coordinates")

    parcel_id = resolve_parcel_id(mapped, index, timestamp, prefix)
    return CanonicalParcelRecord.from_mapping(parcel_id, mapped, normalized)


def build_feature_batch(
    features: Iterable[Any],
    params: UTMApproximation = DEFAULT_APPROXIMATION,
    prefix: str = PARCEL_ID_PREFIX,
) -> BatchResult:
    """Build records for a sequence of features without aborting on bad ones."""
    result = BatchResult()
    timestamp = batch_timestamp()

    for index, feature in enumerate(features):
        try:
            record = build_parcel_record(feature, index, timestamp, params, prefix)
        except MappingError as e:
            logger.debug(f"    ⚠️ Skipping feature {index}: {e}")
            result.errors.append(
                FeatureError(
                    index=index,
                    message=f"Error processing feature {index}: {e}",
                    feature=feature,
                )
            )
            continue
        result.records.append(record)

    return result
