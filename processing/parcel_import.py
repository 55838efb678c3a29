#!/usr/bin/env python3
"""
parcel_import.py - Batch import of cadastral uploads

Ties the extractors to the parcel repository: an upload is decoded into
records, each record is inserted on its own, and the outcome is summarized in
an ImportReport. Records are inserted sequentially; a rejected record is
reported and the next one is tried. There is no transaction across the batch,
so records stored before a failure stay stored.

Usage:
    from ops import Config
    from ops.repositories import ParcelRepository
    from ops.supabase_integration import SupabaseDatabase
    from processing.parcel_import import ParcelImporter

    config = Config()
    importer = ParcelImporter(ParcelRepository(SupabaseDatabase(config)), config)
    report = importer.import_file("parcels.zip")
    print(report.to_dict())
"""

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from loguru import logger

from ops.config_loader import Config
from ops.repositories import ParcelRepository

from .errors import StorageError, UnsupportedFormatError
from .geojson_processor import parse_geojson_text, process_geojson
from .geometry_normalizer import UTMApproximation
from .records import PARCEL_ID_PREFIX, BatchResult, FeatureError
from .shapefile_extractor import extract_shapefile

SHAPEFILE = "shapefile"
GEOJSON = "geojson"

GEOJSON_EXTENSIONS = (".json", ".geojson")
SHAPEFILE_EXTENSIONS = (".zip",)


def detect_file_type(filename: str) -> str:
    """Upload type from the file extension.

    Raises:
        UnsupportedFormatError: neither GeoJSON nor a zipped shapefile
    """
    name = filename.lower()
    if name.endswith(SHAPEFILE_EXTENSIONS):
        return SHAPEFILE
    if name.endswith(GEOJSON_EXTENSIONS):
        return GEOJSON
    raise UnsupportedFormatError(
        "Unsupported file format. Please use GeoJSON (.json or .geojson) or Shapefile (.zip)."
    )


@dataclass
class ImportReport:
    """Outcome of one import request."""

    imported: int
    total: int
    source_name: str
    file_type: str
    errors: List[FeatureError] = field(default_factory=list)
    error_sample_size: int = 10
    success: bool = True

    @property
    def failed(self) -> int:
        return len(self.errors)

    @property
    def message(self) -> str:
        return (
            f"Successfully imported {self.imported} parcels from {self.source_name}. "
            f"{self.failed} failed."
        )

    def to_dict(self) -> Dict[str, Any]:
        """Response shape of the upload endpoint; the error list is capped."""
        return {
            "success": self.success,
            "imported": self.imported,
            "failed": self.failed,
            "total": self.total,
            "errors": [error.to_dict() for error in self.errors[: self.error_sample_size]],
            "message": self.message,
            "fileType": self.file_type,
        }


class ParcelImporter:
    """
    Imports GeoJSON and zipped shapefile uploads into the parcel table.

    Responsibilities:
    - Dispatch an upload to the matching extractor
    - Insert every extracted record through the repository
    - Combine mapping and storage failures into one report
    """

    def __init__(self, repository: Optional[ParcelRepository], config: Optional[Config] = None):
        """
        Initialize the importer.

        Args:
            repository: ParcelRepository used for inserts (None allows dry runs only)
            config: Optional Config instance. If None, uses the repository's config.
        """
        if config is None:
            config = repository.config if repository is not None else Config()
        self.repository = repository
        self.config = config
        self.params = UTMApproximation.from_config(config)
        self.prefix = str(config.get_ingest_setting("parcel_id_prefix") or PARCEL_ID_PREFIX)
        self.error_sample_size = int(config.get_import_setting("error_sample_size"))
        self.geometry_sample_chars = int(config.get_import_setting("geometry_sample_chars"))

    def process_upload(self, filename: str, data: Union[bytes, str]) -> BatchResult:
        """Decode an upload into records without touching the database.

        Raises:
            UnsupportedFormatError: unknown file extension
            ParseError: the payload cannot be decoded at all
            ArchiveError: a shapefile ZIP lacks its .shp or .dbf member
        """
        file_type = detect_file_type(filename)
        logger.info(f"📥 Processing {filename} as {file_type}")

        if file_type == SHAPEFILE:
            if isinstance(data, str):
                raise UnsupportedFormatError("Shapefile uploads must be binary ZIP data")
            return extract_shapefile(data, self.params, self.prefix)

        geojson = parse_geojson_text(data)
        return process_geojson(geojson, self.params, self.prefix)

    def import_upload(self, filename: str, data: Union[bytes, str]) -> ImportReport:
        """Decode an upload and insert its records."""
        batch = self.process_upload(filename, data)
        return self.import_batch(batch, source_name=filename, file_type=detect_file_type(filename))

    def import_file(self, path: Union[str, Path]) -> ImportReport:
        """Read a file from disk and import it."""
        path = Path(path)
        logger.info(f"🗺️ Loading {path}")
        return self.import_upload(path.name, path.read_bytes())

    def import_batch(self, batch: BatchResult, source_name: str, file_type: str) -> ImportReport:
        """Insert the records of a batch one at a time.

        Args:
            batch: Records and mapping errors from an extractor
            source_name: Upload name used in the report message
            file_type: 'shapefile' or 'geojson'

        Returns:
            ImportReport combining mapping and storage failures
        """
        if self.repository is None:
            raise ValueError("ParcelImporter has no repository; use process_upload for dry runs")

        logger.info(f"🚀 Inserting {len(batch.records):,} parcels from {source_name}")
        start_time = time.time()

        imported = 0
        insert_errors: List[FeatureError] = []

        for record in batch.records:
            try:
                self.repository.insert_parcel_with_geometry(record.to_insert_payload(), record.geometry)
            except StorageError as e:
                insert_errors.append(
                    FeatureError(
                        parcel_id=record.parcel_id,
                        message=str(e),
                        details=e.details,
                        geometry_sample=record.geometry_json()[: self.geometry_sample_chars] + "...",
                    )
                )
                continue

            imported += 1
            logger.debug(f"    ✅ Inserted {record.parcel_id}")

        report = ImportReport(
            imported=imported,
            total=batch.total,
            source_name=source_name,
            file_type=file_type,
            errors=[*batch.errors, *insert_errors],
            error_sample_size=self.error_sample_size,
        )

        elapsed = time.time() - start_time
        if report.failed:
            logger.warning(f"⚠️ Import complete: {imported:,} imported, {report.failed:,} failed")
        else:
            logger.success(f"✅ Import complete: {imported:,} imported in {elapsed:.1f}s")

        return report
