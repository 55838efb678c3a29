#!/usr/bin/env python3
"""
parcel_upload.py - Cadastral Parcel Upload Tool

Usage:
    python -m processing.parcel_upload parcels.geojson
    python -m processing.parcel_upload parcels.zip --config ops/config.yaml
    python -m processing.parcel_upload parcels.zip --dry-run

Result: parcels in the cadastral_parcels table and a JSON import report on stdout.
"""

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

from loguru import logger

from ops import Config
from ops.repositories import ParcelRepository
from ops.supabase_integration import SupabaseDatabase

from .errors import CadastralIngestError
from .parcel_import import ParcelImporter, detect_file_type


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Import GeoJSON or zipped shapefile parcels into Supabase/PostGIS",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Import a GeoJSON FeatureCollection
  python -m processing.parcel_upload parcels.geojson

  # Check how a shapefile maps before importing it
  python -m processing.parcel_upload parcels.zip --dry-run
        """,
    )
    parser.add_argument("input_file", help="GeoJSON (.json, .geojson) or zipped shapefile (.zip)")
    parser.add_argument("--config", "-c", help="Configuration file path")
    parser.add_argument(
        "--dry-run", action="store_true", help="Map and normalize only, do not touch the database"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Log per-feature details")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """CLI interface"""
    args = build_parser().parse_args(argv)

    if not args.verbose:
        logger.remove()
        logger.add(sys.stderr, level="INFO")

    input_path = Path(args.input_file)
    if not input_path.exists():
        logger.error(f"❌ File not found: {input_path}")
        return 1

    try:
        config = Config(args.config)
        logger.info(f"📋 Using configuration: {config.config_path}")
        if args.verbose:
            config.print_config_summary()
    except (FileNotFoundError, ValueError) as e:
        logger.critical(f"❌ Configuration error: {e}")
        return 1

    logger.info("🗺️ Cadastral Parcel Upload Tool")
    logger.info("=" * 40)

    try:
        if args.dry_run:
            importer = ParcelImporter(None, config)
            batch = importer.process_upload(input_path.name, input_path.read_bytes())
            summary = {
                "dry_run": True,
                "fileType": detect_file_type(input_path.name),
                "total": batch.total,
                "records": len(batch.records),
                "failed": len(batch.errors),
                "errors": [error.to_dict() for error in batch.errors[: importer.error_sample_size]],
                "sample": [record.to_feature() for record in batch.records[:3]],
            }
            print(json.dumps(summary, indent=2, default=str))
            return 0

        try:
            repository = ParcelRepository(SupabaseDatabase(config), config)
        except ValueError as e:
            logger.critical(f"❌ Database configuration error: {e}")
            return 1

        status = repository.check_postgis_status()
        if not status["enabled"]:
            logger.warning("⚠️ PostGIS did not answer, inserts will probably fail")

        report = ParcelImporter(repository, config).import_file(input_path)
    except CadastralIngestError as e:
        logger.error(f"💥 Upload failed: {e}")
        print(json.dumps({"success": False, "message": str(e)}, indent=2))
        return 1

    print(json.dumps(report.to_dict(), indent=2, default=str))

    if report.failed:
        logger.warning(f"⚠️ {report.message}")
    else:
        logger.success(f"🎉 {report.message}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
