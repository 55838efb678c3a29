"""Tests for batch import orchestration."""

import json

import pytest

from ops.repositories import ParcelRepository
from ops.supabase_integration import SupabaseDatabase
from processing.errors import ParseError, UnsupportedFormatError
from processing.parcel_import import GEOJSON, SHAPEFILE, ImportReport, ParcelImporter, detect_file_type
from processing.records import BatchResult, FeatureError

from .conftest import FakeAPIError, FakeSupabaseClient, make_feature, write_shapefile_zip

INSERT = "insert_parcel_with_geometry"
INSERT_SIMPLE = "insert_parcel_with_geometry_simple"


def collection_bytes(features):
    return json.dumps({"type": "FeatureCollection", "features": features}).encode("utf-8")


def importer_for(config, handlers):
    client = FakeSupabaseClient(handlers=handlers)
    repository = ParcelRepository(SupabaseDatabase(config, client=client), config)
    return ParcelImporter(repository, config), client


class TestDetectFileType:
    @pytest.mark.parametrize(
        "filename,expected",
        [
            ("parcels.geojson", GEOJSON),
            ("parcels.json", GEOJSON),
            ("PARCELS.GeoJSON", GEOJSON),
            ("parcels.zip", SHAPEFILE),
            ("Export.ZIP", SHAPEFILE),
        ],
    )
    def test_known_extensions(self, filename, expected):
        assert detect_file_type(filename) == expected

    @pytest.mark.parametrize("filename", ["parcels.kml", "parcels.shp", "parcels"])
    def test_unknown_extensions(self, filename):
        with pytest.raises(UnsupportedFormatError, match="Unsupported file format"):
            detect_file_type(filename)


class TestImportUpload:
    def test_all_records_imported(self, config, parcel_collection):
        importer, client = importer_for(config, {INSERT: [{"id": 1}]})

        report = importer.import_upload("parcels.geojson", json.dumps(parcel_collection).encode("utf-8"))

        assert report.imported == 2
        assert report.failed == 0
        assert report.total == 2
        assert report.to_dict()["fileType"] == "geojson"
        assert report.message == "Successfully imported 2 parcels from parcels.geojson. 0 failed."

        calls = client.calls_to(INSERT)
        assert [params["parcel_data"]["parcel_id"] for params in calls] == ["12345", "PTPN_002"]
        geometry = json.loads(calls[0]["geom_geojson"])
        assert geometry["type"] == "MultiPolygon"
        assert "geometry" not in calls[0]["parcel_data"]

    def test_storage_failure_does_not_stop_later_inserts(self, config):
        def reject_b(params):
            if params["parcel_data"]["parcel_id"] == "B":
                return FakeAPIError("duplicate key value", code="23505")
            return [{"id": 1}]

        importer, client = importer_for(config, {INSERT: reject_b, INSERT_SIMPLE: reject_b})
        features = [make_feature({"NIB": nib}) for nib in ("A", "B", "C")]

        report = importer.import_upload("parcels.geojson", collection_bytes(features))

        assert report.imported == 2
        assert report.failed == 1
        assert [params["parcel_data"]["parcel_id"] for params in client.calls_to(INSERT)] == ["A", "B", "C"]

        error = report.to_dict()["errors"][0]
        assert error["parcel_id"] == "B"
        assert "duplicate key value" in error["message"]
        assert error["details"] == {"code": "23505"}
        assert error["geometry_sample"].endswith("...")
        assert len(error["geometry_sample"]) <= 203

    def test_simple_insert_fallback(self, config):
        importer, client = importer_for(
            config, {INSERT: FakeAPIError("function does not exist"), INSERT_SIMPLE: [{"id": 9}]}
        )

        report = importer.import_upload("parcels.json", collection_bytes([make_feature({"NIB": "A"})]))

        assert report.imported == 1
        assert len(client.calls_to(INSERT)) == 1
        assert len(client.calls_to(INSERT_SIMPLE)) == 1

    def test_mapping_and_storage_errors_are_combined(self, config):
        line = {"type": "LineString", "coordinates": [[98.6, 3.6], [98.7, 3.7]]}
        features = [make_feature({"NIB": "A"}), make_feature({"NIB": "B"}, line)]
        importer, _ = importer_for(config, {INSERT: FakeAPIError("down"), INSERT_SIMPLE: FakeAPIError("down")})

        report = importer.import_upload("parcels.geojson", collection_bytes(features))

        assert report.imported == 0
        assert report.failed == 2
        assert report.total == 2
        errors = report.to_dict()["errors"]
        assert errors[0]["index"] == 1
        assert errors[1]["parcel_id"] == "A"

    def test_error_list_is_capped(self, config):
        line = {"type": "LineString", "coordinates": [[98.6, 3.6], [98.7, 3.7]]}
        features = [make_feature({}, line) for _ in range(12)] + [make_feature({"NIB": "OK"})]
        importer, _ = importer_for(config, {INSERT: [{"id": 1}]})

        summary = importer.import_upload("parcels.geojson", collection_bytes(features)).to_dict()

        assert summary["success"] is True
        assert summary["imported"] == 1
        assert summary["failed"] == 12
        assert summary["total"] == 13
        assert len(summary["errors"]) == 10
        assert summary["message"] == "Successfully imported 1 parcels from parcels.geojson. 12 failed."

    def test_unsupported_format(self, config):
        importer, client = importer_for(config, {})

        with pytest.raises(UnsupportedFormatError):
            importer.import_upload("parcels.kml", b"<kml/>")
        assert client.calls == []

    def test_invalid_geojson_aborts_before_inserts(self, config):
        importer, client = importer_for(config, {INSERT: [{"id": 1}]})

        with pytest.raises(ParseError):
            importer.import_upload("parcels.geojson", b"{not json")
        assert client.calls == []

    def test_shapefile_upload(self, config, tmp_path, projected_parcels):
        importer, client = importer_for(config, {INSERT: [{"id": 1}]})

        report = importer.import_upload("parcels.zip", write_shapefile_zip(tmp_path, projected_parcels))

        assert report.imported == 1
        assert report.file_type == "shapefile"
        assert client.calls_to(INSERT)[0]["parcel_data"]["hak"] == "HGU-77"

    def test_shapefile_text_is_rejected(self, config):
        importer, _ = importer_for(config, {})

        with pytest.raises(UnsupportedFormatError):
            importer.process_upload("parcels.zip", "PK...")

    def test_import_file(self, config, tmp_path):
        path = tmp_path / "parcels.geojson"
        path.write_bytes(collection_bytes([make_feature({"NIB": "A"})]))
        importer, _ = importer_for(config, {INSERT: [{"id": 1}]})

        report = importer.import_file(path)

        assert report.imported == 1
        assert "parcels.geojson" in report.message


class TestDryRun:
    def test_process_upload_without_repository(self, config):
        importer = ParcelImporter(None, config)

        batch = importer.process_upload("parcels.geojson", collection_bytes([make_feature({"NIB": "A"})]))

        assert [record.parcel_id for record in batch.records] == ["A"]

    def test_import_batch_requires_repository(self, config):
        importer = ParcelImporter(None, config)

        with pytest.raises(ValueError):
            importer.import_batch(BatchResult(), "parcels.geojson", GEOJSON)


class TestImportReport:
    def test_to_dict(self):
        report = ImportReport(
            imported=3,
            total=4,
            source_name="kebun.zip",
            file_type=SHAPEFILE,
            errors=[FeatureError(message="bad", index=2)],
        )

        assert report.to_dict() == {
            "success": True,
            "imported": 3,
            "failed": 1,
            "total": 4,
            "errors": [{"index": 2, "message": "bad"}],
            "message": "Successfully imported 3 parcels from kebun.zip. 1 failed.",
            "fileType": "shapefile",
        }
