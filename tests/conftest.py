"""Shared fixtures for the cadastral ingestion test suite."""

import io
import zipfile
from pathlib import Path

import geopandas as gpd
import pytest
from shapely.geometry import Polygon

from ops import Config
from ops.repositories import ParcelRepository
from ops.supabase_integration import SupabaseDatabase


# ═══════════════════════════════════════════════════
# Fake supabase-py client
# ═══════════════════════════════════════════════════

class FakeAPIError(Exception):
    """Shaped like postgrest's APIError."""

    def __init__(self, message, code=None, details=None, hint=None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details
        self.hint = hint


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeRpcCall:
    def __init__(self, client, name, params):
        self.client = client
        self.name = name
        self.params = params

    def execute(self):
        self.client.calls.append((self.name, self.params))
        handler = self.client.handlers.get(self.name)
        if isinstance(handler, Exception):
            raise handler
        result = handler(self.params) if callable(handler) else handler
        if isinstance(result, Exception):
            raise result
        return FakeResponse(result)


class FakeTableQuery:
    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.operations = []

    def select(self, columns):
        self.operations.append(("select", columns))
        return self

    def order(self, column, desc=False):
        self.operations.append(("order", column, desc))
        return self

    def range(self, start, end):
        self.operations.append(("range", start, end))
        return self

    def execute(self):
        self.client.queries.append((self.table, self.operations))
        return FakeResponse(self.client.rows.get(self.table, []))


class FakeSupabaseClient:
    """Records RPC calls and answers them from a handler table."""

    def __init__(self, handlers=None, rows=None):
        self.handlers = handlers or {}
        self.rows = rows or {}
        self.calls = []
        self.queries = []

    def rpc(self, name, params):
        return FakeRpcCall(self, name, params)

    def table(self, name):
        return FakeTableQuery(self, name)

    def calls_to(self, name):
        return [params for called, params in self.calls if called == name]


# ═══════════════════════════════════════════════════
# Configuration and repository fixtures
# ═══════════════════════════════════════════════════

@pytest.fixture
def config():
    """Config loaded from the packaged ops/config.yaml."""
    return Config(Path(__file__).parent.parent / "ops" / "config.yaml")


@pytest.fixture
def fake_client():
    return FakeSupabaseClient(handlers={"insert_parcel_with_geometry": [{"id": 1}]})


@pytest.fixture
def repository(config, fake_client):
    return ParcelRepository(SupabaseDatabase(config, client=fake_client), config)


# ═══════════════════════════════════════════════════
# GeoJSON fixtures
# ═══════════════════════════════════════════════════

SQUARE = [[[98.6, 3.6], [98.61, 3.6], [98.61, 3.61], [98.6, 3.61], [98.6, 3.6]]]

UTM_SQUARE = [
    [
        [450000.0, 400000.0],
        [450100.0, 400000.0],
        [450100.0, 400100.0],
        [450000.0, 400100.0],
        [450000.0, 400000.0],
    ]
]


def make_feature(properties=None, geometry=None):
    return {
        "type": "Feature",
        "properties": properties if properties is not None else {},
        "geometry": geometry if geometry is not None else {"type": "Polygon", "coordinates": SQUARE},
    }


@pytest.fixture
def parcel_collection():
    """Two parcels in the upper-case DBF dialect and the camelCase web dialect."""
    return {
        "type": "FeatureCollection",
        "features": [
            make_feature(
                {
                    "NIB": "12345",
                    "PROPINSI": "Sumatera Utara",
                    "KABUPATEN": "Langkat",
                    "PEMILIK": "PT Perkebunan Nusantara",
                    "LUASPETA": "1,487.5 m2",
                    "TANGGALSK": "2023-01-15",
                    "Pihak": "[]",
                }
            ),
            make_feature(
                {
                    "parcel_id": "PTPN_002",
                    "tipeHak": "HM",
                    "luasTertulis": "2500 m²",
                    "berakhirHak": "-",
                    "pihak": '["Ahmad Subagio", "Siti Aminah"]',
                    "owner_name": "Ahmad Subagio",
                    "status": "pending",
                },
                {"type": "MultiPolygon", "coordinates": [SQUARE]},
            ),
        ],
    }


# ═══════════════════════════════════════════════════
# Shapefile fixtures
# ═══════════════════════════════════════════════════

def write_shapefile_zip(tmp_path, gdf, stem="parcels", rename=None, skip=()):
    """Write a GeoDataFrame as a shapefile and zip its members.

    Args:
        rename: optional callable applied to each member name inside the ZIP
        skip: extensions to leave out of the archive
    """
    shape_dir = tmp_path / "shape"
    shape_dir.mkdir(exist_ok=True)
    gdf.to_file(shape_dir / f"{stem}.shp", driver="ESRI Shapefile")

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for member in sorted(shape_dir.iterdir()):
            if member.suffix.lower() in skip:
                continue
            name = f"{stem}/{member.name}"
            archive.write(member, rename(name) if rename else name)
    return buffer.getvalue()


def zip_members(members):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, data in members.items():
            archive.writestr(name, data)
    return buffer.getvalue()


@pytest.fixture
def geographic_parcels():
    return gpd.GeoDataFrame(
        {
            "NIB": ["12345", None],
            "PEMILIK": ["Ahmad", "Siti Aminah"],
            "LUASPETA": ["2500", "1,487.5 m2"],
            "TANGGALSK": ["2023-01-15", "-"],
        },
        geometry=[
            Polygon([(98.6, 3.6), (98.61, 3.6), (98.61, 3.61), (98.6, 3.61)]),
            Polygon([(98.62, 3.6), (98.63, 3.6), (98.63, 3.61), (98.62, 3.61)]),
        ],
    )


@pytest.fixture
def projected_parcels():
    return gpd.GeoDataFrame(
        {"HAK": ["HGU-77"], "LUASTERTUL": [10000.0]},
        geometry=[Polygon([(450000, 400000), (450100, 400000), (450100, 400100), (450000, 400100)])],
    )
