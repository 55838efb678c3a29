#!/usr/bin/env python3
"""
Field Registry for the Cadastral Ingestion Pipeline

Canonical parcel columns and the source attribute names that resolve to them.
Cadastral exports arrive in several dialects: the upper-case abbreviated codes
of shapefile DBF columns (10 characters max, e.g. ``TGLTERBITH``), snake_case
names, camelCase names from older web exports, and English aliases from the
first version of the parcel table (``owner_name``, ``land_use``, ``area_sqm``).

This module is data only. New aliases go into ``CANONICAL_FIELDS``; the
coercion rules live in ``field_mapper``.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple


@dataclass(frozen=True)
class CanonicalField:
    """A canonical parcel column and the source names that map onto it."""

    name: str
    category: str  # 'identity', 'administrative', 'legal', 'area', 'ownership', 'land_use', 'dispute', 'bookkeeping'
    kind: str  # 'text', 'area', 'date', 'parties'
    description: str
    aliases: Tuple[str, ...] = ()


CANONICAL_FIELDS: Tuple[CanonicalField, ...] = (
    CanonicalField("parcel_id", "identity", "text", "Parcel identifier, unique within a dataset"),
    # Administrative location
    CanonicalField("provinsi", "administrative", "text", "Province", ("PROPINSI", "PROVINSI")),
    CanonicalField("kabupaten", "administrative", "text", "Regency / city", ("KABUPATEN",)),
    CanonicalField("kecamatan", "administrative", "text", "District", ("KECAMATAN",)),
    CanonicalField("desa", "administrative", "text", "Village", ("DESA", "KELURAHAN")),
    # Legal identifiers
    CanonicalField("nib", "legal", "text", "National parcel identification number", ("NIB",)),
    CanonicalField("su", "legal", "text", "Survey (surat ukur) number", ("SU",)),
    CanonicalField("hak", "legal", "text", "Rights certificate number", ("HAK",)),
    CanonicalField("tipe_hak", "legal", "text", "Rights type code", ("TIPEHAK", "TIPE_HAK")),
    CanonicalField("sk", "legal", "text", "Decree (surat keputusan) number", ("SK",)),
    CanonicalField("tanggal_sk", "legal", "date", "Decree date", ("TANGGALSK", "TANGGAL_SK")),
    CanonicalField(
        "tanggal_terbit_hak",
        "legal",
        "date",
        "Rights issuance date",
        ("TGLTERBITH", "TANGGALTERBITHAK", "TANGGAL_TERBIT_HAK"),
    ),
    CanonicalField(
        "berakhir_hak", "legal", "date", "Rights expiry date", ("BERAKHIRHA", "BERAKHIRHAK", "BERAKHIR_HAK")
    ),
    # Areas (square meters)
    CanonicalField(
        "luas_tertulis",
        "area",
        "area",
        "Area written on the certificate",
        ("LUASTERTUL", "LUAS_TERTUL", "LUASTERTULIS", "LUAS_TERTULIS"),
    ),
    CanonicalField("luas_peta", "area", "area", "Area measured on the map", ("LUASPETA", "LUAS_PETA", "AREA_SQM")),
    # Ownership
    CanonicalField("pemilik", "ownership", "text", "Owner name", ("PEMILIK", "OWNER_NAME")),
    CanonicalField(
        "tipe_pemilik", "ownership", "text", "Owner type", ("TIPEPEMILI", "TIPEPEMILIK", "TIPE_PEMILIK")
    ),
    # Land use
    CanonicalField(
        "guna_tanah_klasifikasi",
        "land_use",
        "text",
        "Land use classification",
        ("GUNATANAHK", "GUNA_TANAH_KLASIFIKASI"),
    ),
    CanonicalField(
        "guna_tanah_utama", "land_use", "text", "Primary land use", ("GUNATANAHU", "GUNA_TANAH_UTAMA")
    ),
    CanonicalField("penggunaan", "land_use", "text", "Current usage status", ("PENGGUNAAN", "LAND_USE")),
    CanonicalField("terpetakan", "land_use", "text", "Whether the parcel is mapped", ("TERPETAKAN",)),
    # Dispute tracking
    CanonicalField("kasus", "dispute", "text", "Case description", ("KASUS",)),
    CanonicalField(
        "pihak_bersengketa", "dispute", "parties", "Parties to the dispute", ("PIHAK", "PIHAK_BERSENGKETA")
    ),
    CanonicalField("solusi", "dispute", "text", "Resolution", ("SOLUSI",)),
    CanonicalField("hasil", "dispute", "text", "Outcome", ("HASIL",)),
    CanonicalField("upaya_penanganan", "dispute", "text", "Remediation notes", ("UPAYA_PENANGANAN",)),
    # Bookkeeping
    CanonicalField("no_peta", "bookkeeping", "text", "Map sheet reference", ("NOPETA", "NO_PETA")),
    CanonicalField("status", "bookkeeping", "text", "Lifecycle status", ("STATUS",)),
    CanonicalField("keterangan", "bookkeeping", "text", "Remarks", ("KETERANGAN",)),
)

FIELDS_BY_NAME: Dict[str, CanonicalField] = {field.name: field for field in CANONICAL_FIELDS}


def _build_alias_table() -> Dict[str, str]:
    table: Dict[str, str] = {}
    for field in CANONICAL_FIELDS:
        # Canonical names resolve to themselves so mapping is idempotent
        for alias in (field.name, *field.aliases):
            key = alias.upper()
            if key in table and table[key] != field.name:
                raise ValueError(f"Alias {alias!r} maps to both {table[key]!r} and {field.name!r}")
            table[key] = field.name
    return table


# Keyed by upper-cased source name
FIELD_ALIASES: Dict[str, str] = _build_alias_table()


def resolve_field_name(source_name: str) -> str:
    """Resolve a source attribute name to its canonical column.

    Unknown names pass through lower-cased.
    """
    canonical = FIELD_ALIASES.get(source_name.strip().upper())
    if canonical is not None:
        return canonical
    return source_name.lower()


def field_kind(canonical_name: str) -> Optional[str]:
    """Coercion kind of a canonical column, or None for pass-through names."""
    field = FIELDS_BY_NAME.get(canonical_name)
    return field.kind if field else None
