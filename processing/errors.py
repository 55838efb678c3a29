"""Exceptions raised by the cadastral ingestion pipeline.

Per-feature (MappingError) and per-record (StorageError) failures are caught
at the batch boundary and reported; ArchiveError and ParseError abort the
whole upload before anything is stored.
"""


class CadastralIngestError(Exception):
    """Base class for ingestion errors."""


class MappingError(CadastralIngestError):
    """A single feature's attributes or geometry could not be normalized."""


class ArchiveError(CadastralIngestError):
    """A shapefile archive is missing a mandatory member."""


class StorageError(CadastralIngestError):
    """The database rejected a record or could not be reached."""

    def __init__(self, message: str, details: object = None):
        super().__init__(message)
        self.details = details


class ParseError(CadastralIngestError):
    """The uploaded bytes are not valid GeoJSON or a readable archive."""


class UnsupportedFormatError(ParseError):
    """The upload is neither GeoJSON nor a zipped shapefile."""
