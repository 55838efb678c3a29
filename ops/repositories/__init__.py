"""Repository classes for parcel data access."""

from .parcels import ParcelRepository, SpatialBounds

__all__ = ["ParcelRepository", "SpatialBounds"]
