"""
Operations package for the Cadastral Ingestion Pipeline

This package centralizes the operational tools:
- Configuration management
- Supabase client and credential handling
- Repositories for parcel storage

The Config class is exposed at the package level for convenient imports:
    from ops import Config
"""

from .config_loader import Config

__all__ = ["Config"]
