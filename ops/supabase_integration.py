#!/usr/bin/env python3
"""
Supabase/PostGIS Integration Module

This module wraps the official supabase-py client for the cadastral ingestion
pipeline. All spatial work (SRID handling, geometry validation, area and bounds
queries) happens server-side in PostGIS functions that are exposed as remote
procedures; this module only manages credentials and executes the calls.

Key Features:
- Secure credential management with environment variables
- Optional .env loading from the project root
- Table selects and named RPC calls with consistent error logging

Usage:
    from ops.supabase_integration import SupabaseDatabase

    db = SupabaseDatabase()
    rows = db.select("cadastral_parcels", order_by="created_at", limit=100)
    result = db.rpc("calculate_geometry_area", {"geom_geojson": geometry_json})
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from loguru import logger
from supabase import Client, create_client

from ops.config_loader import Config

# Look for .env file in project root (parent of ops directory)
env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)
    logger.debug(f"✅ Loaded environment variables from {env_path}")
else:
    logger.debug("📋 No .env file found, using system environment variables")


class SupabaseDatabase:
    """
    Standard Supabase database operations using the official supabase-py client.

    The client can be injected (tests, scripts that already hold a client);
    otherwise it is created from the service role credentials.
    """

    def __init__(self, config: Optional[Config] = None, client: Optional[Client] = None):
        """Initialize the database client using the service role key.

        Args:
            config: Optional Config instance. If None, creates new instance.
            client: Optional pre-built supabase client.
        """
        self.config = config or Config()
        self.client: Optional[Client] = client
        if self.client is None:
            self.credentials = self._load_credentials()
            self._create_client()

    def _load_credentials(self) -> Dict[str, Optional[str]]:
        """Load Supabase credentials from environment variables or config."""
        logger.debug("📋 Loading Supabase credentials...")

        service_url = os.getenv("SUPABASE_URL") or os.getenv("NEXT_PUBLIC_SUPABASE_URL")
        service_key = os.getenv("SUPABASE_SERVICE_ROLE_KEY")
        anon_key = os.getenv("SUPABASE_ANON_KEY") or os.getenv("NEXT_PUBLIC_SUPABASE_ANON_KEY")

        # Fall back to config file
        if not service_url or not (service_key or anon_key):
            supabase_config = self.config.get("supabase", {}) or {}
            service_url = service_url or supabase_config.get("url")
            service_key = service_key or supabase_config.get("service_key")
            anon_key = anon_key or supabase_config.get("anon_key")

        # The anon key is enough when the RPCs are exposed to the anon role
        api_key = service_key or anon_key

        if not service_url or not api_key:
            logger.error("❌ Missing required Supabase credentials:")
            logger.error("   Required: SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY")
            logger.error("   Or set: SUPABASE_ANON_KEY, or the 'supabase' section of config.yaml")
            raise ValueError("Missing required Supabase configuration for parcel ingestion.")

        if not service_key:
            logger.warning("⚠️ No service role key found, using anon key")

        credentials = {
            "url": service_url,
            "api_key": api_key,
        }

        logger.debug("   ✅ Loaded Supabase credentials")
        return credentials

    def _create_client(self) -> None:
        """Create Supabase client."""
        try:
            logger.debug("🔌 Creating Supabase client...")

            self.client = create_client(
                self.credentials["url"],
                self.credentials["api_key"],
            )

            logger.debug("   ✅ Supabase client created")
        except Exception as e:
            logger.error(f"❌ Failed to create Supabase client: {e}")
            raise ValueError(f"Failed to initialize Supabase client: {e}") from e

    def select(
        self,
        table: str,
        columns: Optional[List[str]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Select records from a table.

        Args:
            table: Table name
            columns: Columns to select, including computed PostgREST columns
            order_by: Column to order by
            descending: Order descending instead of ascending
            limit: Maximum number of records
            offset: Number of records to skip

        Returns:
            List of records
        """
        if not self.client:
            raise ValueError("Supabase client not initialized")

        try:
            columns_str = ",".join(columns) if columns else "*"
            query = self.client.table(table).select(columns_str)

            if order_by:
                query = query.order(order_by, desc=descending)

            if limit is not None:
                start = offset or 0
                query = query.range(start, start + limit - 1)

            response = query.execute()
            return response.data
        except Exception as e:
            logger.error(f"Database error selecting from {table}: {str(e)}")
            raise

    def rpc(self, function_name: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Call a database function exposed as a remote procedure.

        Args:
            function_name: Name of the Postgres function
            params: Named arguments for the function

        Returns:
            The ``data`` member of the response
        """
        if not self.client:
            raise ValueError("Supabase client not initialized")

        try:
            response = self.client.rpc(function_name, params or {}).execute()
            return response.data
        except Exception as e:
            logger.error(f"Database error calling {function_name}: {str(e)}")
            raise
