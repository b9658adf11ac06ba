"""
Supabase Client
===============
Builds the Supabase client the persistence layer writes through.

Uses the service_role key (not the anon key) because the sync engine
writes to tables that RLS keeps read-only for the dashboard.

Returns None when storage is not configured or the client cannot be
created; routes that need storage answer 503 in that case.
"""

from __future__ import annotations

import logging
from typing import Optional

from supabase import Client, create_client

from app.config import Settings

logger = logging.getLogger(__name__)


def create_supabase_client(settings: Settings) -> Optional[Client]:
    if not settings.supabase_url or not settings.supabase_service_key:
        logger.warning("SUPABASE_URL / SUPABASE_SERVICE_KEY not set; storage unavailable")
        return None
    try:
        return create_client(settings.supabase_url, settings.supabase_service_key)
    except Exception as exc:
        logger.error("Could not create Supabase client: %s", exc)
        return None
