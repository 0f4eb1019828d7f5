# ============================================================
# tuition/core/database.py
#
# One Supabase client (SERVICE ROLE key), created lazily so that
# importing the package never opens a connection.
#
# FeeDB is the only thing the fee services talk to. It covers the
# handful of operations the setup flow needs:
#   - resolve the active academic year
#   - insert one / many rows
#   - delete a row by id (compensation for a half-written setup)
#
# Tests swap FeeDB for an in-memory fake with the same methods.
# ============================================================

from functools import lru_cache
from typing import Optional

from supabase import create_client, Client
from supabase.lib.client_options import SyncClientOptions

from tuition.core.config import settings
import logging

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_admin_client() -> Client:
    return create_client(
        settings.SUPABASE_URL,
        settings.SUPABASE_SERVICE_KEY,
        options=SyncClientOptions(schema=settings.DB_SCHEMA),
    )


class FeeDB:
    """
    Thin wrapper around the Supabase tables used by a fee setup.
    Errors from PostgREST are not caught here; the caller decides
    whether a failed write is fatal or best-effort.
    """

    def __init__(self, client: Optional[Client] = None):
        self._client: Client = client or get_admin_client()

    def get_active_academic_year(self) -> Optional[dict]:
        result = (
            self._client
            .table("academic_years")
            .select("year_code")
            .eq("is_active", True)
            .limit(1)
            .execute()
        )
        rows = result.data or []
        return rows[0] if rows else None

    def insert(self, table: str, payload: dict) -> dict:
        result = self._client.table(table).insert(payload).execute()
        return result.data[0] if result.data else {}

    def insert_many(self, table: str, rows: list[dict]) -> list[dict]:
        if not rows:
            return []
        result = self._client.table(table).insert(rows).execute()
        return result.data or []

    def delete(self, table: str, record_id: str) -> None:
        self._client.table(table).delete().eq("id", record_id).execute()


# ── Health check ─────────────────────────────────────────────
async def check_db_connection() -> bool:
    try:
        get_admin_client().table("academic_years").select("year_code").limit(1).execute()
        return True
    except Exception as e:
        logger.error(f"DB health check failed: {e}")
        return False
