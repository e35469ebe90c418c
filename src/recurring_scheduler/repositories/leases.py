"""Run leases stored in Supabase so only one scheduler run proceeds at a time."""

import logging
from datetime import timedelta
from uuid import uuid4

from postgrest.exceptions import APIError

from recurring_scheduler.config import settings
from recurring_scheduler.services.supabase_client import get_supabase
from recurring_scheduler.utils.time import utc_now

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"


class SupabaseRunLease:
    """
    Lease rows keyed by name in the ``scheduler_leases`` table.

    The primary key on ``name`` makes the insert the atomic acquire step.
    A row whose ``expires_at`` has passed belongs to a crashed run and is
    removed before retrying once.
    """

    def __init__(self, table: str | None = None) -> None:
        self.table = table or settings.scheduler_leases_table

    def acquire(self, name: str, ttl_seconds: int) -> str | None:
        supabase = get_supabase()
        token = uuid4().hex

        for _ in range(2):
            now = utc_now()
            payload = {
                "name": name,
                "token": token,
                "acquired_at": now.isoformat(),
                "expires_at": (now + timedelta(seconds=ttl_seconds)).isoformat(),
            }
            try:
                supabase.table(self.table).insert(payload).execute()
                return token
            except APIError as exc:
                if exc.code != UNIQUE_VIOLATION:
                    raise
            stale = (
                supabase.table(self.table)
                .delete()
                .eq("name", name)
                .lt("expires_at", now.isoformat())
                .execute()
            )
            if not stale.data:
                return None
            logger.warning("Removed stale lease %s.", name)
        return None

    def release(self, name: str, token: str) -> None:
        supabase = get_supabase()
        (
            supabase.table(self.table)
            .delete()
            .eq("name", name)
            .eq("token", token)
            .execute()
        )

    def renew(self, name: str, token: str, ttl_seconds: int) -> bool:
        supabase = get_supabase()
        expires_at = utc_now() + timedelta(seconds=ttl_seconds)
        response = (
            supabase.table(self.table)
            .update({"expires_at": expires_at.isoformat()})
            .eq("name", name)
            .eq("token", token)
            .execute()
        )
        return bool(response.data)
