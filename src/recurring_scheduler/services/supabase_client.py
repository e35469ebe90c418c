from functools import lru_cache

from supabase import Client, create_client
from supabase.client import ClientOptions

from recurring_scheduler.config import settings


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """Service-role client; the scheduler writes on behalf of every user."""
    if not settings.supabase_url or not settings.supabase_service_role_key:
        raise RuntimeError("Supabase credentials are not configured.")
    options = ClientOptions(
        schema=settings.supabase_schema,
        postgrest_client_timeout=settings.supabase_timeout_seconds,
        auto_refresh_token=False,
        persist_session=False,
    )
    return create_client(
        settings.supabase_url, settings.supabase_service_role_key, options=options
    )
