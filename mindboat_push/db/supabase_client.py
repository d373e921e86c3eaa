"""
Supabase Client

Provides the service-role Supabase client used by the push engine.
The queue RPCs (get_pending_notifications, mark_notification_sent)
and the user_devices table are only reachable with the service role
key, which bypasses Row Level Security.
"""

from supabase import Client, create_client

from mindboat_push.core.config import (
    SUPABASE_SERVICE_ROLE_KEY,
    SUPABASE_URL,
    validate_supabase_config,
)

# Module-level client — initialized lazily
_service_client: Client | None = None


def get_service_client() -> Client:
    """
    Get the Supabase client using the service_role (admin) key.

    WARNING: This client BYPASSES Row Level Security.
    Only use for background jobs (queue processing) and for registry
    writes where the user id comes from a verified JWT.
    """
    global _service_client
    if _service_client is None:
        validate_supabase_config()
        _service_client = create_client(SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY)
    return _service_client
