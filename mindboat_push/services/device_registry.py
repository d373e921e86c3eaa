"""
Device Registry — per-user push tokens in the user_devices table.

Each (user_id, platform) pair holds at most one active registration;
registrations upsert on that conflict target. The VoIP row may also
carry a Live Activity push-to-start token and its own sandbox flag,
since the Live Activity token is issued separately by iOS and can
come from a different build environment.
"""

import logging
from datetime import datetime, timezone
from typing import Any, NamedTuple

from supabase import Client

logger = logging.getLogger(__name__)

DEVICES_TABLE = "user_devices"
VOIP_PLATFORM = "voip"
FCM_PLATFORM = "fcm"
PLATFORMS = (VOIP_PLATFORM, FCM_PLATFORM)


class PushTarget(NamedTuple):
    """A resolved device or Live Activity token and the APNs environment it belongs to."""
    token: str
    is_sandbox: bool


class SupabaseDeviceRegistry:
    """Read/write access to user_devices through the service client."""

    def __init__(self, client: Client):
        self._client = client

    # ---------------------------------------------------------------
    # Reads
    # ---------------------------------------------------------------

    def get_live_activity_token(self, user_id: str) -> PushTarget | None:
        """
        Most recently updated non-null Live Activity token for a user.

        Returns None when the user has no VoIP device with a Live
        Activity token. Database errors propagate to the caller.
        """
        result = (
            self._client.table(DEVICES_TABLE)
            .select("live_activity_token, live_activity_token_sandbox")
            .eq("user_id", user_id)
            .eq("platform", VOIP_PLATFORM)
            .not_.is_("live_activity_token", "null")
            .order("updated_at", desc=True)
            .limit(1)
            .execute()
        )
        if not result.data or not result.data[0].get("live_activity_token"):
            return None

        row = result.data[0]
        return PushTarget(
            token=row["live_activity_token"],
            is_sandbox=bool(row.get("live_activity_token_sandbox") or False),
        )

    def get_device(self, user_id: str, platform: str = VOIP_PLATFORM) -> dict | None:
        """The user's registration for one platform, or None."""
        result = (
            self._client.table(DEVICES_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .eq("platform", platform)
            .order("updated_at", desc=True)
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    def list_devices(self, user_id: str) -> list[dict]:
        """Every registration for a user, most recently used first."""
        result = (
            self._client.table(DEVICES_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .order("last_used_at", desc=True)
            .execute()
        )
        return result.data or []

    # ---------------------------------------------------------------
    # Writes
    # ---------------------------------------------------------------

    def upsert_device(
        self,
        user_id: str,
        platform: str,
        device_token: str,
        *,
        is_sandbox: bool = False,
        device_type: str | None = None,
        device_name: str | None = None,
    ) -> dict:
        """
        Register or replace the token for (user_id, platform).

        Returns the stored row.
        """
        now = datetime.now(timezone.utc).isoformat()
        row: dict[str, Any] = {
            "user_id": user_id,
            "platform": platform,
            "device_token": device_token,
            "is_sandbox": is_sandbox,
            "device_name": device_name or ("iOS VoIP Device" if platform == VOIP_PLATFORM else None),
            "last_used_at": now,
            "updated_at": now,
            "is_active": True,
        }
        if device_type:
            row["device_type"] = device_type

        result = (
            self._client.table(DEVICES_TABLE)
            .upsert(row, on_conflict="user_id,platform")
            .execute()
        )
        logger.info(
            f"Device upserted: user={user_id[:8]}..., platform={platform}, "
            f"token={device_token[:16]}..., sandbox={is_sandbox}"
        )
        return result.data[0] if result.data else row

    def update_live_activity_token(
        self,
        user_id: str,
        live_activity_token: str,
        *,
        is_sandbox: bool = False,
    ) -> bool:
        """
        Attach a Live Activity push-to-start token to the user's VoIP row.

        Returns False when the user has no VoIP registration to attach to.
        """
        result = (
            self._client.table(DEVICES_TABLE)
            .update({
                "live_activity_token": live_activity_token,
                "live_activity_token_sandbox": is_sandbox,
                "updated_at": datetime.now(timezone.utc).isoformat(),
            })
            .eq("user_id", user_id)
            .eq("platform", VOIP_PLATFORM)
            .execute()
        )
        updated = bool(result.data)
        if updated:
            logger.info(
                f"Live Activity token stored: user={user_id[:8]}..., "
                f"token={live_activity_token[:16]}..., sandbox={is_sandbox}"
            )
        return updated

    def remove_device(self, user_id: str, platform: str = VOIP_PLATFORM) -> None:
        """Delete the user's registration for one platform."""
        (
            self._client.table(DEVICES_TABLE)
            .delete()
            .eq("user_id", user_id)
            .eq("platform", platform)
            .execute()
        )
        logger.info(f"Removed {platform} device for user {user_id[:8]}...")
