"""
Devices API — push token registration for the signed-in user.

The app calls these endpoints with the user's Supabase access token.
Writes go through the service client (bypassing RLS); the user id
always comes from the verified JWT, never from the request body.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from mindboat_push.core.security import get_current_user_id
from mindboat_push.db.supabase_client import get_service_client
from mindboat_push.models.devices import (
    DeviceListResponse,
    DeviceRegistrationRequest,
    DeviceResponse,
    DeviceStatusResponse,
    LiveActivityTokenRequest,
)
from mindboat_push.services.device_registry import PLATFORMS, SupabaseDeviceRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/devices", tags=["devices"])


def get_device_registry() -> SupabaseDeviceRegistry:
    """Dependency: registry over the service-role Supabase client."""
    return SupabaseDeviceRegistry(get_service_client())


def _database_error(action: str, exc: Exception) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action}: {exc}",
    )


@router.post(
    "",
    status_code=status.HTTP_200_OK,
    response_model=DeviceStatusResponse,
)
async def register_device(
    payload: DeviceRegistrationRequest,
    user_id: str = Depends(get_current_user_id),
    registry: SupabaseDeviceRegistry = Depends(get_device_registry),
) -> DeviceStatusResponse:
    """
    Register or replace the caller's token for one platform.

    Returns:
        200: status "registered" (first token) or "updated" (replaced).
        401: Missing or invalid authentication token.
        422: Invalid payload (empty token, bad platform).
        500: Database error.
    """
    try:
        previous = registry.get_device(user_id, payload.platform)
        registry.upsert_device(
            user_id,
            payload.platform,
            payload.device_token,
            is_sandbox=payload.is_sandbox,
            device_type=payload.device_type,
            device_name=payload.device_name,
        )
    except Exception as exc:
        logger.error(f"Failed to store device token for user {user_id[:8]}: {exc}")
        raise _database_error("store device token", exc)

    return DeviceStatusResponse(
        status="updated" if previous else "registered",
        platform=payload.platform,
    )


@router.post(
    "/live-activity-token",
    status_code=status.HTTP_200_OK,
    response_model=DeviceStatusResponse,
)
async def register_live_activity_token(
    payload: LiveActivityTokenRequest,
    user_id: str = Depends(get_current_user_id),
    registry: SupabaseDeviceRegistry = Depends(get_device_registry),
) -> DeviceStatusResponse:
    """
    Attach a Live Activity push-to-start token to the caller's VoIP device.

    Returns:
        200: Token stored.
        404: No VoIP device registered yet.
        500: Database error.
    """
    try:
        updated = registry.update_live_activity_token(
            user_id,
            payload.live_activity_token,
            is_sandbox=payload.is_sandbox,
        )
    except Exception as exc:
        logger.error(
            f"Failed to store Live Activity token for user {user_id[:8]}: {exc}"
        )
        raise _database_error("store Live Activity token", exc)

    if not updated:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Register a VoIP device before its Live Activity token.",
        )

    return DeviceStatusResponse(status="updated", platform="voip")


@router.get(
    "",
    status_code=status.HTTP_200_OK,
    response_model=DeviceListResponse,
)
async def list_devices(
    user_id: str = Depends(get_current_user_id),
    registry: SupabaseDeviceRegistry = Depends(get_device_registry),
) -> DeviceListResponse:
    """List the caller's registrations, most recently used first."""
    try:
        rows = registry.list_devices(user_id)
    except Exception as exc:
        logger.error(f"Failed to list devices for user {user_id[:8]}: {exc}")
        raise _database_error("list devices", exc)

    return DeviceListResponse(devices=[DeviceResponse.from_row(row) for row in rows])


@router.delete(
    "/{platform}",
    status_code=status.HTTP_200_OK,
    response_model=DeviceStatusResponse,
)
async def remove_device(
    platform: str,
    user_id: str = Depends(get_current_user_id),
    registry: SupabaseDeviceRegistry = Depends(get_device_registry),
) -> DeviceStatusResponse:
    """Remove the caller's registration for one platform (e.g. on sign-out)."""
    if platform not in PLATFORMS:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Platform must be 'voip' or 'fcm'.",
        )

    try:
        registry.remove_device(user_id, platform)
    except Exception as exc:
        logger.error(f"Failed to remove {platform} device for user {user_id[:8]}: {exc}")
        raise _database_error("remove device", exc)

    return DeviceStatusResponse(status="removed", platform=platform)
