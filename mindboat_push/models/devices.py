"""
Device Models — Pydantic schemas for push token registration.

Defines request/response models for the device registry endpoints:
- POST /api/v1/devices — Register a VoIP or FCM device token
- POST /api/v1/devices/live-activity-token — Attach a Live Activity token
- GET /api/v1/devices — List the caller's registrations
- DELETE /api/v1/devices/{platform} — Remove a registration
"""

from pydantic import BaseModel, Field, field_validator

from mindboat_push.services.device_registry import PLATFORMS, VOIP_PLATFORM


def _strip_token(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("Token cannot be empty.")
    return v


class DeviceRegistrationRequest(BaseModel):
    """
    Payload for POST /api/v1/devices.

    Sent by the app on launch once PushKit (VoIP) or FCM hands it a
    token. `is_sandbox` is true for development-signed iOS builds.
    """

    device_token: str = Field(
        ...,
        min_length=1,
        max_length=400,
        description="Hex-encoded APNs VoIP token or FCM registration token.",
    )
    platform: str = Field(
        default=VOIP_PLATFORM,
        description="Registration platform: 'voip' or 'fcm'.",
    )
    is_sandbox: bool = Field(
        default=False,
        description="True when the token was issued to a development-signed build.",
    )
    device_type: str | None = Field(default=None, description="e.g. 'ios', 'android'.")
    device_name: str | None = Field(default=None, max_length=100)

    @field_validator("device_token")
    @classmethod
    def validate_device_token(cls, v: str) -> str:
        """Strip whitespace and validate non-empty."""
        return _strip_token(v)

    @field_validator("platform")
    @classmethod
    def validate_platform(cls, v: str) -> str:
        """Ensure platform is a supported value."""
        if v not in PLATFORMS:
            raise ValueError("Platform must be 'voip' or 'fcm'.")
        return v


class LiveActivityTokenRequest(BaseModel):
    """Payload for POST /api/v1/devices/live-activity-token."""

    live_activity_token: str = Field(..., min_length=1, max_length=400)
    is_sandbox: bool = False

    @field_validator("live_activity_token")
    @classmethod
    def validate_token(cls, v: str) -> str:
        return _strip_token(v)


class DeviceResponse(BaseModel):
    """A stored registration, as returned to its owner."""

    platform: str
    device_token: str
    is_sandbox: bool = False
    device_type: str | None = None
    device_name: str | None = None
    has_live_activity_token: bool = False
    updated_at: str | None = None

    @classmethod
    def from_row(cls, row: dict) -> "DeviceResponse":
        return cls(
            platform=row["platform"],
            device_token=row["device_token"],
            is_sandbox=bool(row.get("is_sandbox") or False),
            device_type=row.get("device_type"),
            device_name=row.get("device_name"),
            has_live_activity_token=bool(row.get("live_activity_token")),
            updated_at=row.get("updated_at"),
        )


class DeviceListResponse(BaseModel):
    devices: list[DeviceResponse] = Field(default_factory=list)


class DeviceStatusResponse(BaseModel):
    status: str = Field(..., description="'registered', 'updated', or 'removed'.")
    platform: str
