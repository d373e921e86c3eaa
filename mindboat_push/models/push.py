"""
Push Models — Pydantic schemas for queue items, dispatch results,
and the push API request/response bodies.

PendingNotification mirrors a row returned by the
get_pending_notifications RPC. PushResult is produced once per
APNs attempt and handed to mark_notification_sent; it is never
stored by this service.
"""

from pydantic import BaseModel, Field, field_validator, model_validator


# ===================================================================
# Queue + Dispatch
# ===================================================================

class PendingNotification(BaseModel):
    """A due routine reminder waiting in pending_push_notifications."""
    notification_id: str = Field(..., description="UUID of the queue row.")
    user_id: str = Field(..., description="UUID of the user to wake.")
    task_id: str = Field(..., description="UUID of the routine task.")
    task_title: str = Field(default="", description="Task title shown in the alert body.")
    task_time: str | None = Field(default=None, description="Task time of day (HH:MM).")
    device_token: str | None = Field(
        default=None,
        description="VoIP device token joined from user_devices, if any.",
    )
    scheduled_time: str | None = Field(
        default=None,
        description="ISO 8601 time the reminder became due.",
    )
    is_sandbox: bool | None = Field(
        default=None,
        description="Sandbox flag of the joined device record; None when the store omits it.",
    )

    @field_validator("task_title", mode="before")
    @classmethod
    def null_title_to_empty(cls, v):
        return v or ""


class PushResult(BaseModel):
    """Outcome of a single APNs dispatch attempt."""
    success: bool
    error_detail: str | None = Field(
        default=None,
        description="Raw APNs error text or transport error message.",
    )
    status_code: int = Field(default=0, description="HTTP status from APNs; 0 if none.")
    apns_id: str | None = Field(default=None, description="apns-id response header.")


class NotificationResult(BaseModel):
    """Per-item entry in a batch summary."""
    notification_id: str
    success: bool
    error: str | None = None
    persisted: bool = Field(
        default=True,
        description="False when mark_notification_sent itself failed.",
    )


class BatchSummary(BaseModel):
    """Report for one queue-processing invocation."""
    processed: int = 0
    successful: int = 0
    failed: int = 0
    remaining: int = Field(
        default=0,
        description="Fetched items left untouched because the deadline passed.",
    )
    results: list[NotificationResult] = Field(default_factory=list)


# ===================================================================
# On-demand Live Activity
# ===================================================================

class LiveActivityStartRequest(BaseModel):
    """
    Body for POST /api/v1/push/live-activity/start.

    Either user_id (token resolved from user_devices) or an explicit
    device_token must be supplied.
    """
    user_id: str | None = Field(default=None, alias="userId")
    task_id: str | None = Field(default=None, alias="taskId")
    task_title: str | None = Field(default=None, alias="taskTitle")
    scheduled_time: str | None = Field(default=None, alias="scheduledTime")
    remaining_seconds: int = Field(default=60, ge=0, alias="remainingSeconds")
    device_token: str | None = Field(default=None, alias="deviceToken")
    is_sandbox: bool | None = Field(default=None, alias="isSandbox")

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def require_target(self):
        """Reject requests that name neither a user nor a device."""
        if not self.user_id and not self.device_token:
            raise ValueError("userId or deviceToken is required")
        return self


class OnDemandPushResponse(BaseModel):
    success: bool
    message: str = ""
    error: str | None = None


# ===================================================================
# On-demand VoIP wake
# ===================================================================

class VoipSendRequest(BaseModel):
    """Body for POST /api/v1/push/voip/send."""
    user_id: str | None = Field(default=None, alias="userId")
    task_id: str | None = Field(default=None, alias="taskId")
    task_title: str | None = Field(default=None, alias="taskTitle")
    task_time: str | None = Field(default=None, alias="taskTime")
    device_token: str | None = Field(default=None, alias="deviceToken")
    is_sandbox: bool | None = Field(default=None, alias="isSandbox")

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def require_target(self):
        if not self.user_id and not self.device_token:
            raise ValueError("userId or deviceToken is required")
        return self
