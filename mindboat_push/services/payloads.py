"""
Push Payload Builders — JSON bodies for VoIP and Live Activity pushes.

Pure functions: every value is resolved by the caller, nothing here
signs, reads the database, or touches the network.

PushType is the closed set of APNs push types this service sends.
Each member carries the `apns-push-type` header value and the suffix
appended to the bundle id to form `apns-topic`.
"""

import time
from enum import Enum

# Namespace the iOS app reads its routine reminder contract from
APP_NAMESPACE = "mindboat"

VOIP_ALERT_TITLE = "Time for your routine"
LIVE_ACTIVITY_ATTRIBUTES_TYPE = "TaskActivityAttributes"


class PushType(Enum):
    """APNs push type with its header value and topic suffix."""

    VOIP = ("voip", ".voip")
    LIVE_ACTIVITY = ("liveactivity", ".push-type.liveactivity")

    def __init__(self, header_value: str, topic_suffix: str):
        self.header_value = header_value
        self.topic_suffix = topic_suffix

    def topic(self, bundle_id: str) -> str:
        """apns-topic for this push type under the given bundle id."""
        return f"{bundle_id}{self.topic_suffix}"


def build_voip_payload(task_id: str, task_title: str, task_time: str | None) -> dict:
    """
    Build the VoIP wake-up payload for a routine reminder.

    The aps.alert block satisfies the local notification shadow some iOS
    versions require even for silent VoIP wakes. The namespaced block is
    what the app parses to decide to start the AI call.

    Returns:
        dict: APNs-formatted payload ready for JSON serialization.
    """
    return {
        "aps": {
            "alert": {
                "title": VOIP_ALERT_TITLE,
                "body": task_title,
            },
        },
        APP_NAMESPACE: {
            "type": "routine_reminder",
            "task_id": task_id,
            "task_title": task_title,
            "task_time": task_time,
            "action": "start_ai_call",
        },
    }


def build_live_activity_start_payload(
    task_id: str,
    task_title: str,
    scheduled_time: str,
    user_id: str,
    remaining_seconds: int,
    *,
    timestamp: int | None = None,
) -> dict:
    """
    Build a Live Activity push-to-start payload for a task countdown.

    The countdown starts full: totalSeconds equals remainingSeconds and
    progress is 1.0.

    Args:
        task_id: Task the activity counts down to.
        task_title: Title shown on the Lock Screen / Dynamic Island.
        scheduled_time: Display time of the task (e.g. "09:00").
        user_id: Owner of the task.
        remaining_seconds: Seconds until the task starts.
        timestamp: Unix seconds for aps.timestamp; defaults to now.

    Returns:
        dict: APNs-formatted payload ready for JSON serialization.
    """
    return {
        "aps": {
            "timestamp": int(time.time()) if timestamp is None else timestamp,
            "event": "start",
            "content-state": {
                "remainingSeconds": remaining_seconds,
                "totalSeconds": remaining_seconds,
                "progress": 1.0,
                "status": "countdown",
            },
            "attributes-type": LIVE_ACTIVITY_ATTRIBUTES_TYPE,
            "attributes": {
                "taskId": task_id,
                "taskTitle": task_title,
                "scheduledTime": scheduled_time,
                "userId": user_id,
            },
        },
    }
