"""
Push engine error taxonomy.

Fatal errors (ConfigurationError, KeyImportError) abort a whole
invocation before any notification is touched. Per-item errors
(MissingDeviceTokenError, DispatchError) are caught by the queue
processor and recorded against the notification. NotFoundError and
DeviceLookupError are returned synchronously by the on-demand paths
(VoIP wake and Live Activity start).
"""


class PushEngineError(Exception):
    """Base class for every error raised by the push engine."""


class ConfigurationError(PushEngineError):
    """Missing or invalid APNs signing identity."""

    def __init__(self, message: str, *, missing: list[str] | None = None):
        super().__init__(message)
        self.missing = missing or []


class KeyImportError(ConfigurationError):
    """The APNs private key could not be decoded or imported."""


class MissingDeviceTokenError(PushEngineError):
    """A queued notification has no device token to deliver to."""

    reason = "No device token"

    def __init__(self, notification_id: str):
        super().__init__(f"{self.reason} for notification {notification_id}")
        self.notification_id = notification_id


class DispatchError(PushEngineError):
    """APNs rejected the push or the transport failed."""

    def __init__(self, detail: str, *, status_code: int = 0):
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code


class NotFoundError(PushEngineError):
    """No device token could be resolved for an on-demand send."""


class QueueStoreError(PushEngineError):
    """The pending-notification store could not be read."""


class DeviceLookupError(PushEngineError):
    """The device registry could not be read for an on-demand send."""
