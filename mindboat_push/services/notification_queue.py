"""
Notification Queue — access to the pending_push_notifications store.

The store is owned by the database: rows are created by the routine
scheduler and reach 'ready_to_send' when due. This service consumes
two RPCs and never writes the table directly:

- get_pending_notifications(p_limit): due, non-terminal rows joined
  with the user's active VoIP device token.
- mark_notification_sent(p_notification_id, p_success, p_error):
  terminal status write. The database decides whether a failed row
  becomes due again (retry_count policy lives there).

The fetch is a plain read. Two overlapping invocations can receive
the same rows; there is no claim step.
"""

import logging

from supabase import Client

from mindboat_push.core.errors import QueueStoreError
from mindboat_push.models.push import PendingNotification

logger = logging.getLogger(__name__)


class SupabaseNotificationQueue:
    """Queue store backed by Supabase RPCs."""

    def __init__(self, client: Client):
        self._client = client

    def get_pending_notifications(self, limit: int) -> list[PendingNotification]:
        """
        Fetch up to `limit` due notifications, oldest first.

        Raises:
            QueueStoreError: If the RPC fails or returns malformed rows.
        """
        try:
            result = self._client.rpc(
                "get_pending_notifications", {"p_limit": limit}
            ).execute()
        except Exception as exc:
            logger.error(f"Failed to fetch pending notifications: {exc}")
            raise QueueStoreError(f"Failed to fetch pending notifications: {exc}") from exc

        rows = result.data or []
        try:
            return [PendingNotification.model_validate(row) for row in rows]
        except ValueError as exc:
            raise QueueStoreError(f"Malformed pending notification row: {exc}") from exc

    def mark_notification_sent(
        self,
        notification_id: str,
        success: bool,
        error: str | None,
    ) -> None:
        """
        Record the outcome for one notification.

        Exceptions propagate; the queue processor decides how a failed
        status write affects the batch.
        """
        self._client.rpc(
            "mark_notification_sent",
            {
                "p_notification_id": notification_id,
                "p_success": success,
                "p_error": error,
            },
        ).execute()
        logger.debug(
            f"Marked notification {notification_id[:8]} success={success} error={error}"
        )
