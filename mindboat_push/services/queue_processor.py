"""
Queue Processor — drains due VoIP reminders from the notification queue.

One invocation:
1. Sign one APNs provider token for the batch. A broken signing
   identity aborts here, before the queue is even read.
2. Fetch up to PUSH_BATCH_SIZE due notifications.
3. For each item, in order:
   - no device token: record failure "No device token", no dispatch
   - otherwise: build the VoIP payload, wait on the rate limiter,
     dispatch, record the outcome via mark_notification_sent
4. Return a BatchSummary with per-item results.

Items are processed sequentially; the injected rate limiter spaces
dispatches out. A failure on one item (APNs rejection, transport
error, malformed token, or a failed status write) never stops the rest
of the batch.
An optional monotonic deadline stops the loop between items; rows
not reached stay pending in the store and are counted as `remaining`.
"""

import logging
import time
from typing import Protocol

import httpx

from mindboat_push.core.config import (
    APNS_REQUEST_TIMEOUT_SECONDS,
    PUSH_BATCH_SIZE,
    PUSH_DISPATCH_INTERVAL_MS,
    APNsSigningConfig,
)
from mindboat_push.core.errors import MissingDeviceTokenError
from mindboat_push.models.push import (
    BatchSummary,
    NotificationResult,
    PendingNotification,
    PushResult,
)
from mindboat_push.services.apns import send_push
from mindboat_push.services.payloads import PushType, build_voip_payload
from mindboat_push.services.rate_limiter import FixedIntervalRateLimiter
from mindboat_push.services.token_signer import sign_provider_token

logger = logging.getLogger(__name__)


class NotificationQueue(Protocol):
    """The two store operations the processor consumes."""

    def get_pending_notifications(self, limit: int) -> list[PendingNotification]: ...

    def mark_notification_sent(
        self, notification_id: str, success: bool, error: str | None
    ) -> None: ...


# ===================================================================
# Per-item steps
# ===================================================================

async def _dispatch_notification(
    notification: PendingNotification,
    *,
    config: APNsSigningConfig,
    signed_token: str,
    rate_limiter: FixedIntervalRateLimiter,
    http_client: httpx.AsyncClient | None,
) -> PushResult:
    """
    Build and send the VoIP push for one queue item.

    Raises:
        MissingDeviceTokenError: If the item has no device token. No
            pacing or network work is done in that case.
    """
    if not notification.device_token:
        raise MissingDeviceTokenError(notification.notification_id)

    payload = build_voip_payload(
        notification.task_id,
        notification.task_title,
        notification.task_time,
    )

    # Environment of the joined device record; fall back to the
    # process-wide setting when the store does not report it.
    is_sandbox = (
        notification.is_sandbox
        if notification.is_sandbox is not None
        else not config.use_production
    )

    await rate_limiter.acquire()
    return await send_push(
        notification.device_token,
        payload,
        signed_token,
        config,
        PushType.VOIP,
        is_sandbox=is_sandbox,
        client=http_client,
    )


def _persist_outcome(
    queue: NotificationQueue,
    notification_id: str,
    result: PushResult,
) -> bool:
    """Write the outcome; returns False (and logs) if the write fails."""
    try:
        queue.mark_notification_sent(notification_id, result.success, result.error_detail)
    except Exception as exc:
        logger.error(
            f"Failed to record outcome for notification {notification_id} "
            f"(success={result.success}): {exc}"
        )
        return False
    return True


# ===================================================================
# Batch entry point
# ===================================================================

async def process_pending_notifications(
    config: APNsSigningConfig,
    queue: NotificationQueue,
    *,
    rate_limiter: FixedIntervalRateLimiter | None = None,
    batch_size: int = PUSH_BATCH_SIZE,
    deadline: float | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> BatchSummary:
    """
    Process one batch of due VoIP notifications.

    Args:
        config: APNs signing identity for this invocation.
        queue: Store exposing get_pending_notifications and
            mark_notification_sent.
        rate_limiter: Pacing gate awaited before each dispatch. Defaults
            to PUSH_DISPATCH_INTERVAL_MS spacing.
        batch_size: Maximum rows to fetch.
        deadline: time.monotonic() value after which no new item is
            started.
        http_client: Optional HTTP/2 client shared across the batch.
            When omitted one is opened for the duration of the batch.

    Returns:
        BatchSummary with processed/successful/failed counts and
        per-item results.

    Raises:
        KeyImportError: If the private key cannot be imported. Raised
            before the queue is read.
        QueueStoreError: If the pending notifications cannot be fetched.
    """
    # Fail fast on a broken identity: one token serves the whole batch
    signed_token = sign_provider_token(config)

    notifications = queue.get_pending_notifications(batch_size)

    if not notifications:
        logger.info("No pending notifications")
        return BatchSummary()

    if rate_limiter is None:
        rate_limiter = FixedIntervalRateLimiter.from_milliseconds(PUSH_DISPATCH_INTERVAL_MS)

    logger.info(f"Processing {len(notifications)} notifications")

    if http_client is None:
        async with httpx.AsyncClient(
            http2=True, timeout=APNS_REQUEST_TIMEOUT_SECONDS
        ) as own_client:
            return await _run_batch(
                notifications, config, queue, signed_token,
                rate_limiter, deadline, own_client,
            )
    return await _run_batch(
        notifications, config, queue, signed_token,
        rate_limiter, deadline, http_client,
    )


async def _run_batch(
    notifications: list[PendingNotification],
    config: APNsSigningConfig,
    queue: NotificationQueue,
    signed_token: str,
    rate_limiter: FixedIntervalRateLimiter,
    deadline: float | None,
    http_client: httpx.AsyncClient,
) -> BatchSummary:
    summary = BatchSummary()

    for index, notification in enumerate(notifications):
        if deadline is not None and time.monotonic() >= deadline:
            summary.remaining = len(notifications) - index
            logger.warning(
                f"Batch deadline reached; {summary.remaining} notifications left pending"
            )
            break

        try:
            result = await _dispatch_notification(
                notification,
                config=config,
                signed_token=signed_token,
                rate_limiter=rate_limiter,
                http_client=http_client,
            )
        except MissingDeviceTokenError as exc:
            logger.info(
                f"Notification {notification.notification_id} has no device token "
                f"(user={notification.user_id[:8]}...)"
            )
            result = PushResult(success=False, error_detail=exc.reason)
        except Exception as exc:
            logger.error(
                f"Dispatch failed for notification {notification.notification_id}: "
                f"{exc.__class__.__name__}: {exc}"
            )
            result = PushResult(success=False, error_detail=str(exc) or exc.__class__.__name__)

        persisted = _persist_outcome(queue, notification.notification_id, result)

        summary.results.append(NotificationResult(
            notification_id=notification.notification_id,
            success=result.success,
            error=result.error_detail,
            persisted=persisted,
        ))

    summary.processed = len(summary.results)
    summary.successful = sum(1 for r in summary.results if r.success)
    summary.failed = summary.processed - summary.successful

    logger.info(
        f"Processed: {summary.successful} successful, {summary.failed} failed, "
        f"{summary.remaining} remaining"
    )
    return summary
