"""
Push API — entry points into the APNs dispatch engine.

- POST /api/v1/push/process-queue: drains due VoIP reminders. Called
  every minute by a QStash schedule (Upstash-Signature) or by an
  internal caller holding the service role key.
- POST /api/v1/push/live-activity/start: on-demand Live Activity
  push-to-start, relayed synchronously to the application server.
- POST /api/v1/push/voip/send: on-demand VoIP wake for one user or
  device, outside the queue.
- GET /api/v1/push/config-check: APNs configuration diagnostics.
"""

import logging
import time

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials

from mindboat_push.api.devices import get_device_registry
from mindboat_push.core import config as settings
from mindboat_push.core.config import APNsSigningConfig, load_apns_config
from mindboat_push.core.errors import (
    ConfigurationError,
    DeviceLookupError,
    NotFoundError,
    QueueStoreError,
)
from mindboat_push.core.security import (
    bearer_scheme,
    is_service_role_token,
    require_service_role,
)
from mindboat_push.db.supabase_client import get_service_client
from mindboat_push.models.push import (
    BatchSummary,
    LiveActivityStartRequest,
    OnDemandPushResponse,
    PushResult,
    VoipSendRequest,
)
from mindboat_push.services.device_registry import SupabaseDeviceRegistry
from mindboat_push.services.diagnostics import check_apns_configuration, probe_apns
from mindboat_push.services.live_activity import start_live_activity
from mindboat_push.services.notification_queue import SupabaseNotificationQueue
from mindboat_push.services.qstash import verify_qstash_signature
from mindboat_push.services.queue_processor import process_pending_notifications
from mindboat_push.services.rate_limiter import FixedIntervalRateLimiter
from mindboat_push.services.voip_wake import send_voip_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/push", tags=["push"])


# ===================================================================
# Dependencies
# ===================================================================

def _configuration_error(exc: ConfigurationError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"error": "APNs not configured", "message": str(exc), "missing": exc.missing},
    )


def get_apns_config() -> APNsSigningConfig:
    """Dependency: the APNs identity for this request, or a 500."""
    try:
        return load_apns_config()
    except ConfigurationError as exc:
        logger.error(f"APNs configuration invalid: {exc}")
        raise _configuration_error(exc)


def get_notification_queue() -> SupabaseNotificationQueue:
    return SupabaseNotificationQueue(get_service_client())


def get_rate_limiter() -> FixedIntervalRateLimiter:
    """A fresh pacing gate per invocation; nothing is shared between batches."""
    return FixedIntervalRateLimiter.from_milliseconds(settings.PUSH_DISPATCH_INTERVAL_MS)


async def authorize_scheduler(
    request: Request,
    upstash_signature: str | None = Header(None, alias="Upstash-Signature"),
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> None:
    """
    Accept either a valid QStash signature or the service role key.

    Raises:
        HTTPException(401): Neither credential is valid.
    """
    if upstash_signature:
        body = await request.body()
        try:
            verify_qstash_signature(
                signature=upstash_signature,
                body=body,
                url=str(request.url),
            )
            return
        except ValueError as exc:
            logger.warning(f"QStash signature verification failed: {exc}")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=f"Invalid QStash signature: {exc}",
            )

    if credentials is not None and is_service_role_token(credentials.credentials):
        return

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Scheduler credentials required (Upstash-Signature or service role key).",
        headers={"WWW-Authenticate": "Bearer"},
    )


# ===================================================================
# POST /api/v1/push/process-queue
# ===================================================================

@router.post(
    "/process-queue",
    status_code=status.HTTP_200_OK,
    response_model=BatchSummary,
    dependencies=[Depends(authorize_scheduler)],
)
async def process_queue(
    apns_config: APNsSigningConfig = Depends(get_apns_config),
    queue: SupabaseNotificationQueue = Depends(get_notification_queue),
    rate_limiter: FixedIntervalRateLimiter = Depends(get_rate_limiter),
) -> BatchSummary:
    """
    Drain one batch of due VoIP reminders.

    Returns:
        200: BatchSummary (partial failures are reported per item).
        401: Invalid or missing scheduler credentials.
        500: APNs not configured, key import failed, or queue unreadable.
    """
    deadline = None
    if settings.PUSH_BATCH_DEADLINE_SECONDS is not None:
        deadline = time.monotonic() + settings.PUSH_BATCH_DEADLINE_SECONDS

    try:
        summary = await process_pending_notifications(
            apns_config,
            queue,
            rate_limiter=rate_limiter,
            batch_size=settings.PUSH_BATCH_SIZE,
            deadline=deadline,
        )
    except ConfigurationError as exc:
        logger.error(f"Aborting batch, APNs identity unusable: {exc}")
        raise _configuration_error(exc)
    except QueueStoreError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        )

    return summary


# ===================================================================
# On-demand sends: shared response and error mapping
# ===================================================================

def _on_demand_response(result: PushResult, sent_message: str):
    """200 with a message when APNs accepted the push, else 502 with its error."""
    if result.success:
        return OnDemandPushResponse(success=True, message=sent_message)

    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content=OnDemandPushResponse(
            success=False,
            error=result.error_detail,
        ).model_dump(),
    )


def _on_demand_error(exc: Exception, action: str) -> HTTPException:
    """Map on-demand send failures to HTTP errors."""
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, ConfigurationError):
        return _configuration_error(exc)
    if isinstance(exc, ValueError):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    if isinstance(exc, DeviceLookupError):
        logger.error(str(exc))
        return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))

    logger.error(f"{action} failed: {exc.__class__.__name__}: {exc}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"{action} failed: {exc}",
    )


# ===================================================================
# POST /api/v1/push/live-activity/start
# ===================================================================

@router.post(
    "/live-activity/start",
    status_code=status.HTTP_200_OK,
    response_model=OnDemandPushResponse,
    dependencies=[Depends(require_service_role)],
)
async def live_activity_start(
    payload: LiveActivityStartRequest,
    apns_config: APNsSigningConfig = Depends(get_apns_config),
    registry: SupabaseDeviceRegistry = Depends(get_device_registry),
):
    """
    Send one Live Activity push-to-start now.

    Returns:
        200: {"success": true}, APNs accepted the push.
        401/403: Missing or non-service-role credentials.
        404: No Live Activity token for the user.
        422: Neither userId nor deviceToken supplied.
        500: APNs not configured or token lookup failed.
        502: APNs rejected the push or was unreachable.
    """
    try:
        result = await start_live_activity(
            apns_config,
            registry,
            user_id=payload.user_id,
            device_token=payload.device_token,
            is_sandbox=payload.is_sandbox,
            task_id=payload.task_id,
            task_title=payload.task_title,
            scheduled_time=payload.scheduled_time,
            remaining_seconds=payload.remaining_seconds,
        )
    except Exception as exc:
        raise _on_demand_error(exc, "Live Activity push")

    return _on_demand_response(result, "Live Activity push sent successfully")


# ===================================================================
# POST /api/v1/push/voip/send
# ===================================================================

@router.post(
    "/voip/send",
    status_code=status.HTTP_200_OK,
    response_model=OnDemandPushResponse,
    dependencies=[Depends(require_service_role)],
)
async def voip_send(
    payload: VoipSendRequest,
    apns_config: APNsSigningConfig = Depends(get_apns_config),
    registry: SupabaseDeviceRegistry = Depends(get_device_registry),
):
    """
    Wake one device with a VoIP push now, bypassing the queue.

    Returns:
        200: {"success": true}, APNs accepted the push.
        401/403: Missing or non-service-role credentials.
        404: No VoIP token for the user.
        422: Neither userId nor deviceToken supplied.
        500: APNs not configured or token lookup failed.
        502: APNs rejected the push or was unreachable.
    """
    try:
        result = await send_voip_now(
            apns_config,
            registry,
            user_id=payload.user_id,
            device_token=payload.device_token,
            is_sandbox=payload.is_sandbox,
            task_id=payload.task_id,
            task_title=payload.task_title,
            task_time=payload.task_time,
        )
    except Exception as exc:
        raise _on_demand_error(exc, "VoIP push")

    return _on_demand_response(result, "VoIP push sent successfully")


# ===================================================================
# GET /api/v1/push/config-check
# ===================================================================

@router.get(
    "/config-check",
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_service_role)],
)
async def config_check(probe: bool = False) -> dict:
    """
    Report on the APNs configuration; with ?probe=true also ask Apple.

    The probe sends an empty VoIP push to a dummy token, so it never
    reaches a real device.
    """
    report = check_apns_configuration()

    if probe and report.get("token_generation", {}).get("success"):
        report["apns_test"] = await probe_apns(load_apns_config())

    return report
