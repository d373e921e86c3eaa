"""
On-demand Live Activity start — push-to-start a task countdown now.

Independent of the queue: resolves one Live Activity token, signs,
dispatches once, and returns the result to the caller. Nothing is
queued or retried.

Token resolution:
- explicit device_token: used as-is, sandbox flag from the caller
- otherwise: the user's most recently updated VoIP registration that
  has a Live Activity token, with that row's sandbox flag
"""

import logging
from datetime import datetime
from typing import Protocol

import httpx

from mindboat_push.core.config import APNsSigningConfig
from mindboat_push.core.errors import DeviceLookupError, NotFoundError
from mindboat_push.models.push import PushResult
from mindboat_push.services.apns import send_push
from mindboat_push.services.device_registry import PushTarget
from mindboat_push.services.payloads import PushType, build_live_activity_start_payload
from mindboat_push.services.token_signer import sign_provider_token

logger = logging.getLogger(__name__)

DEFAULT_REMAINING_SECONDS = 60
DEFAULT_TASK_TITLE = "Task reminder"


class LiveActivityTokenSource(Protocol):
    def get_live_activity_token(self, user_id: str) -> PushTarget | None: ...


def resolve_live_activity_target(
    registry: LiveActivityTokenSource,
    *,
    user_id: str | None,
    device_token: str | None,
    is_sandbox: bool | None,
) -> PushTarget:
    """
    Decide which token and APNs environment to push to.

    Raises:
        ValueError: If neither user_id nor device_token is given.
        NotFoundError: If the user has no Live Activity token on file.
        DeviceLookupError: If the registry query itself fails.
    """
    if device_token:
        return PushTarget(token=device_token, is_sandbox=bool(is_sandbox))
    if not user_id:
        raise ValueError("userId or deviceToken is required")

    try:
        target = registry.get_live_activity_token(user_id)
    except Exception as exc:
        raise DeviceLookupError(f"Failed to fetch Live Activity token: {exc}") from exc

    if target is None:
        logger.info(f"No Live Activity token found for user {user_id[:8]}...")
        raise NotFoundError("No Live Activity token found for user")
    return target


async def start_live_activity(
    config: APNsSigningConfig,
    registry: LiveActivityTokenSource,
    *,
    user_id: str | None = None,
    device_token: str | None = None,
    is_sandbox: bool | None = None,
    task_id: str | None = None,
    task_title: str | None = None,
    scheduled_time: str | None = None,
    remaining_seconds: int = DEFAULT_REMAINING_SECONDS,
    http_client: httpx.AsyncClient | None = None,
) -> PushResult:
    """
    Send one Live Activity push-to-start and report the outcome.

    Token resolution happens before signing, so a missing token is
    reported as NotFoundError without any APNs work.

    Raises:
        ValueError: Neither user_id nor device_token supplied.
        NotFoundError: No Live Activity token for the user.
        DeviceLookupError: The registry could not be read.
        KeyImportError: The private key could not be imported.
    """
    target = resolve_live_activity_target(
        registry,
        user_id=user_id,
        device_token=device_token,
        is_sandbox=is_sandbox,
    )

    payload = build_live_activity_start_payload(
        task_id or "",
        task_title or DEFAULT_TASK_TITLE,
        scheduled_time or datetime.now().strftime("%H:%M"),
        user_id or "",
        remaining_seconds,
    )

    signed_token = sign_provider_token(config)

    logger.info(
        f"Starting Live Activity: user={(user_id or '-')[:8]}, task={task_id}, "
        f"remaining={remaining_seconds}s, sandbox={target.is_sandbox}"
    )

    return await send_push(
        target.token,
        payload,
        signed_token,
        config,
        PushType.LIVE_ACTIVITY,
        is_sandbox=target.is_sandbox,
        client=http_client,
    )
