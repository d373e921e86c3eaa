"""
On-demand VoIP wake — ring one device now, outside the queue.

Used by internal callers that want the AI call to start immediately
(e.g. "call me now" from the app server). Resolves one VoIP token,
signs, dispatches once, and returns the result. Nothing is queued,
retried, or written back to the notification store.

Token resolution:
- explicit device_token: used as-is, sandbox flag from the caller
- otherwise: the user's most recently updated VoIP registration
The APNs environment falls back to the process-wide setting when
neither the caller nor the registration says which one to use.
"""

import logging
from typing import Protocol

import httpx

from mindboat_push.core.config import APNsSigningConfig
from mindboat_push.core.errors import DeviceLookupError, NotFoundError
from mindboat_push.models.push import PushResult
from mindboat_push.services.apns import send_push
from mindboat_push.services.device_registry import VOIP_PLATFORM, PushTarget
from mindboat_push.services.live_activity import DEFAULT_TASK_TITLE
from mindboat_push.services.payloads import PushType, build_voip_payload
from mindboat_push.services.token_signer import sign_provider_token

logger = logging.getLogger(__name__)


class VoipDeviceSource(Protocol):
    def get_device(self, user_id: str, platform: str = VOIP_PLATFORM) -> dict | None: ...


def resolve_voip_target(
    registry: VoipDeviceSource,
    config: APNsSigningConfig,
    *,
    user_id: str | None,
    device_token: str | None,
    is_sandbox: bool | None,
) -> PushTarget:
    """
    Decide which VoIP token and APNs environment to push to.

    Raises:
        ValueError: If neither user_id nor device_token is given.
        NotFoundError: If the user has no VoIP registration with a token.
        DeviceLookupError: If the registry query itself fails.
    """
    default_sandbox = not config.use_production

    if device_token:
        return PushTarget(
            token=device_token,
            is_sandbox=default_sandbox if is_sandbox is None else is_sandbox,
        )
    if not user_id:
        raise ValueError("userId or deviceToken is required")

    try:
        device = registry.get_device(user_id, VOIP_PLATFORM)
    except Exception as exc:
        raise DeviceLookupError(f"Failed to fetch VoIP token: {exc}") from exc

    if not device or not device.get("device_token"):
        logger.info(f"No VoIP token found for user {user_id[:8]}...")
        raise NotFoundError("No VoIP token found for user")

    stored_sandbox = device.get("is_sandbox")
    return PushTarget(
        token=device["device_token"],
        is_sandbox=default_sandbox if stored_sandbox is None else bool(stored_sandbox),
    )


async def send_voip_now(
    config: APNsSigningConfig,
    registry: VoipDeviceSource,
    *,
    user_id: str | None = None,
    device_token: str | None = None,
    is_sandbox: bool | None = None,
    task_id: str | None = None,
    task_title: str | None = None,
    task_time: str | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> PushResult:
    """
    Send one VoIP wake push immediately and report the outcome.

    The payload is the same routine-reminder payload the queue sends,
    so the app handles both paths identically.

    Raises:
        ValueError: Neither user_id nor device_token supplied.
        NotFoundError: No VoIP token for the user.
        DeviceLookupError: The registry could not be read.
        KeyImportError: The private key could not be imported.
    """
    target = resolve_voip_target(
        registry,
        config,
        user_id=user_id,
        device_token=device_token,
        is_sandbox=is_sandbox,
    )

    payload = build_voip_payload(
        task_id or "",
        task_title or DEFAULT_TASK_TITLE,
        task_time,
    )

    signed_token = sign_provider_token(config)

    logger.info(
        f"Sending VoIP wake: user={(user_id or '-')[:8]}, task={task_id}, "
        f"sandbox={target.is_sandbox}"
    )

    return await send_push(
        target.token,
        payload,
        signed_token,
        config,
        PushType.VOIP,
        is_sandbox=target.is_sandbox,
        client=http_client,
    )
