"""
APNs Dispatch Client — authenticated HTTP/2 delivery to Apple.

Sends one push per call to Apple's APNs provider API and reports the
outcome as a PushResult. Host and topic are chosen per call:

- Host: sandbox for development-signed builds, production otherwise.
  The flag travels with the device registration, not the process.
- Topic: <bundle id> + the push type's suffix (".voip" or
  ".push-type.liveactivity").

Every request is sent with apns-priority 10 and apns-expiration 0 so
Apple delivers immediately or drops the push instead of storing it.
Non-200 responses are surfaced verbatim; classification of Apple's
reason codes is left to callers and operators.
"""

import logging

import httpx

from mindboat_push.core.config import APNS_REQUEST_TIMEOUT_SECONDS, APNsSigningConfig
from mindboat_push.core.errors import DispatchError
from mindboat_push.models.push import PushResult
from mindboat_push.services.payloads import PushType

logger = logging.getLogger(__name__)

# APNs endpoints
APNS_PRODUCTION_URL = "https://api.push.apple.com"
APNS_SANDBOX_URL = "https://api.sandbox.push.apple.com"


def apns_base_url(is_sandbox: bool) -> str:
    """Pick the APNs host matching the device token's environment."""
    return APNS_SANDBOX_URL if is_sandbox else APNS_PRODUCTION_URL


def build_apns_headers(
    signed_token: str,
    config: APNsSigningConfig,
    push_type: PushType,
) -> dict[str, str]:
    """Request headers for a single APNs POST."""
    return {
        "authorization": f"bearer {signed_token}",
        "apns-topic": push_type.topic(config.bundle_id),
        "apns-push-type": push_type.header_value,
        "apns-priority": "10",
        "apns-expiration": "0",
        "content-type": "application/json",
    }


async def _post_to_apns(
    client: httpx.AsyncClient,
    url: str,
    payload: dict,
    headers: dict[str, str],
    timeout: float,
) -> httpx.Response:
    """
    POST the payload and raise DispatchError for anything but 200.

    Transport failures (DNS, TLS, connect/read timeouts) are wrapped in
    DispatchError with the exception message as detail.
    """
    try:
        response = await client.post(url, json=payload, headers=headers, timeout=timeout)
    except httpx.RequestError as exc:
        detail = str(exc) or exc.__class__.__name__
        raise DispatchError(detail) from exc

    if response.status_code != 200:
        raise DispatchError(
            f"APNs {response.status_code}: {response.text}",
            status_code=response.status_code,
        )
    return response


async def send_push(
    device_token: str,
    payload: dict,
    signed_token: str,
    config: APNsSigningConfig,
    push_type: PushType,
    *,
    is_sandbox: bool,
    client: httpx.AsyncClient | None = None,
    timeout: float = APNS_REQUEST_TIMEOUT_SECONDS,
) -> PushResult:
    """
    Send a push notification to a single device via APNs.

    Args:
        device_token: Hex-encoded device (or Live Activity) token.
        payload: JSON body from the payload builders.
        signed_token: ES256 provider token from the token signer.
        config: APNs identity (bundle id drives the topic).
        push_type: VOIP or LIVE_ACTIVITY.
        is_sandbox: True to target api.sandbox.push.apple.com.
        client: Optional shared HTTP/2 client (a batch reuses one
            connection); a short-lived client is opened when omitted.
        timeout: Per-request timeout in seconds.

    Returns:
        PushResult with success, status_code, apns_id, and the raw APNs
        error text (or transport error message) on failure. Never raises
        for delivery failures.
    """
    url = f"{apns_base_url(is_sandbox)}/3/device/{device_token}"
    headers = build_apns_headers(signed_token, config, push_type)

    try:
        if client is not None:
            response = await _post_to_apns(client, url, payload, headers, timeout)
        else:
            async with httpx.AsyncClient(http2=True) as own_client:
                response = await _post_to_apns(own_client, url, payload, headers, timeout)
    except DispatchError as exc:
        logger.warning(
            f"APNs delivery failed: type={push_type.header_value}, "
            f"status={exc.status_code}, detail={exc.detail}, "
            f"device={device_token[:16]}..., sandbox={is_sandbox}"
        )
        return PushResult(
            success=False,
            error_detail=exc.detail,
            status_code=exc.status_code,
        )

    apns_id = response.headers.get("apns-id")
    logger.info(
        f"Push delivered: type={push_type.header_value}, apns_id={apns_id}, "
        f"device={device_token[:16]}..., sandbox={is_sandbox}"
    )
    return PushResult(success=True, status_code=200, apns_id=apns_id)
