"""
APNs Configuration Diagnostics — verify the signing identity end to end.

Used by operators after rotating keys or moving environments:
1. Which APNs variables are set (lengths only for secrets).
2. The shape of the inline private key (PEM markers, escaped newlines).
3. Whether the key imports and a provider token can be signed.
4. Optionally, a live probe: an empty VoIP push to an all-zero device
   token. Apple answering 400 BadDeviceToken means it accepted the
   provider token; 403 means the team/key/private key are wrong.
"""

import logging

import httpx

from mindboat_push.core import config as settings
from mindboat_push.core.config import APNsSigningConfig
from mindboat_push.core.errors import ConfigurationError
from mindboat_push.services.apns import apns_base_url, send_push
from mindboat_push.services.payloads import PushType
from mindboat_push.services.token_signer import PEM_FOOTER, PEM_HEADER, sign_provider_token

logger = logging.getLogger(__name__)

PROBE_DEVICE_TOKEN = "0" * 64


def _describe_secret(value: str) -> str:
    return f"set ({len(value)} chars)" if value else "missing"


def _describe_key_format(raw_key: str) -> dict:
    return {
        "has_real_newlines": "\n" in raw_key,
        "has_escaped_newlines": "\\n" in raw_key,
        "has_header": PEM_HEADER in raw_key or "-----BEGIN" in raw_key,
        "has_footer": PEM_FOOTER in raw_key or "-----END" in raw_key,
    }


def check_apns_configuration() -> dict:
    """
    Report on the APNs environment without sending anything.

    Secret values are never echoed back; only whether they are set
    and how long they are.
    """
    report: dict = {
        "env_check": {
            "APNS_TEAM_ID": settings.APNS_TEAM_ID or "missing",
            "APNS_KEY_ID": settings.APNS_KEY_ID or "missing",
            "APNS_AUTH_KEY": _describe_secret(settings.APNS_AUTH_KEY),
            "APNS_BUNDLE_ID": settings.APNS_BUNDLE_ID or "missing",
            "APNS_PRODUCTION": settings.APNS_PRODUCTION,
            "SUPABASE_URL": "set" if settings.SUPABASE_URL else "missing",
            "SUPABASE_SERVICE_ROLE_KEY": _describe_secret(settings.SUPABASE_SERVICE_ROLE_KEY),
        },
        "missing": settings.missing_apns_settings(),
    }

    if settings.APNS_AUTH_KEY:
        report["auth_key_format"] = _describe_key_format(settings.APNS_AUTH_KEY)

    try:
        apns_config = settings.load_apns_config()
        token = sign_provider_token(apns_config)
    except ConfigurationError as exc:
        report["token_generation"] = {"success": False, "error": str(exc)}
        return report

    report["token_generation"] = {
        "success": True,
        "token_length": len(token),
    }
    return report


async def probe_apns(
    config: APNsSigningConfig,
    *,
    is_sandbox: bool | None = None,
    client: httpx.AsyncClient | None = None,
) -> dict:
    """
    Send an empty VoIP push to a dummy token and interpret Apple's answer.

    Raises:
        KeyImportError: If the private key cannot be imported.
    """
    if is_sandbox is None:
        is_sandbox = not config.use_production
    token = sign_provider_token(config)

    result = await send_push(
        PROBE_DEVICE_TOKEN,
        {"aps": {}},
        token,
        config,
        PushType.VOIP,
        is_sandbox=is_sandbox,
        client=client,
    )

    detail = result.error_detail or ""
    if result.status_code == 400 and "BadDeviceToken" in detail:
        verdict = "credentials accepted (BadDeviceToken expected for the dummy token)"
    elif result.status_code == 403:
        verdict = "authentication failed: check key id, team id, and private key"
    else:
        verdict = f"unexpected response: {result.status_code or detail}"

    logger.info(f"APNs probe: status={result.status_code}, verdict={verdict}")
    return {
        "apns_host": apns_base_url(is_sandbox),
        "status": result.status_code,
        "response": detail,
        "verdict": verdict,
    }
