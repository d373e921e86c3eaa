"""
Push API Tests

Tests that:
1. POST /api/v1/push/process-queue requires a QStash signature or the service role key
2. The endpoint returns the BatchSummary from the queue processor
3. Missing APNs settings, key import failures, and queue read failures return 500
4. POST /api/v1/push/live-activity/start is service-role only and validates its body
5. Live Activity outcomes map to 200 / 404 / 502; lookup and dispatch failures are told apart
5b. POST /api/v1/push/voip/send is service-role only and maps outcomes the same way
6. GET /api/v1/push/config-check reports diagnostics and optionally probes APNs
7. GET /health reports whether APNs is configured

The queue processor and on-demand services are mocked here; their
behavior is covered by test_queue_processor.py, test_live_activity.py,
and test_voip_wake.py.

Run with: pytest tests/test_push_api.py -v
"""

import hashlib
import time
import uuid
from contextlib import ExitStack
from unittest.mock import AsyncMock, MagicMock, patch

import jwt
import pytest
from fastapi.testclient import TestClient

from mindboat_push.api.devices import get_device_registry
from mindboat_push.api.push import get_apns_config, get_notification_queue
from mindboat_push.core import config as settings
from mindboat_push.core.config import APNsSigningConfig
from mindboat_push.core.errors import (
    DeviceLookupError,
    KeyImportError,
    NotFoundError,
    QueueStoreError,
)
from mindboat_push.main import app
from mindboat_push.models.push import BatchSummary, NotificationResult, PushResult

SERVICE_KEY = "test-service-role-key"
TEST_SIGNING_KEY = "test_signing_key_for_unit_tests_only"
PROCESS_URL = "/api/v1/push/process-queue"
LIVE_ACTIVITY_URL = "/api/v1/push/live-activity/start"
VOIP_URL = "/api/v1/push/voip/send"

CONFIG = APNsSigningConfig(
    team_id="TEAM123456",
    key_id="KEY7654321",
    private_key="unused",
    bundle_id="com.mindboat.app",
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def client():
    """TestClient with APNs config and stores overridden."""
    app.dependency_overrides[get_apns_config] = lambda: CONFIG
    app.dependency_overrides[get_notification_queue] = lambda: MagicMock()
    app.dependency_overrides[get_device_registry] = lambda: MagicMock()
    with patch.object(settings, "SUPABASE_SERVICE_ROLE_KEY", SERVICE_KEY):
        yield TestClient(app)
    app.dependency_overrides.clear()


def _service_headers() -> dict:
    return {"Authorization": f"Bearer {SERVICE_KEY}"}


def _qstash_signature(body: bytes = b"", url: str = f"http://testserver{PROCESS_URL}") -> str:
    now = int(time.time())
    return jwt.encode(
        {
            "iss": "Upstash",
            "sub": url,
            "exp": now + 300,
            "nbf": now - 10,
            "iat": now - 10,
            "jti": f"msg_{uuid.uuid4().hex[:16]}",
            "body": hashlib.sha256(body).hexdigest(),
        },
        TEST_SIGNING_KEY,
        algorithm="HS256",
    )


def _summary() -> BatchSummary:
    return BatchSummary(
        processed=2,
        successful=1,
        failed=1,
        results=[
            NotificationResult(notification_id="n1", success=True),
            NotificationResult(notification_id="n2", success=False, error="No device token"),
        ],
    )


# ===================================================================
# 1-3. process-queue
# ===================================================================

class TestProcessQueueAuth:

    def test_no_credentials(self, client):
        response = client.post(PROCESS_URL)
        assert response.status_code == 401

    def test_wrong_bearer(self, client):
        response = client.post(PROCESS_URL, headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    def test_invalid_qstash_signature(self, client):
        with patch.object(settings, "QSTASH_CURRENT_SIGNING_KEY", TEST_SIGNING_KEY):
            response = client.post(PROCESS_URL, headers={"Upstash-Signature": "garbage"})
        assert response.status_code == 401
        assert "Invalid QStash signature" in response.json()["detail"]

    def test_valid_qstash_signature(self, client):
        with ExitStack() as stack:
            stack.enter_context(patch.object(settings, "QSTASH_CURRENT_SIGNING_KEY", TEST_SIGNING_KEY))
            stack.enter_context(patch.object(settings, "QSTASH_NEXT_SIGNING_KEY", ""))
            stack.enter_context(patch(
                "mindboat_push.api.push.process_pending_notifications",
                AsyncMock(return_value=BatchSummary()),
            ))
            response = client.post(PROCESS_URL, headers={"Upstash-Signature": _qstash_signature()})
        assert response.status_code == 200


class TestProcessQueue:

    def test_returns_batch_summary(self, client):
        with patch(
            "mindboat_push.api.push.process_pending_notifications",
            AsyncMock(return_value=_summary()),
        ) as process:
            response = client.post(PROCESS_URL, headers=_service_headers())

        assert response.status_code == 200
        data = response.json()
        assert data["processed"] == 2
        assert data["successful"] == 1
        assert data["failed"] == 1
        assert data["remaining"] == 0
        assert data["results"][1] == {
            "notification_id": "n2",
            "success": False,
            "error": "No device token",
            "persisted": True,
        }

        args, kwargs = process.call_args
        assert args[0] is CONFIG
        assert kwargs["batch_size"] == settings.PUSH_BATCH_SIZE

    def test_deadline_from_settings(self, client):
        with ExitStack() as stack:
            stack.enter_context(patch.object(settings, "PUSH_BATCH_DEADLINE_SECONDS", 30.0))
            process = stack.enter_context(patch(
                "mindboat_push.api.push.process_pending_notifications",
                AsyncMock(return_value=BatchSummary()),
            ))
            before = time.monotonic()
            client.post(PROCESS_URL, headers=_service_headers())

        deadline = process.call_args.kwargs["deadline"]
        assert before + 29 < deadline <= time.monotonic() + 30

    def test_no_deadline_by_default(self, client):
        with ExitStack() as stack:
            stack.enter_context(patch.object(settings, "PUSH_BATCH_DEADLINE_SECONDS", None))
            process = stack.enter_context(patch(
                "mindboat_push.api.push.process_pending_notifications",
                AsyncMock(return_value=BatchSummary()),
            ))
            client.post(PROCESS_URL, headers=_service_headers())
        assert process.call_args.kwargs["deadline"] is None

    def test_apns_not_configured(self, client):
        app.dependency_overrides.pop(get_apns_config)
        with patch.object(settings, "APNS_BUNDLE_ID", ""):
            response = client.post(PROCESS_URL, headers=_service_headers())

        assert response.status_code == 500
        detail = response.json()["detail"]
        assert detail["error"] == "APNs not configured"
        assert "APNS_BUNDLE_ID" in detail["missing"]

    def test_key_import_failure(self, client):
        with patch(
            "mindboat_push.api.push.process_pending_notifications",
            AsyncMock(side_effect=KeyImportError("Failed to import APNs private key")),
        ):
            response = client.post(PROCESS_URL, headers=_service_headers())
        assert response.status_code == 500
        assert "Failed to import" in response.json()["detail"]["message"]

    def test_queue_unreadable(self, client):
        with patch(
            "mindboat_push.api.push.process_pending_notifications",
            AsyncMock(side_effect=QueueStoreError("Failed to fetch pending notifications")),
        ):
            response = client.post(PROCESS_URL, headers=_service_headers())
        assert response.status_code == 500
        assert response.json()["detail"] == "Failed to fetch pending notifications"


# ===================================================================
# 4-5. live-activity/start
# ===================================================================

class TestLiveActivityStart:

    def test_requires_credentials(self, client):
        assert client.post(LIVE_ACTIVITY_URL, json={"userId": "u1"}).status_code == 401

    def test_rejects_non_service_token(self, client):
        response = client.post(
            LIVE_ACTIVITY_URL,
            json={"userId": "u1"},
            headers={"Authorization": "Bearer user-access-token"},
        )
        assert response.status_code == 403

    def test_requires_user_or_token(self, client):
        response = client.post(LIVE_ACTIVITY_URL, json={"taskId": "t1"}, headers=_service_headers())
        assert response.status_code == 422

    def test_negative_remaining_seconds(self, client):
        response = client.post(
            LIVE_ACTIVITY_URL,
            json={"userId": "u1", "remainingSeconds": -5},
            headers=_service_headers(),
        )
        assert response.status_code == 422

    def test_success(self, client):
        with patch(
            "mindboat_push.api.push.start_live_activity",
            AsyncMock(return_value=PushResult(success=True, status_code=200)),
        ) as start:
            response = client.post(
                LIVE_ACTIVITY_URL,
                json={"userId": "u1", "taskId": "t1", "taskTitle": "Stretch", "scheduledTime": "09:00"},
                headers=_service_headers(),
            )

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert response.json()["message"] == "Live Activity push sent successfully"

        kwargs = start.call_args.kwargs
        assert kwargs["user_id"] == "u1"
        assert kwargs["task_title"] == "Stretch"
        assert kwargs["remaining_seconds"] == 60
        assert kwargs["device_token"] is None

    def test_explicit_device_token(self, client):
        with patch(
            "mindboat_push.api.push.start_live_activity",
            AsyncMock(return_value=PushResult(success=True, status_code=200)),
        ) as start:
            client.post(
                LIVE_ACTIVITY_URL,
                json={"deviceToken": "la-token", "isSandbox": True, "remainingSeconds": 300},
                headers=_service_headers(),
            )
        kwargs = start.call_args.kwargs
        assert kwargs["device_token"] == "la-token"
        assert kwargs["is_sandbox"] is True
        assert kwargs["remaining_seconds"] == 300

    def test_no_token_for_user(self, client):
        with patch(
            "mindboat_push.api.push.start_live_activity",
            AsyncMock(side_effect=NotFoundError("No Live Activity token found for user")),
        ):
            response = client.post(LIVE_ACTIVITY_URL, json={"userId": "u1"}, headers=_service_headers())
        assert response.status_code == 404
        assert response.json()["detail"] == "No Live Activity token found for user"

    def test_apns_rejection(self, client):
        with patch(
            "mindboat_push.api.push.start_live_activity",
            AsyncMock(return_value=PushResult(
                success=False,
                status_code=400,
                error_detail='APNs 400: {"reason":"BadDeviceToken"}',
            )),
        ):
            response = client.post(LIVE_ACTIVITY_URL, json={"userId": "u1"}, headers=_service_headers())

        assert response.status_code == 502
        assert response.json()["success"] is False
        assert "BadDeviceToken" in response.json()["error"]

    def test_token_lookup_failure(self, client):
        with patch(
            "mindboat_push.api.push.start_live_activity",
            AsyncMock(side_effect=DeviceLookupError(
                "Failed to fetch Live Activity token: database unavailable"
            )),
        ):
            response = client.post(LIVE_ACTIVITY_URL, json={"userId": "u1"}, headers=_service_headers())
        assert response.status_code == 500
        assert response.json()["detail"] == (
            "Failed to fetch Live Activity token: database unavailable"
        )

    def test_dispatch_side_failure_is_not_reported_as_lookup(self, client):
        with patch(
            "mindboat_push.api.push.start_live_activity",
            AsyncMock(side_effect=RuntimeError("Invalid non-printable ASCII character in URL")),
        ):
            response = client.post(LIVE_ACTIVITY_URL, json={"userId": "u1"}, headers=_service_headers())
        assert response.status_code == 500
        detail = response.json()["detail"]
        assert detail.startswith("Live Activity push failed")
        assert "fetch" not in detail


# ===================================================================
# 5b. voip/send
# ===================================================================

class TestVoipSend:

    def test_requires_service_role(self, client):
        assert client.post(VOIP_URL, json={"userId": "u1"}).status_code == 401
        response = client.post(
            VOIP_URL,
            json={"userId": "u1"},
            headers={"Authorization": "Bearer user-access-token"},
        )
        assert response.status_code == 403

    def test_requires_user_or_token(self, client):
        response = client.post(VOIP_URL, json={"taskId": "t1"}, headers=_service_headers())
        assert response.status_code == 422

    def test_success(self, client):
        with patch(
            "mindboat_push.api.push.send_voip_now",
            AsyncMock(return_value=PushResult(success=True, status_code=200)),
        ) as send:
            response = client.post(
                VOIP_URL,
                json={"userId": "u1", "taskId": "t1", "taskTitle": "Stretch", "taskTime": "09:00"},
                headers=_service_headers(),
            )

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "message": "VoIP push sent successfully",
            "error": None,
        }
        kwargs = send.call_args.kwargs
        assert kwargs["user_id"] == "u1"
        assert kwargs["task_id"] == "t1"
        assert kwargs["task_time"] == "09:00"
        assert kwargs["device_token"] is None

    def test_no_voip_token(self, client):
        with patch(
            "mindboat_push.api.push.send_voip_now",
            AsyncMock(side_effect=NotFoundError("No VoIP token found for user")),
        ):
            response = client.post(VOIP_URL, json={"userId": "u1"}, headers=_service_headers())
        assert response.status_code == 404
        assert response.json()["detail"] == "No VoIP token found for user"

    def test_apns_rejection(self, client):
        with patch(
            "mindboat_push.api.push.send_voip_now",
            AsyncMock(return_value=PushResult(
                success=False,
                status_code=410,
                error_detail='APNs 410: {"reason":"Unregistered"}',
            )),
        ):
            response = client.post(
                VOIP_URL, json={"deviceToken": "voip-token"}, headers=_service_headers(),
            )
        assert response.status_code == 502
        assert response.json()["success"] is False
        assert "Unregistered" in response.json()["error"]

    def test_lookup_failure(self, client):
        with patch(
            "mindboat_push.api.push.send_voip_now",
            AsyncMock(side_effect=DeviceLookupError("Failed to fetch VoIP token: timeout")),
        ):
            response = client.post(VOIP_URL, json={"userId": "u1"}, headers=_service_headers())
        assert response.status_code == 500
        assert response.json()["detail"] == "Failed to fetch VoIP token: timeout"


# ===================================================================
# 6-7. Diagnostics and health
# ===================================================================

class TestConfigCheck:

    def test_requires_service_role(self, client):
        assert client.get("/api/v1/push/config-check").status_code == 401

    def test_report_without_probe(self, client):
        report = {"missing": [], "token_generation": {"success": True, "token_length": 200}}
        with ExitStack() as stack:
            stack.enter_context(patch(
                "mindboat_push.api.push.check_apns_configuration", return_value=report,
            ))
            probe = stack.enter_context(patch("mindboat_push.api.push.probe_apns", AsyncMock()))
            response = client.get("/api/v1/push/config-check", headers=_service_headers())

        assert response.status_code == 200
        assert response.json() == report
        probe.assert_not_called()

    def test_probe_runs_when_token_generation_succeeds(self, client):
        report = {"missing": [], "token_generation": {"success": True, "token_length": 200}}
        with ExitStack() as stack:
            stack.enter_context(patch(
                "mindboat_push.api.push.check_apns_configuration", return_value=report,
            ))
            stack.enter_context(patch("mindboat_push.api.push.load_apns_config", return_value=CONFIG))
            stack.enter_context(patch(
                "mindboat_push.api.push.probe_apns",
                AsyncMock(return_value={"status": 400, "verdict": "credentials accepted"}),
            ))
            response = client.get(
                "/api/v1/push/config-check?probe=true", headers=_service_headers(),
            )
        assert response.json()["apns_test"]["status"] == 400

    def test_probe_skipped_when_token_generation_fails(self, client):
        report = {"missing": ["APNS_KEY_ID"], "token_generation": {"success": False, "error": "x"}}
        with ExitStack() as stack:
            stack.enter_context(patch(
                "mindboat_push.api.push.check_apns_configuration", return_value=report,
            ))
            probe = stack.enter_context(patch("mindboat_push.api.push.probe_apns", AsyncMock()))
            response = client.get(
                "/api/v1/push/config-check?probe=true", headers=_service_headers(),
            )
        assert "apns_test" not in response.json()
        probe.assert_not_called()


class TestHealth:

    def test_health(self, client):
        with ExitStack() as stack:
            stack.enter_context(patch("mindboat_push.main.is_apns_configured", return_value=True))
            stack.enter_context(patch("mindboat_push.main.is_qstash_configured", return_value=False))
            response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {
            "status": "ok",
            "apns_configured": True,
            "qstash_configured": False,
        }
