"""
Tests for the Flutterwave webhook view.

Tests verify:
- Signature verification (verif-hash and HMAC)
- Idempotent WebhookEvent creation keyed by transfer id and status
- Events are queued for async processing
- Malformed payloads are rejected
"""

import hashlib
import hmac
import json
from unittest.mock import patch

import pytest

from wallets.models import WebhookEvent
from wallets.state_machines import WebhookEventStatus
from wallets.tasks import retry_failed_webhooks
from wallets.tests.factories import transfer_payload
from wallets.webhooks.views import build_event_key, flutterwave_webhook

WEBHOOK_HASH = "test-webhook-hash"


def make_webhook_request(rf, payload, headers=None):
    """Create a webhook request with the Flutterwave secret hash header."""
    body = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
    headers = {"verif-hash": WEBHOOK_HASH} if headers is None else headers
    return rf.post(
        "/api/v1/wallets/webhooks/flutterwave/",
        data=body,
        content_type="application/json",
        headers=headers,
    )


@pytest.fixture
def mock_delay():
    with patch("wallets.tasks.process_flutterwave_webhook_event.delay") as mock:
        yield mock


# =============================================================================
# Signature Verification
# =============================================================================


@pytest.mark.django_db
class TestSignature:
    def test_valid_verif_hash(self, rf, mock_delay):
        response = flutterwave_webhook(
            make_webhook_request(rf, transfer_payload(1, "SUCCESSFUL", reference="wd_1"))
        )

        assert response.status_code == 200

    def test_wrong_verif_hash(self, rf, mock_delay):
        request = make_webhook_request(
            rf, transfer_payload(1, "SUCCESSFUL"), headers={"verif-hash": "nope"}
        )

        response = flutterwave_webhook(request)

        assert response.status_code == 401
        assert not WebhookEvent.objects.exists()
        mock_delay.assert_not_called()

    def test_missing_signature(self, rf, mock_delay):
        response = flutterwave_webhook(
            make_webhook_request(rf, transfer_payload(1, "SUCCESSFUL"), headers={})
        )

        assert response.status_code == 401

    def test_hmac_signature(self, rf, mock_delay):
        body = json.dumps(transfer_payload(2, "FAILED", reference="wd_2")).encode()
        signature = hmac.new(WEBHOOK_HASH.encode(), body, hashlib.sha256).hexdigest()

        response = flutterwave_webhook(
            make_webhook_request(rf, body, headers={"flutterwave-signature": signature})
        )

        assert response.status_code == 200

    def test_unconfigured_secret_rejected_outside_debug(self, rf, settings, mock_delay):
        settings.FLUTTERWAVE_WEBHOOK_SECRET_HASH = ""
        settings.DEBUG = False

        response = flutterwave_webhook(make_webhook_request(rf, transfer_payload(1, "NEW")))

        assert response.status_code == 401

    def test_unconfigured_secret_accepted_in_debug(self, rf, settings, mock_delay):
        settings.FLUTTERWAVE_WEBHOOK_SECRET_HASH = ""
        settings.DEBUG = True

        response = flutterwave_webhook(
            make_webhook_request(rf, transfer_payload(1, "NEW"), headers={})
        )

        assert response.status_code == 200


# =============================================================================
# Event Storage
# =============================================================================


@pytest.mark.django_db
class TestEventStorage:
    def test_creates_event_and_queues(self, rf, mock_delay):
        payload = transfer_payload(408221, "SUCCESSFUL", reference="wd_1")

        flutterwave_webhook(make_webhook_request(rf, payload))

        event = WebhookEvent.objects.get()
        assert event.event_key == "transfer.completed:408221:SUCCESSFUL"
        assert event.event_type == "transfer.completed"
        assert event.status == WebhookEventStatus.PENDING
        assert event.payload == payload
        mock_delay.assert_called_once_with(str(event.id))

    def test_retry_reuses_event(self, rf, mock_delay):
        """Should keep one row for a retried delivery and queue it again."""
        payload = transfer_payload(408221, "SUCCESSFUL")

        flutterwave_webhook(make_webhook_request(rf, payload))
        flutterwave_webhook(make_webhook_request(rf, payload))

        assert WebhookEvent.objects.count() == 1
        assert mock_delay.call_count == 2

    def test_status_change_is_a_new_event(self, rf, mock_delay):
        flutterwave_webhook(make_webhook_request(rf, transfer_payload(408221, "PENDING")))
        flutterwave_webhook(make_webhook_request(rf, transfer_payload(408221, "SUCCESSFUL")))

        assert WebhookEvent.objects.count() == 2

    def test_processed_event_not_requeued(self, rf, mock_delay):
        payload = transfer_payload(408221, "SUCCESSFUL")
        flutterwave_webhook(make_webhook_request(rf, payload))
        WebhookEvent.objects.update(status=WebhookEventStatus.PROCESSED)
        mock_delay.reset_mock()

        response = flutterwave_webhook(make_webhook_request(rf, payload))

        assert response.status_code == 200
        assert response.content == b"Already processed"
        mock_delay.assert_not_called()

    def test_broker_failure_still_acknowledges(self, rf, mock_delay):
        mock_delay.side_effect = ConnectionError("broker down")

        response = flutterwave_webhook(
            make_webhook_request(rf, transfer_payload(1, "SUCCESSFUL"))
        )

        assert response.status_code == 200
        event = WebhookEvent.objects.get()
        assert event.status == WebhookEventStatus.FAILED
        assert event.error_message == "Failed to queue: ConnectionError"

    def test_unqueued_event_is_retried(self, rf, mock_delay):
        mock_delay.side_effect = ConnectionError("broker down")
        flutterwave_webhook(make_webhook_request(rf, transfer_payload(1, "SUCCESSFUL")))
        mock_delay.side_effect = None
        mock_delay.reset_mock()

        result = retry_failed_webhooks()

        assert result == {"queued_count": 1}
        mock_delay.assert_called_once_with(str(WebhookEvent.objects.get().id))

    def test_broker_failure_leaves_processing_event_alone(self, rf, mock_delay):
        payload = transfer_payload(1, "SUCCESSFUL")
        flutterwave_webhook(make_webhook_request(rf, payload))
        WebhookEvent.objects.update(status=WebhookEventStatus.PROCESSING)
        mock_delay.side_effect = ConnectionError("broker down")

        flutterwave_webhook(make_webhook_request(rf, payload))

        assert WebhookEvent.objects.get().status == WebhookEventStatus.PROCESSING


@pytest.mark.django_db
class TestMalformedPayload:
    @pytest.mark.parametrize(
        "body",
        [
            b"not json",
            b"[1, 2]",
            json.dumps({"data": {"id": 1}}).encode(),
            json.dumps({"event": "transfer.completed", "data": "x"}).encode(),
            json.dumps({"event": "transfer.completed", "data": {"status": "FAILED"}}).encode(),
        ],
    )
    def test_rejected(self, rf, mock_delay, body):
        response = flutterwave_webhook(make_webhook_request(rf, body))

        assert response.status_code == 400
        assert not WebhookEvent.objects.exists()

    def test_get_not_allowed(self, rf):
        response = flutterwave_webhook(rf.get("/api/v1/wallets/webhooks/flutterwave/"))

        assert response.status_code == 405


class TestBuildEventKey:
    def test_prefers_transfer_id(self):
        assert build_event_key("transfer.completed", {"id": 5, "reference": "r", "status": "failed"}) == (
            "transfer.completed:5:FAILED"
        )

    def test_falls_back_to_reference(self):
        assert build_event_key("transfer.completed", {"reference": "wd_1"}) == (
            "transfer.completed:wd_1:"
        )

    def test_none_without_identifier(self):
        assert build_event_key("transfer.completed", {"status": "FAILED"}) is None
