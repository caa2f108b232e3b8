"""
Webhook endpoint view for Flutterwave.

The view:
1. Verifies the ``verif-hash`` / ``flutterwave-signature`` header
2. Creates/retrieves the WebhookEvent record (idempotent)
3. Queues the event for async processing
4. Returns immediately

Usage:
    # In wallets/urls.py
    from wallets.webhooks.views import flutterwave_webhook

    urlpatterns = [
        path("webhooks/flutterwave/", flutterwave_webhook, name="flutterwave_webhook"),
    ]
"""

from __future__ import annotations

import json
import logging

from django.http import HttpRequest, HttpResponse
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from wallets.adapters import FlutterwaveAdapter
from wallets.models import WebhookEvent
from wallets.state_machines import WebhookEventStatus

logger = logging.getLogger(__name__)


def build_event_key(event_type: str, data: dict) -> str | None:
    """
    Idempotency key for a Flutterwave event.

    Flutterwave retries send the same transfer id and status, so they map
    to the same key; a later status change for the same transfer does not.
    """
    identifier = data.get("id") or data.get("reference")
    if identifier is None:
        return None
    status = str(data.get("status") or "").upper()
    return f"{event_type}:{identifier}:{status}"


@csrf_exempt
@require_POST
def flutterwave_webhook(request: HttpRequest) -> HttpResponse:
    """
    Receive and queue Flutterwave webhook events.

    Returns:
        HttpResponse with status:
        - 200: Event accepted (new or duplicate)
        - 400: Malformed payload
        - 401: Invalid or missing signature
    """
    payload = request.body

    adapter = FlutterwaveAdapter.default()
    if not adapter.verify_webhook_signature(request.headers, payload):
        logger.warning("Flutterwave webhook signature verification failed")
        return HttpResponse("Invalid signature", status=401)

    try:
        event_data = json.loads(payload)
    except (ValueError, UnicodeDecodeError):
        logger.warning("Flutterwave webhook body is not valid JSON")
        return HttpResponse("Invalid payload", status=400)

    if not isinstance(event_data, dict):
        return HttpResponse("Invalid payload", status=400)

    event_type = event_data.get("event")
    data = event_data.get("data")
    if not event_type or not isinstance(data, dict):
        logger.warning("Webhook missing required fields")
        return HttpResponse("Invalid event", status=400)

    event_key = build_event_key(event_type, data)
    if event_key is None:
        logger.warning(
            "Webhook has no transfer id or reference",
            extra={"event_type": event_type},
        )
        return HttpResponse("Invalid event", status=400)

    logger.info(
        f"Received Flutterwave webhook: {event_type}",
        extra={"event_key": event_key, "event_type": event_type},
    )

    webhook_event, created = WebhookEvent.objects.get_or_create(
        event_key=event_key,
        defaults={
            "event_type": event_type,
            "payload": event_data,
            "status": WebhookEventStatus.PENDING,
        },
    )

    if not created:
        if webhook_event.status == WebhookEventStatus.PROCESSED:
            logger.info(
                "Webhook already processed, returning success",
                extra={"event_key": event_key},
            )
            return HttpResponse("Already processed", status=200)

        logger.info(
            f"Webhook already exists with status: {webhook_event.status}",
            extra={"event_key": event_key},
        )

    try:
        from wallets.tasks import process_flutterwave_webhook_event

        process_flutterwave_webhook_event.delay(str(webhook_event.id))
        logger.info(
            "Webhook queued for processing",
            extra={"event_key": event_key, "webhook_event_id": str(webhook_event.id)},
        )
    except Exception as e:
        logger.error(
            f"Failed to queue webhook: {type(e).__name__}",
            extra={"event_key": event_key},
            exc_info=True,
        )
        # FAILED rows are re-queued by retry_failed_webhooks
        WebhookEvent.objects.filter(
            pk=webhook_event.pk, status=WebhookEventStatus.PENDING
        ).update(
            status=WebhookEventStatus.FAILED,
            error_message=f"Failed to queue: {type(e).__name__}",
            updated_at=timezone.now(),
        )

    return HttpResponse("Accepted", status=200)
