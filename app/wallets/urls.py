"""
URL configuration for the wallets app.

Routes:
    - POST /webhooks/flutterwave/ - Flutterwave transfer webhook endpoint

All routes are prefixed with /api/v1/wallets/ when included in the main URLconf.

Usage:
    # In config/urls.py
    api_v1_patterns = [
        path("wallets/", include("wallets.urls")),
    ]
"""

from django.urls import path

from wallets.webhooks.views import flutterwave_webhook

app_name = "wallets"

urlpatterns = [
    # Webhook endpoints
    path("webhooks/flutterwave/", flutterwave_webhook, name="flutterwave_webhook"),
]
