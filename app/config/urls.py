"""
URL configuration for the Django application.

URL Structure:
    /admin/                                  - Django admin interface
    /api/v1/wallets/                         - Wallet endpoints
        webhooks/flutterwave/                - Flutterwave transfer webhook (POST)

The authenticated wallet API (wallet details, withdrawal requests) lives in
the API gateway; this project exposes only the provider callback.
"""

from django.contrib import admin
from django.urls import include, path

# =============================================================================
# API v1 Routes
# =============================================================================
api_v1_patterns = [
    path("wallets/", include("wallets.urls")),
]

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Wallet Admin"
admin.site.site_title = "Wallet Admin Portal"
admin.site.index_title = "Wallets, ledger and withdrawals"
