"""
Root pytest configuration for the Django project.

Settings are pointed at config.settings before collection. Shared
fixtures and test markers live in app/conftest.py; wallet fixtures in
app/wallets/conftest.py.
"""

import os

# Ensure Django settings are configured before any tests run
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")
