"""
WSGI entry point.

Serves the admin and the Flutterwave webhook endpoint; static files are
served by WhiteNoise.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_wsgi_application()
