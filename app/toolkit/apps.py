"""App config for toolkit (shared email and masking helpers, no models)."""

from django.apps import AppConfig


class ToolkitConfig(AppConfig):
    name = "toolkit"
    verbose_name = "Toolkit"
