"""
Shared services used by the wallet subsystem.

- EmailService: template emails for the notification outbox
"""

from toolkit.services.email import EmailService

__all__ = ["EmailService"]
