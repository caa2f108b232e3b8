"""
Toolkit - Shared domain utilities & services.

Key components:
    - services/email.py: EmailService class
    - helpers.py: PII masking (mask_account_number, mask_email)
    - protocols.py: EmailSender interface

Usage:
    from toolkit.services.email import EmailService
    from toolkit.helpers import mask_account_number

Note:
    This app has no models.
"""
