"""
Email service for centralized email sending.

This module provides the EmailService class for sending emails with
Django template rendering for plain text and (optional) HTML bodies.

Wallet emails are not sent from request code: they are queued in the
wallet notification outbox and delivered by a Celery task that calls
EmailService.send(..., fail_silently=False) so failures can be retried.

Configuration:
    Email settings are read from Django settings:
    - EMAIL_BACKEND
    - EMAIL_HOST, EMAIL_PORT
    - DEFAULT_FROM_EMAIL

Usage:
    from toolkit.services.email import EmailService

    EmailService.send(
        to="organizer@example.com",
        subject="Withdrawal successful",
        template_name="wallets/emails/withdrawal_success",
        context={"payout_amount": "95,000.00"},
    )
"""

from __future__ import annotations

import logging

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template import TemplateDoesNotExist
from django.template.loader import render_to_string

logger = logging.getLogger(__name__)


class EmailService:
    """
    Centralized email sending with template support.

    Features:
        - Template-based emails (plain text required, HTML optional)
        - Raw content emails
        - Optional exception propagation for retrying callers
    """

    @staticmethod
    def send(
        to: str | list[str],
        subject: str,
        template_name: str,
        context: dict,
        from_email: str | None = None,
        reply_to: str | None = None,
        fail_silently: bool = True,
    ) -> bool:
        """
        Send email using a template.

        Args:
            to: Recipient email address(es)
            subject: Email subject line
            template_name: Name of template (without extension)
                           Looks for: {template_name}.txt and {template_name}.html
            context: Template context variables
            from_email: Sender email (defaults to DEFAULT_FROM_EMAIL)
            reply_to: Reply-to address
            fail_silently: If False, template and transport errors propagate

        Returns:
            True if email was sent successfully

        Raises:
            TemplateDoesNotExist: If the text template is missing and
                fail_silently is False
        """
        try:
            text_content = render_to_string(f"{template_name}.txt", context)
        except TemplateDoesNotExist:
            logger.error(
                "Email template missing",
                extra={"template_name": template_name},
            )
            if not fail_silently:
                raise
            return False

        try:
            html_content = render_to_string(f"{template_name}.html", context)
        except TemplateDoesNotExist:
            html_content = None

        return EmailService.send_raw(
            to=to,
            subject=subject,
            body_text=text_content,
            body_html=html_content,
            from_email=from_email,
            reply_to=reply_to,
            fail_silently=fail_silently,
        )

    @staticmethod
    def send_raw(
        to: str | list[str],
        subject: str,
        body_text: str,
        body_html: str | None = None,
        from_email: str | None = None,
        reply_to: str | None = None,
        fail_silently: bool = True,
    ) -> bool:
        """
        Send email with raw content (no template).

        Returns:
            True if email was sent successfully
        """
        if isinstance(to, str):
            to = [to]

        from_email = from_email or settings.DEFAULT_FROM_EMAIL

        email = EmailMultiAlternatives(
            subject=subject,
            body=body_text,
            from_email=from_email,
            to=to,
            reply_to=[reply_to] if reply_to else None,
        )

        if body_html:
            email.attach_alternative(body_html, "text/html")

        try:
            email.send(fail_silently=False)
        except Exception as e:
            logger.error(
                f"Failed to send email: {e}",
                extra={"recipient_count": len(to), "subject": subject},
            )
            if not fail_silently:
                raise
            return False

        logger.info(
            "Email sent",
            extra={"recipient_count": len(to), "subject": subject},
        )
        return True
