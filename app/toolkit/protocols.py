"""
Protocol definitions (interfaces) for shared services.

Protocols define contracts that services must fulfill, enabling:
- Duck typing with static type checking
- Dependency inversion (depend on abstractions, not concretions)
- Easy stubbing in tests

Available Protocols:
    EmailSender: Template email sending interface (EmailService satisfies it)

Usage:
    from toolkit.protocols import EmailSender

    class WalletNotifier:
        def __init__(self, email_sender: EmailSender):
            self.email_sender = email_sender
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from typing import Any


@runtime_checkable
class EmailSender(Protocol):
    """
    Protocol for template email sending.

    Example:
        class RecordingSender:
            def __init__(self):
                self.sent = []

            def send(self, to, subject, template_name, context, **kwargs) -> bool:
                self.sent.append((to, subject, template_name))
                return True
    """

    def send(
        self,
        to: str | list[str],
        subject: str,
        template_name: str,
        context: dict,
        **kwargs: Any,
    ) -> bool:
        """
        Render and send an email.

        Returns:
            True if email was sent successfully
        """
        ...
