from backend.src.notifier.email_notifier import ResendMailTransport
from backend.src.notifier.mail_service import MailService
from backend.src.notifier.templates import TEMPLATE_IDS, render_email

__all__ = [
    "MailService",
    "ResendMailTransport",
    "TEMPLATE_IDS",
    "render_email",
]
