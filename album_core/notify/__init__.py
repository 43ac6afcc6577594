from album_core.notify.failure import DeadLetterConsumer, FailureNotifier
from album_core.notify.mail import (
    InMemoryMailTransport,
    MailMessage,
    MailTransport,
    SendGridMailTransport,
)
from album_core.notify.success import SuccessNotifier

__all__ = [
    "DeadLetterConsumer",
    "FailureNotifier",
    "InMemoryMailTransport",
    "MailMessage",
    "MailTransport",
    "SendGridMailTransport",
    "SuccessNotifier",
]
