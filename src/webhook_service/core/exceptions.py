"""Common exceptions for domain and repository layers."""
from __future__ import annotations

from typing import Sequence


class WebhookServiceError(Exception):
    """Base error for service layer."""


class RepositoryError(WebhookServiceError):
    """Raised when repository operations fail."""


class NotFoundError(RepositoryError):
    """Raised when requested entity is missing or owned by another account."""


class InvalidInputError(WebhookServiceError):
    """Raised when a subscription URL or event list is rejected.

    ``invalid`` carries the offending values (e.g. unsupported event names).
    """

    def __init__(self, message: str, invalid: Sequence[str] = ()):
        super().__init__(message)
        self.invalid = list(invalid)


class DeliveryError(WebhookServiceError):
    """Raised when a single delivery attempt fails at the transport level."""
