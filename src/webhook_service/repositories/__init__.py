"""Repository package exports."""

from webhook_service.repositories.webhooks import (
    WebhookLogRepository,
    WebhookSubscriptionRepository,
)

__all__ = [
    "WebhookSubscriptionRepository",
    "WebhookLogRepository",
]
