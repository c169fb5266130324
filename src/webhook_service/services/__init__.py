"""Domain services exports."""

from webhook_service.services.delivery import DeliveryWorker, WebhookSender
from webhook_service.services.webhooks import WebhookService

__all__ = [
    "WebhookService",
    "WebhookSender",
    "DeliveryWorker",
]
