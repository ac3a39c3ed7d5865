"""Domain services exports."""

from webhook_service.services.dispatcher import WebhookDispatcher
from webhook_service.services.publisher import WebhookPublisher
from webhook_service.services.retry import RetryCoordinator
from webhook_service.services.subscriptions import SubscriptionService

__all__ = [
    "WebhookDispatcher",
    "WebhookPublisher",
    "RetryCoordinator",
    "SubscriptionService",
]
