"""Error taxonomy for the webhook delivery subsystem."""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from webhook_service.domain.models import WebhookDelivery


class WebhookServiceError(Exception):
    """Base error for service layer."""


class ValidationError(WebhookServiceError):
    """Raised when subscription or event input is malformed."""


class RepositoryError(WebhookServiceError):
    """Raised when repository operations fail."""


class NotFoundError(RepositoryError):
    """Raised when requested entity is missing."""


class InvalidStateError(WebhookServiceError):
    """Raised when an operation is not allowed in the delivery's current status."""


class InvalidStatusTransitionError(InvalidStateError):
    """Raised when a delivery attempts an unsupported status change."""


class ConcurrentAttemptError(InvalidStateError):
    """Raised when another attempt on the same delivery was recorded first."""


class AttemptsExhaustedError(WebhookServiceError):
    """Raised on ordinary retry once the attempt ceiling is reached."""


class DeliveryError(WebhookServiceError):
    """A single delivery attempt failed; the ledger has already been updated."""

    def __init__(
        self,
        message: str,
        *,
        delivery: "WebhookDelivery",
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.delivery = delivery
        self.status_code = status_code


class TransportError(DeliveryError):
    """DNS failure, refused connection or timeout; no HTTP status available."""


class HttpError(DeliveryError):
    """Receiver answered with a non-2xx status."""
