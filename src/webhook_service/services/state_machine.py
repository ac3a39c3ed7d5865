"""Delivery status transition validators."""
from __future__ import annotations

from webhook_service.core.exceptions import InvalidStatusTransitionError
from webhook_service.domain.enums import DeliveryStatus

DELIVERY_TRANSITIONS: dict[DeliveryStatus, set[DeliveryStatus]] = {
    # DEAD_LETTER straight from PENDING only happens with a ceiling of one attempt
    DeliveryStatus.PENDING: {
        DeliveryStatus.SUCCESS,
        DeliveryStatus.FAILED,
        DeliveryStatus.DEAD_LETTER,
    },
    DeliveryStatus.FAILED: {
        DeliveryStatus.SUCCESS,
        DeliveryStatus.FAILED,
        DeliveryStatus.DEAD_LETTER,
    },
    DeliveryStatus.DEAD_LETTER: {DeliveryStatus.PENDING},
    DeliveryStatus.SUCCESS: set(),
}


def validate_delivery_transition(current: DeliveryStatus, new: DeliveryStatus) -> None:
    allowed = DELIVERY_TRANSITIONS.get(current, set())
    if new not in allowed:
        raise InvalidStatusTransitionError(
            f"Invalid delivery status transition: {current.value} → {new.value}"
        )
