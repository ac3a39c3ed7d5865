"""Webhook event names and delivery statuses."""
from __future__ import annotations

from enum import Enum


class WebhookEvent(str, Enum):
    """Marketplace events a subscription can listen to."""

    ORDER_CREATED = "order.created"
    ORDER_UPDATED = "order.updated"
    ORDER_CANCELLED = "order.cancelled"
    ORDER_FULFILLED = "order.fulfilled"
    PRODUCT_CREATED = "product.created"
    PRODUCT_UPDATED = "product.updated"
    PRODUCT_PUBLISHED = "product.published"
    PRODUCT_DELETED = "product.deleted"
    SUBMISSION_CREATED = "submission.created"
    SUBMISSION_APPROVED = "submission.approved"
    SUBMISSION_REJECTED = "submission.rejected"
    PAYMENT_COMPLETED = "payment.completed"
    PAYMENT_FAILED = "payment.failed"
    REFUND_CREATED = "refund.created"
    SELLER_REGISTERED = "seller.registered"
    SELLER_APPROVED = "seller.approved"
    INVENTORY_LOW = "inventory.low"
    INVENTORY_UPDATED = "inventory.updated"


class DeliveryStatus(str, Enum):
    """Delivery lifecycle states."""

    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    DEAD_LETTER = "DEAD_LETTER"
