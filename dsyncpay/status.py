"""
Status normalization.

Maps each provider's raw status vocabulary onto CanonicalStatus and picks the
event to dispatch for it. Normalization never drops an event: a status outside
the known vocabulary is logged as an error and classified as failed.
"""

import logging
from typing import Mapping, Optional, Tuple

from .models import CanonicalStatus, EventType

logger = logging.getLogger(__name__)


class StatusNormalizer:
    """Classifier for one provider vocabulary."""

    def __init__(
        self,
        name: str,
        statuses: Mapping[str, CanonicalStatus],
        events: Mapping[CanonicalStatus, EventType],
    ):
        missing = {status for status in statuses.values() if status not in events}
        if missing:
            raise ValueError(f"{name}: no event for canonical statuses {sorted(s.value for s in missing)}")
        if CanonicalStatus.FAILED not in events:
            raise ValueError(f"{name}: an event for {CanonicalStatus.FAILED.value} is required")
        self.name = name
        self.statuses = {raw.upper(): canonical for raw, canonical in statuses.items()}
        self.events = dict(events)

    def normalize(self, raw_status: Optional[str]) -> CanonicalStatus:
        key = raw_status.upper() if isinstance(raw_status, str) else None
        canonical = self.statuses.get(key) if key is not None else None
        if canonical is None:
            logger.error(
                "Unmapped %s status %r; classifying as %s",
                self.name,
                raw_status,
                CanonicalStatus.FAILED.value,
            )
            return CanonicalStatus.FAILED
        return canonical

    def event_for(self, canonical: CanonicalStatus) -> EventType:
        return self.events[canonical]

    def classify(self, raw_status: Optional[str]) -> Tuple[CanonicalStatus, EventType]:
        canonical = self.normalize(raw_status)
        return canonical, self.event_for(canonical)


_PAYMENT_EVENTS = {
    CanonicalStatus.CREATED: EventType.PAYMENT_CREATED,
    CanonicalStatus.COMPLETED: EventType.PAYMENT_COMPLETED,
    CanonicalStatus.CANCELLED: EventType.PAYMENT_CANCELLED,
    CanonicalStatus.FAILED: EventType.PAYMENT_FAILED,
}

# Orders that were never captured are failed at verification time.
ORDER_STATUSES = StatusNormalizer(
    "paypal order",
    {
        "COMPLETED": CanonicalStatus.COMPLETED,
        "VOIDED": CanonicalStatus.CANCELLED,
        "CANCELLED": CanonicalStatus.CANCELLED,
        "CREATED": CanonicalStatus.FAILED,
        "SAVED": CanonicalStatus.FAILED,
        "APPROVED": CanonicalStatus.FAILED,
        "PAYER_ACTION_REQUIRED": CanonicalStatus.FAILED,
    },
    _PAYMENT_EVENTS,
)

SUBSCRIPTION_STATUSES = StatusNormalizer(
    "paypal subscription",
    {
        "APPROVAL_PENDING": CanonicalStatus.CREATED,
        "APPROVED": CanonicalStatus.CREATED,
        "ACTIVE": CanonicalStatus.ACTIVE,
        "CANCELLED": CanonicalStatus.CANCELLED,
        "SUSPENDED": CanonicalStatus.FAILED,
        "EXPIRED": CanonicalStatus.FAILED,
    },
    {
        CanonicalStatus.CREATED: EventType.SUBSCRIPTION_CREATED,
        CanonicalStatus.ACTIVE: EventType.SUBSCRIPTION_ACTIVATED,
        CanonicalStatus.CANCELLED: EventType.SUBSCRIPTION_CANCELLED,
        CanonicalStatus.FAILED: EventType.PAYMENT_FAILED,
    },
)

CHARGE_STATUSES = StatusNormalizer(
    "coinbase charge",
    {
        "NEW": CanonicalStatus.CREATED,
        "CREATED": CanonicalStatus.CREATED,
        "PENDING": CanonicalStatus.CREATED,
        "COMPLETED": CanonicalStatus.COMPLETED,
        "RESOLVED": CanonicalStatus.COMPLETED,
        "CANCELED": CanonicalStatus.CANCELLED,
        "REFUND PENDING": CanonicalStatus.CANCELLED,
        "REFUNDED": CanonicalStatus.CANCELLED,
        "EXPIRED": CanonicalStatus.FAILED,
        "UNRESOLVED": CanonicalStatus.FAILED,
    },
    _PAYMENT_EVENTS,
)
