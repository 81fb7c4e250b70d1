"""Processing of incoming Upwardli webhook deliveries."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Optional, Protocol, Union

from .dto import UpwardliConsumerDTO, _get_str, _get_str_list, _parse_rfc3339
from .logger import Logger, NoOpLogger
from .webhooks import SubscriptionTopic

SUBSCRIPTION_TOPIC_CONSUMER_CREATED: SubscriptionTopic = "Consumer.Created"
SUBSCRIPTION_TOPIC_CONSUMER_UPDATED: SubscriptionTopic = "Consumer.Updated"
SUBSCRIPTION_TOPIC_CONSUMER_CLOSED: SubscriptionTopic = "Consumer.Closed"
SUBSCRIPTION_TOPIC_CONSUMER_KYC_STARTED: SubscriptionTopic = "Consumer.KYC.Started"
SUBSCRIPTION_TOPIC_CONSUMER_KYC_PENDING: SubscriptionTopic = "Consumer.KYC.Pending"
SUBSCRIPTION_TOPIC_CONSUMER_KYC_COMPLETED: SubscriptionTopic = "Consumer.KYC.Completed"
SUBSCRIPTION_TOPIC_CONSUMER_KYC_NEEDS_REVIEW: SubscriptionTopic = "Consumer.KYC.NeedsReview"
SUBSCRIPTION_TOPIC_CONSUMER_KYC_APPROVED: SubscriptionTopic = "Consumer.KYC.Approved"
SUBSCRIPTION_TOPIC_CONSUMER_KYC_FAILED: SubscriptionTopic = "Consumer.KYC.Failed"
SUBSCRIPTION_TOPIC_PAYMENT_CARD_CREATED: SubscriptionTopic = "PaymentCard.Created"
SUBSCRIPTION_TOPIC_PAYMENT_CARD_UPDATED: SubscriptionTopic = "PaymentCard.Updated"
SUBSCRIPTION_TOPIC_PAYMENT_CARD_CLOSED: SubscriptionTopic = "PaymentCard.Closed"
SUBSCRIPTION_TOPIC_PAYMENT_CARD_TRANSACTION_SETTLEMENT: SubscriptionTopic = (
    "PaymentCard.Transaction.Settlement"
)
SUBSCRIPTION_TOPIC_ACH_SENT: SubscriptionTopic = "ACH.Sent"
SUBSCRIPTION_TOPIC_ACH_RECEIVED: SubscriptionTopic = "ACH.Received"
SUBSCRIPTION_TOPIC_ACH_FAILED: SubscriptionTopic = "ACH.Failed"
SUBSCRIPTION_TOPIC_PAYMENT_TRANSFER_CREATED: SubscriptionTopic = "Payment.Transfer.Created"
SUBSCRIPTION_TOPIC_PAYMENT_TRANSFER_COMPLETED: SubscriptionTopic = "Payment.Transfer.Completed"
SUBSCRIPTION_TOPIC_PAYMENT_TRANSFER_FAILED: SubscriptionTopic = "Payment.Transfer.Failed"

ALL_SUBSCRIPTION_TOPICS: tuple[SubscriptionTopic, ...] = (
    SUBSCRIPTION_TOPIC_CONSUMER_CREATED,
    SUBSCRIPTION_TOPIC_CONSUMER_UPDATED,
    SUBSCRIPTION_TOPIC_CONSUMER_CLOSED,
    SUBSCRIPTION_TOPIC_CONSUMER_KYC_STARTED,
    SUBSCRIPTION_TOPIC_CONSUMER_KYC_PENDING,
    SUBSCRIPTION_TOPIC_CONSUMER_KYC_COMPLETED,
    SUBSCRIPTION_TOPIC_CONSUMER_KYC_NEEDS_REVIEW,
    SUBSCRIPTION_TOPIC_CONSUMER_KYC_APPROVED,
    SUBSCRIPTION_TOPIC_CONSUMER_KYC_FAILED,
    SUBSCRIPTION_TOPIC_PAYMENT_CARD_CREATED,
    SUBSCRIPTION_TOPIC_PAYMENT_CARD_UPDATED,
    SUBSCRIPTION_TOPIC_PAYMENT_CARD_CLOSED,
    SUBSCRIPTION_TOPIC_PAYMENT_CARD_TRANSACTION_SETTLEMENT,
    SUBSCRIPTION_TOPIC_ACH_SENT,
    SUBSCRIPTION_TOPIC_ACH_RECEIVED,
    SUBSCRIPTION_TOPIC_ACH_FAILED,
    SUBSCRIPTION_TOPIC_PAYMENT_TRANSFER_CREATED,
    SUBSCRIPTION_TOPIC_PAYMENT_TRANSFER_COMPLETED,
    SUBSCRIPTION_TOPIC_PAYMENT_TRANSFER_FAILED,
)


class EntityInfoClient(Protocol):
    """Fetches the raw JSON of the entity a webhook event refers to."""

    def get_entity_info(self, path: str) -> bytes: ...


@dataclass
class UpwardliWebhookEvent:
    """An event delivered by an Upwardli webhook."""

    id: str = ""
    created_at: Optional[datetime] = None
    event_name: SubscriptionTopic = ""
    partner_id: str = ""
    resources: list[str] = field(default_factory=list)
    last_attempted_at: Optional[datetime] = None
    # Never read from the payload.
    resource_path: str = ""

    @classmethod
    def from_json(cls, body: Union[bytes, str]) -> "UpwardliWebhookEvent":
        """Decode an event; raises ValueError for malformed JSON or fields."""
        data: Any = json.loads(body)
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        return cls(
            id=_get_str(data, "id"),
            created_at=_parse_rfc3339(data.get("created_at"), "created_at"),
            event_name=_get_str(data, "event_name"),
            partner_id=_get_str(data, "partner_id"),
            resources=_get_str_list(data, "resources"),
            last_attempted_at=_parse_rfc3339(data.get("last_attempted_at"), "last_attempted_at"),
        )


class UpwardliProcessor:
    """Looks up the entity behind each Upwardli event and acts on it."""

    def __init__(self, logger: Union[Logger, NoOpLogger], client: EntityInfoClient) -> None:
        self.logger = logger
        self.client = client

    def process(self, body: Union[bytes, str], headers: Mapping[str, str]) -> None:
        """Handle one delivery; decoding and client errors propagate."""
        event = UpwardliWebhookEvent.from_json(body)
        entity_info = self.client.get_entity_info(event.resource_path)

        if event.event_name == SUBSCRIPTION_TOPIC_CONSUMER_CREATED:
            dto = UpwardliConsumerDTO.from_dict(json.loads(entity_info))
            print(dto.to_domain())