"""Webhook subscriptions: domain types, ports and the managing service."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional, Protocol, Sequence, Union

from .logger import Logger, NoOpLogger

SubscriptionTopic = str


class Provider(str, enum.Enum):
    """Webhook providers the service knows about."""

    APRIL = "april"
    UPWARDLI = "upwardli"


@dataclass
class Webhook:
    """A webhook registration."""

    id: str = ""
    webhook_name: SubscriptionTopic = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    endpoint: str = ""
    partner_id: str = ""
    status: str = ""
    failures: int = 0
    last_failure: Optional[datetime] = None
    deleted: bool = False
    provider: Optional[Provider] = None
    # Only set when registering a webhook.
    registration_id: str = ""


class WebhookError(Exception):
    """A webhook operation failed."""


class Processor(Protocol):
    """Handles an incoming webhook delivery."""

    def process(self, body: bytes, headers: Mapping[str, str]) -> None: ...


class Verifier(Protocol):
    """Checks that an incoming delivery is authentic; raises if not."""

    def verify(self, body: bytes, headers: Mapping[str, str]) -> None: ...


class Repository(Protocol):
    """Stores webhook registrations."""

    def get_all_webhooks_by_provider(self, provider: Provider) -> list[Webhook]: ...

    def create_webhook(self, webhook: Webhook) -> None: ...

    def soft_delete_webhook(self, provider: Provider, webhook_id: str) -> None: ...


class SubscriptionClient(Protocol):
    """Registers webhooks with a provider."""

    def get_all_webhooks(self) -> list[Webhook]: ...

    def create_webhook(self, endpoint: str, topic: str) -> Webhook: ...

    def delete_webhook(self, webhook_id: str) -> None: ...


AnyLogger = Union[Logger, NoOpLogger]


class WebhookManager:
    """Creates, lists and deletes webhooks with a provider and the repository."""

    def __init__(
        self,
        logger: AnyLogger,
        client: SubscriptionClient,
        repo: Repository,
        provider: Provider,
    ) -> None:
        if logger is None:
            raise ValueError("logger is required")
        self.logger = logger
        self.client = client
        self.repo = repo
        self.provider = provider

    def create_webhooks(self, endpoint: str, topics: Sequence[SubscriptionTopic]) -> None:
        """Create one webhook per topic; raise naming every topic that failed."""
        failed: list[str] = []
        success_count = 0

        for topic in topics:
            try:
                self.create_webhook(endpoint, topic)
            except WebhookError as err:
                self.logger.error("failed to create webhook", error=err, topic=str(topic))
                failed.append(str(topic))
            else:
                success_count += 1

        if failed:
            raise WebhookError(
                f"failed to create {len(failed)} webhooks for topics: {', '.join(failed)}"
            )

        self.logger.info("successfully created all webhooks", endpoint=endpoint, count=success_count)

    def create_webhook(self, endpoint: str, topic: SubscriptionTopic) -> None:
        """Register a webhook with the provider and store the registration."""
        if not endpoint:
            raise WebhookError("endpoint is required")

        try:
            resp = self.client.create_webhook(endpoint, str(topic))
        except Exception as err:
            raise WebhookError(f"failed to create webhook via Upwardli: {err}") from err

        try:
            remote: list[Any] = self.client.get_all_webhooks()
        except Exception as err:
            raise WebhookError(f"failed to get webhooks from Upwardli: {err}") from err

        to_save = next(
            (
                Webhook(
                    id=found.id,
                    webhook_name=found.webhook_name,
                    endpoint=found.endpoint,
                    partner_id=found.partner_id,
                    status=found.status,
                    failures=found.failures,
                    last_failure=found.last_failure,
                )
                for found in remote
                if found.id == resp.registration_id
            ),
            None,
        )
        if to_save is None:
            raise WebhookError(
                f"webhook with registration ID {resp.registration_id} not found in response"
            )

        try:
            self.repo.create_webhook(to_save)
        except Exception as err:
            raise WebhookError(f"failed to save webhook to database: {err}") from err

        self.logger.info(
            "successfully created webhook",
            topic=str(topic),
            endpoint=endpoint,
            webhookID=resp.registration_id,
        )

    def get_webhooks(self) -> list[Webhook]:
        """All stored webhooks of this manager's provider."""
        try:
            return list(self.repo.get_all_webhooks_by_provider(self.provider))
        except Exception as err:
            raise WebhookError(f"failed to get webhooks from database: {err}") from err

    def delete_webhook(self, webhook_id: str) -> None:
        """Delete a webhook at the provider, then soft-delete it locally."""
        if not webhook_id:
            raise WebhookError("webhook ID is required")

        try:
            self.client.delete_webhook(webhook_id)
        except Exception as err:
            raise WebhookError(f"failed to delete webhook from Upwardli: {err}") from err

        try:
            self.repo.soft_delete_webhook(self.provider, webhook_id)
        except Exception as err:
            self.logger.error(
                "failed to delete webhook from database, but deleted from Upwardli",
                error=err,
                webhookID=webhook_id,
                provider=str(getattr(self.provider, "value", self.provider)),
            )
            raise WebhookError(f"failed to delete webhook from database: {err}") from err

        self.logger.info("successfully deleted webhook", webhookID=webhook_id)


class WebhookService(WebhookManager):
    """The webhook service offered to the HTTP layer."""

    def __init__(
        self,
        logger: AnyLogger,
        repo: Repository,
        client: SubscriptionClient,
        provider: Provider,
    ) -> None:
        super().__init__(logger, client, repo, provider)