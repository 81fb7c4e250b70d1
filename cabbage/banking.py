"""Banking consumers and the service that stores them."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass
class Consumer:
    """A consumer known to the banking partner."""

    id: str = ""
    pcid: str = ""
    external_id: str = ""
    is_active: bool = False
    kyc_status: str = ""
    tax_id_type: str = ""
    tax_identifier: str = ""
    created_at: str = ""
    updated_at: str = ""
    deleted: bool = False


class ConsumerRepository(Protocol):
    """Stores banking consumers."""

    def save_banking_consumer(self, consumer: Consumer) -> None: ...


class ConsumerManager:
    """Saves banking consumers through a repository."""

    def __init__(self, repo: ConsumerRepository) -> None:
        self.repo = repo

    def save_consumer(self, consumer: Consumer) -> None:
        """Store a consumer; repository errors propagate."""
        self.repo.save_banking_consumer(consumer)