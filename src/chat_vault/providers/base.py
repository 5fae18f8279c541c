"""Base classes and data structures for provider adapters."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal


@dataclass
class Message:
    """Represents a single message in a conversation."""

    id: str
    role: Literal["user", "assistant", "system", "tool"]
    content: str
    timestamp: datetime | None = None


class ProviderAdapter(ABC):
    """Read access to the fields of one provider's raw conversation records.

    Records are the untouched dictionaries produced by the archive
    normalizer; adapters never mutate them.
    """

    provider_name: str = ""

    @abstractmethod
    def matches(self, record: Any) -> bool:
        """Check if a raw record has this provider's shape.

        Args:
            record: A raw conversation record.

        Returns:
            True if this adapter can read the record, False otherwise.
        """
        pass

    @abstractmethod
    def get_id(self, record: dict) -> str | None:
        """Return the provider's native conversation id, or None."""
        pass

    @abstractmethod
    def get_title(self, record: dict) -> str:
        pass

    @abstractmethod
    def get_create_time(self, record: dict) -> float:
        """Return the creation time in epoch seconds (0 when unknown)."""
        pass

    @abstractmethod
    def get_update_time(self, record: dict) -> float:
        """Return the last update time in epoch seconds (0 when unknown)."""
        pass

    @abstractmethod
    def get_messages(self, record: dict) -> list[Message]:
        """Return the conversation's messages in reading order.

        Args:
            record: A raw conversation record.

        Returns:
            List of Message objects; empty messages are filtered out.
        """
        pass

    def get_model(self, record: dict) -> str | None:
        return None
