"""Claude export adapter."""

import logging
from datetime import datetime
from typing import Any

from .base import Message, ProviderAdapter

logger = logging.getLogger(__name__)


class ClaudeAdapter(ProviderAdapter):
    """Adapter for Claude conversation records.

    Claude records carry ``uuid``, ``name``, ISO 8601 ``created_at`` /
    ``updated_at`` and a flat ``chat_messages`` array.
    """

    provider_name = "claude"

    def matches(self, record: Any) -> bool:
        if not isinstance(record, dict) or "mapping" in record:
            return False
        return "chat_messages" in record or "name" in record or "summary" in record

    def get_id(self, record: dict) -> str | None:
        uid = record.get("uuid")
        return str(uid) if uid else None

    def get_title(self, record: dict) -> str:
        return record.get("name") or "Untitled"

    def get_create_time(self, record: dict) -> float:
        created = self._parse_timestamp(record.get("created_at"))
        return created.timestamp() if created else 0

    def get_update_time(self, record: dict) -> float:
        # Use created_at as fallback for updated_at
        updated = self._parse_timestamp(record.get("updated_at"))
        if updated:
            return updated.timestamp()
        return self.get_create_time(record)

    def get_messages(self, record: dict) -> list[Message]:
        messages: list[Message] = []

        for i, msg_data in enumerate(record.get("chat_messages") or []):
            message = self._parse_message(msg_data, i)
            if message:
                messages.append(message)

        return messages

    def _parse_message(self, msg_data: dict, index: int) -> Message | None:
        """Parse a single message from the chat_messages array.

        Args:
            msg_data: Dictionary containing message data.
            index: Position in the array, used when the message has no uuid.

        Returns:
            Message object or None if the message should be skipped.
        """
        if not isinstance(msg_data, dict):
            return None

        msg_id = msg_data.get("uuid") or f"msg-{index}"

        sender = msg_data.get("sender", "")
        role = self._map_sender_to_role(sender)
        if not role:
            logger.warning(f"Message {msg_id} has unknown sender '{sender}', skipping")
            return None

        content = msg_data.get("text") or self._join_content_blocks(msg_data.get("content"))
        if not content or not content.strip():
            return None

        return Message(
            id=msg_id,
            role=role,
            content=content,
            timestamp=self._parse_timestamp(msg_data.get("created_at")),
        )

    def _join_content_blocks(self, blocks: Any) -> str:
        if not isinstance(blocks, list):
            return ""
        parts = [
            b.get("text", "")
            for b in blocks
            if isinstance(b, dict) and b.get("type") == "text"
        ]
        return "\n\n".join(p for p in parts if p)

    def _map_sender_to_role(self, sender: str) -> str | None:
        """Map Claude sender values to normalized roles.

        Args:
            sender: The sender value from Claude export ("human" or "assistant").

        Returns:
            Normalized role ("user" or "assistant") or None if unknown.
        """
        mapping = {
            "human": "user",
            "assistant": "assistant",
        }
        return mapping.get(sender)

    def _parse_timestamp(self, ts: str | None) -> datetime | None:
        """Parse an ISO 8601 timestamp string.

        Args:
            ts: Timestamp string in ISO 8601 format.

        Returns:
            datetime object or None if parsing fails.
        """
        if not ts or not isinstance(ts, str):
            return None

        try:
            # Replace Z with +00:00 for interpreters older than 3.11
            if ts.endswith("Z"):
                ts = ts[:-1] + "+00:00"
            return datetime.fromisoformat(ts)
        except ValueError as e:
            logger.warning(f"Failed to parse timestamp '{ts}': {e}")
            return None
