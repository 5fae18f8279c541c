"""ChatGPT export adapter."""

import logging
from datetime import datetime, timezone
from typing import Any

from .base import Message, ProviderAdapter

logger = logging.getLogger(__name__)


class ChatGPTAdapter(ProviderAdapter):
    """Adapter for ChatGPT conversation records.

    ChatGPT stores each conversation as a ``mapping`` of nodes forming a
    tree; edits and regenerations create sibling branches.
    """

    provider_name = "chatgpt"

    def matches(self, record: Any) -> bool:
        return isinstance(record, dict) and isinstance(record.get("mapping"), dict)

    def get_id(self, record: dict) -> str | None:
        uid = record.get("conversation_id") or record.get("id")
        return str(uid) if uid else None

    def get_title(self, record: dict) -> str:
        return record.get("title") or "Untitled"

    def get_create_time(self, record: dict) -> float:
        return self._seconds(record.get("create_time"))

    def get_update_time(self, record: dict) -> float:
        return self._seconds(record.get("update_time")) or self.get_create_time(record)

    def get_model(self, record: dict) -> str | None:
        if record.get("default_model_slug"):
            return record["default_model_slug"]
        for node in self._linearize(record):
            slug = ((node.get("message") or {}).get("metadata") or {}).get("model_slug")
            if slug:
                return slug
        return None

    def get_messages(self, record: dict) -> list[Message]:
        messages: list[Message] = []

        for node in self._linearize(record):
            message = self._parse_message(node)
            if message:
                messages.append(message)

        return messages

    def _linearize(self, record: dict) -> list[dict]:
        """Flatten the mapping tree into the path the user last saw.

        Walks from ``current_node`` up to the root when available; otherwise
        follows the first child at every branch point.
        """
        mapping = record.get("mapping") or {}
        if not isinstance(mapping, dict) or not mapping:
            return []

        current = record.get("current_node")
        if current in mapping:
            path: list[dict] = []
            seen: set[str] = set()
            while current and current in mapping and current not in seen:
                seen.add(current)
                path.append(mapping[current])
                current = mapping[current].get("parent")
            path.reverse()
            return path

        roots = [n for n in mapping.values() if not n.get("parent") or n.get("parent") not in mapping]
        if not roots:
            logger.warning(f"Conversation {self.get_id(record)} has no root node")
            return []

        path = []
        node = roots[0]
        seen = set()
        while node is not None and node.get("id") not in seen:
            seen.add(node.get("id"))
            path.append(node)
            children = node.get("children") or []
            node = mapping.get(children[0]) if children else None
        return path

    def _parse_message(self, node: dict) -> Message | None:
        msg = node.get("message")
        if not isinstance(msg, dict):
            return None

        role = (msg.get("author") or {}).get("role")
        if role not in ("user", "assistant", "system", "tool"):
            return None
        # Hidden system prompts are not part of the visible transcript
        if role == "system" and not (msg.get("metadata") or {}).get("is_user_system_message"):
            return None

        content = self._extract_text(msg.get("content"))
        if not content.strip():
            return None

        ts = msg.get("create_time")
        return Message(
            id=msg.get("id") or node.get("id", ""),
            role=role,
            content=content,
            timestamp=datetime.fromtimestamp(ts, tz=timezone.utc) if isinstance(ts, (int, float)) else None,
        )

    def _extract_text(self, content: Any) -> str:
        if not isinstance(content, dict):
            return ""
        if isinstance(content.get("text"), str):
            return content["text"]
        parts = content.get("parts") or []
        texts = []
        for part in parts:
            if isinstance(part, str):
                texts.append(part)
            elif isinstance(part, dict) and isinstance(part.get("text"), str):
                texts.append(part["text"])
        return "\n".join(t for t in texts if t)

    def _seconds(self, value: Any) -> float:
        if isinstance(value, (int, float)):
            return float(value)
        if isinstance(value, str):
            try:
                return float(value)
            except ValueError:
                logger.warning(f"Failed to parse timestamp '{value}'")
        return 0
