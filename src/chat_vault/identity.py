"""Stable conversation identifiers and summary building."""

import hashlib
import logging
import re

from .errors import RowError
from .models import ChatSummary, SourceRef
from .providers.base import ProviderAdapter

logger = logging.getLogger(__name__)

KEYWORD_SAMPLE_CHARS = 300


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def resolve_uid(record: dict, adapter: ProviderAdapter, source_path: str) -> str:
    """Derive the stable identifier for a conversation record.

    The provider's native id wins. Records without one get a deterministic
    hash over the archive path, creation time, title and the first
    message's content, so re-importing the same archive yields the same id.

    Args:
        record: Raw conversation record.
        adapter: Adapter for the record's provider.
        source_path: Path of the archive the record was read from.

    Returns:
        The conversation's UID.
    """
    native = adapter.get_id(record)
    if native and str(native).strip():
        return str(native).strip()

    messages = adapter.get_messages(record)
    first = messages[0].content if messages else ""
    material = "|".join(
        [
            source_path,
            repr(adapter.get_create_time(record)),
            adapter.get_title(record),
            _sha256(first),
        ]
    )
    return "h-" + _sha256(material)[:32]


def _keywords_sample(messages, max_chars: int) -> str | None:
    text = " ".join(m.content for m in messages if m.role == "user")
    text = re.sub(r"\s+", " ", text).strip()
    return text[:max_chars] or None


def summarize(
    record: dict,
    adapter: ProviderAdapter,
    source_path: str,
    offset: int,
    entry: str = "conversations.json",
    sample_chars: int = KEYWORD_SAMPLE_CHARS,
) -> ChatSummary:
    """Build the summary for one record.

    Raises:
        RowError: If the record cannot be read by the adapter.
    """
    if not isinstance(record, dict):
        raise RowError(f"Record {offset} is not an object", type(record).__name__)

    try:
        messages = adapter.get_messages(record)
        return ChatSummary(
            uid=resolve_uid(record, adapter, source_path),
            title=adapter.get_title(record) or "Untitled",
            created_at=int((adapter.get_create_time(record) or 0) * 1000),
            updated_at=int((adapter.get_update_time(record) or 0) * 1000),
            message_count=len(messages),
            keywords_sample=_keywords_sample(messages, sample_chars),
            model=adapter.get_model(record),
            source_ref=SourceRef(export_path=source_path, entry=entry, offset=offset),
        )
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise RowError(f"Record {offset} is malformed", str(e)) from e


def build_summaries(
    records: list,
    adapter: ProviderAdapter,
    source_path: str,
    entry: str = "conversations.json",
    sample_chars: int = KEYWORD_SAMPLE_CHARS,
) -> list[ChatSummary]:
    """Summarise every record of an archive.

    Malformed records are logged and dropped. When two records resolve to
    the same UID the later one replaces the earlier summary.

    Returns:
        Summaries in archive order, unique by UID.
    """
    by_uid: dict[str, ChatSummary] = {}

    for offset, record in enumerate(records):
        try:
            summary = summarize(record, adapter, source_path, offset, entry, sample_chars)
        except RowError as e:
            logger.warning(f"Skipping conversation: {e} ({e.detail})")
            continue

        if summary.uid in by_uid:
            logger.warning(
                f"Duplicate conversation id {summary.uid} at record {offset}; "
                f"replacing record {by_uid[summary.uid].source_ref.offset}"
            )
            # Drop first so the later record takes the later position
            del by_uid[summary.uid]
        by_uid[summary.uid] = summary

    return list(by_uid.values())
