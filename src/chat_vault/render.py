"""Note rendering, file naming and content hashing.

Notes are Markdown files with a YAML frontmatter block. The frontmatter
carries the identity marker (``chat_uid``, ``chat_updated_at``,
``chat_content_hash``) that lets a later run recognise the note even when
the materialization cache is gone.
"""

import hashlib
import logging
import re
import unicodedata
from dataclasses import dataclass
from datetime import datetime, timezone

import frontmatter
import yaml

from .models import ChatSummary
from .providers.base import Message

logger = logging.getLogger(__name__)

DEFAULT_FILENAME_TEMPLATE = "{{date}} {{title}}"

TEMPLATE_VARIABLE = re.compile(r"\{\{\s*(\w+)\s*\}\}")
INVALID_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|\x00-\x1f]')
VOLATILE_LINE = re.compile(
    r"^\s*(imported_at|last_imported|lastImported|import_date|importdate)\s*:.*$",
    re.IGNORECASE | re.MULTILINE,
)

ROLE_HEADINGS = {
    "user": "User",
    "assistant": "Assistant",
    "system": "System",
    "tool": "Tool",
}


def slugify(title: str, max_len: int = 50) -> str:
    """Convert a title to a filesystem-safe slug.

    Args:
        title: The original title string.
        max_len: Maximum length of the resulting slug.

    Returns:
        A lowercase, hyphenated slug safe for filesystem use.
    """
    slug = unicodedata.normalize("NFKD", title)
    slug = slug.encode("ascii", "ignore").decode("ascii")
    slug = slug.lower()
    slug = re.sub(r"[^a-z0-9]+", "-", slug)
    slug = slug.strip("-")
    # Truncate to max length, avoiding mid-word cuts
    if len(slug) > max_len:
        slug = slug[:max_len].rsplit("-", 1)[0]
    if not slug:
        slug = "untitled"
    return slug


def _utc(epoch_ms: int) -> datetime:
    return datetime.fromtimestamp((epoch_ms or 0) / 1000, tz=timezone.utc)


def render_filename(template: str, summary: ChatSummary) -> str:
    """Apply a filename template to a conversation summary.

    Supported variables are ``{{date}}``, ``{{created}}``, ``{{title}}``,
    ``{{uid}}``, ``{{uid_short}}`` and ``{{model}}``. Unknown variables
    render as empty strings. The result always ends in ``.md``.

    Args:
        template: Template string, e.g. ``"{{date}} {{title}}"``.
        summary: The conversation to name.

    Returns:
        A file name without directory components.
    """
    created = _utc(summary.created_at)
    values = {
        "date": created.strftime("%Y-%m-%d"),
        "created": created.strftime("%Y-%m-%d %H-%M"),
        "title": slugify(summary.title),
        "uid": summary.uid,
        "uid_short": summary.uid[:7],
        "model": summary.model or "",
    }

    name = TEMPLATE_VARIABLE.sub(lambda m: values.get(m.group(1), ""), template or DEFAULT_FILENAME_TEMPLATE)
    name = INVALID_FILENAME_CHARS.sub("", name)
    name = re.sub(r"\s+", " ", name).strip(" .")
    if not name:
        name = safe_filename(summary)[:-3]
    if not name.lower().endswith(".md"):
        name = f"{name}.md"
    return name


def safe_filename(summary: ChatSummary) -> str:
    """Fallback name used when the templated name cannot be written."""
    return f"{re.sub(r'[^A-Za-z0-9_-]', '_', summary.uid)}.md"


def canonicalize_text(text: str) -> str:
    """Normalise transcript text so cosmetic differences do not matter.

    Volatile import-time fields are removed, line endings unified, trailing
    whitespace stripped, and runs of spaces and blank lines collapsed.
    """
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = VOLATILE_LINE.sub("", text)
    lines = [re.sub(r"[ \t]+", " ", line).strip() for line in text.split("\n")]
    text = "\n".join(lines)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def canonical_transcript(messages: list[Message]) -> str:
    # Message timestamps are volatile across exports and left out
    blocks = [f"[{msg.role}]\n{msg.content}" for msg in messages]
    return canonicalize_text("\n\n".join(blocks))


def content_hash(messages: list[Message]) -> str:
    return hashlib.sha256(canonical_transcript(messages).encode("utf-8")).hexdigest()


def render_note(
    summary: ChatSummary,
    messages: list[Message],
    digest: str,
    imported_at: int,
    provider: str | None = None,
) -> str:
    """Render a conversation as a Markdown note with frontmatter.

    Args:
        summary: The conversation summary.
        messages: Messages in reading order.
        digest: Content hash of the canonical transcript.
        imported_at: Import time in epoch milliseconds.
        provider: Provider name recorded in the frontmatter.

    Returns:
        The full note text.
    """
    lines = [f"# {summary.title}", ""]
    for msg in messages:
        lines.append(f"### {ROLE_HEADINGS.get(msg.role, msg.role.title())}")
        lines.append("")
        lines.append(msg.content.rstrip())
        lines.append("")

    metadata = {
        "title": summary.title,
        "chat_uid": summary.uid,
        "chat_updated_at": summary.updated_at,
        "chat_content_hash": digest,
        "created": _utc(summary.created_at).isoformat(),
        "updated": _utc(summary.updated_at).isoformat(),
        "imported_at": _utc(imported_at).isoformat(),
        "message_count": len(messages),
    }
    if provider:
        metadata["provider"] = provider
    if summary.model:
        metadata["model"] = summary.model

    post = frontmatter.Post("\n".join(lines).rstrip() + "\n", **metadata)
    return frontmatter.dumps(post) + "\n"


@dataclass
class NoteIdentity:
    """Identity marker read back from a note's frontmatter."""

    uid: str
    updated_at: int
    content_hash: str


def read_note_identity(text: str) -> NoteIdentity | None:
    """Extract the identity marker from note text.

    Returns:
        The marker, or None if the note has no (or malformed) frontmatter.
    """
    try:
        post = frontmatter.loads(text)
    except (yaml.YAMLError, ValueError) as e:
        logger.warning(f"Ignoring note with malformed frontmatter: {e}")
        return None

    uid = post.metadata.get("chat_uid")
    if not uid:
        return None

    try:
        updated_at = int(post.metadata.get("chat_updated_at") or 0)
    except (TypeError, ValueError):
        updated_at = 0

    return NoteIdentity(
        uid=str(uid),
        updated_at=updated_at,
        content_hash=str(post.metadata.get("chat_content_hash") or ""),
    )
