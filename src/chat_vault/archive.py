"""Archive reading and normalization.

This module turns the ``conversations.json`` entry of an export archive into
an ordered list of raw, provider-specific conversation records. Exports seen
in the wild come as a bare array, an object wrapping the array, JSON Lines,
or a single conversation object; all of them are accepted.
"""

import hashlib
import json
import logging
import re
import zipfile
from pathlib import Path
from typing import Any

from .errors import StructuralError

logger = logging.getLogger(__name__)

CONVERSATIONS_ENTRY = re.compile(r"(^|/)conversations\.json$", re.IGNORECASE)
ARCHIVE_TIMESTAMP = re.compile(r"(\d{4}-\d{2}-\d{2}-\d{2}-\d{2}-\d{2})")


def find_conversations_entry(names: list[str]) -> str | None:
    """Locate the conversations.json entry at any folder depth.

    Args:
        names: Entry names of the archive.

    Returns:
        The first matching entry name, or None.
    """
    for name in names:
        if CONVERSATIONS_ENTRY.search(name):
            return name
    return None


def _basenames(names: list[str]) -> set[str]:
    return {name.rsplit("/", 1)[-1].lower() for name in names}


def validate_archive(names: list[str], forced_provider: str | None = None) -> None:
    """Check that an archive has a supported layout.

    With a forced provider only the conversations entry is required. In
    auto-detect mode the archive must look like a ChatGPT export
    (conversations.json alone) or a Claude export (conversations.json plus
    users.json).

    Raises:
        StructuralError: If the layout is not recognised.
    """
    if find_conversations_entry(names) is None:
        target = f" for {forced_provider} provider" if forced_provider else ""
        raise StructuralError(
            "Invalid ZIP structure",
            f"Missing required file: conversations.json{target}.",
        )

    if forced_provider:
        return

    base = _basenames(names)
    has_users = "users.json" in base
    has_projects = "projects.json" in base
    is_chatgpt = not has_users and not has_projects
    is_claude = has_users

    if not is_chatgpt and not is_claude:
        raise StructuralError(
            "Invalid ZIP structure",
            "This ZIP file doesn't match any supported chat export format. "
            "Expected either ChatGPT format (conversations.json) or "
            "Claude format (conversations.json + users.json).",
        )


def _records_from_value(parsed: Any) -> list:
    if isinstance(parsed, list):
        return parsed
    if isinstance(parsed, dict):
        for key in ("conversations", "data"):
            if isinstance(parsed.get(key), list):
                return parsed[key]
        # Single object fallback (some samples provide one conversation)
        if parsed.get("mapping") and (parsed.get("id") or parsed.get("conversation_id")):
            return [parsed]
    return []


def _records_from_lines(text: str) -> list:
    records = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            records.append(json.loads(line))
        except json.JSONDecodeError:
            logger.debug(f"Dropping malformed JSON line {lineno}")
    return records


def normalize_records(data: bytes | str) -> list:
    """Parse conversations content into a list of raw records.

    Strict JSON is tried first; if that fails the content is read as one
    JSON object per line and malformed lines are dropped.

    Args:
        data: Raw content of the conversations entry.

    Returns:
        List of raw records, possibly empty. Never raises on bad input.
    """
    if isinstance(data, bytes):
        text = data.decode("utf-8-sig", errors="replace")
    else:
        text = data.lstrip("\ufeff")

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return _records_from_lines(text)

    return _records_from_value(parsed)


class ExportArchive:
    """A chat export ZIP file, read on demand."""

    def __init__(self, path: Path):
        self.path = Path(path)
        try:
            with zipfile.ZipFile(self.path, "r") as zf:
                self._names = zf.namelist()
        except (zipfile.BadZipFile, OSError) as e:
            raise StructuralError("Error reading ZIP file", f"{self.path.name}: {e}") from e

    def names(self) -> list[str]:
        return list(self._names)

    def read(self, name: str) -> bytes:
        with zipfile.ZipFile(self.path, "r") as zf:
            return zf.read(name)

    def digest(self) -> str:
        """sha256 of the archive file, used to recognise re-imports."""
        sha = hashlib.sha256()
        with open(self.path, "rb") as f:
            for chunk in iter(lambda: f.read(1 << 20), b""):
                sha.update(chunk)
        return sha.hexdigest()

    def conversations_entry(self) -> str | None:
        return find_conversations_entry(self._names)

    def load_records(self) -> list:
        """Read and normalize the conversations entry.

        Returns:
            Raw records, or an empty list when the entry is absent.
        """
        entry = self.conversations_entry()
        if entry is None:
            return []
        records = normalize_records(self.read(entry))
        logger.info(f"Read {len(records)} record(s) from {self.path.name}:{entry}")
        return records


def sort_archives(paths: list[Path]) -> list[Path]:
    """Order archives by the export timestamp embedded in their names.

    ChatGPT exports are named ``<hex>-YYYY-MM-DD-HH-MM-SS-<hex>.zip``;
    archives without a timestamp sort first.
    """

    def key(path: Path) -> str:
        match = ARCHIVE_TIMESTAMP.search(Path(path).name)
        if not match:
            logger.warning(f"No timestamp found in filename: {Path(path).name}")
            return "0"
        return match.group(1)

    return sorted(paths, key=key)
