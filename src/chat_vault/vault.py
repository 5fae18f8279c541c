"""File access for the vault directory.

Paths handed to :class:`Vault` are vault-relative POSIX strings, the same
form that is stored in materialization records.
"""

import logging
from pathlib import Path, PurePosixPath
from typing import Iterator

from .errors import WriteError

logger = logging.getLogger(__name__)


class Vault:
    """A directory of Markdown notes."""

    def __init__(self, root: Path, state_dirname: str = ".chat-vault"):
        self.root = Path(root)
        self.state_dirname = state_dirname

    def resolve(self, rel_path: str) -> Path:
        """Map a vault-relative path to an absolute one.

        Raises:
            WriteError: If the path would escape the vault root.
        """
        pure = PurePosixPath(rel_path)
        if pure.is_absolute() or ".." in pure.parts:
            raise WriteError("", f"Path escapes the vault: {rel_path}")
        return self.root.joinpath(*pure.parts)

    def exists(self, rel_path: str) -> bool:
        return self.resolve(rel_path).exists()

    def read(self, rel_path: str) -> str:
        return self.resolve(rel_path).read_text(encoding="utf-8")

    def mkdir(self, rel_path: str) -> None:
        self.resolve(rel_path).mkdir(parents=True, exist_ok=True)

    def write(self, rel_path: str, content: str) -> None:
        path = self.resolve(rel_path)
        self.mkdir(PurePosixPath(rel_path).parent.as_posix())
        path.write_text(content, encoding="utf-8")

    def iter_notes(self) -> Iterator[str]:
        """Yield vault-relative paths of every Markdown note.

        The importer's own state directory and dot-directories are skipped.
        """
        if not self.root.is_dir():
            return
        for path in sorted(self.root.rglob("*.md")):
            rel = path.relative_to(self.root)
            if any(part.startswith(".") for part in rel.parts[:-1]):
                continue
            yield rel.as_posix()
