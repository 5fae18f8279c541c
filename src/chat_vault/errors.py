"""Exception types raised by the import pipeline."""


class ChatVaultError(Exception):
    """Base error carrying a human-readable message and optional detail."""

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def __str__(self) -> str:
        return self.message


class StructuralError(ChatVaultError):
    """The archive is missing a required entry or cannot be parsed at all."""


class ProviderMismatchError(ChatVaultError):
    """The archive content contradicts the provider the user asked for."""


class RowError(ChatVaultError):
    """A single conversation record could not be summarised."""


class WriteError(ChatVaultError):
    """Writing a note for one conversation failed."""

    def __init__(self, uid: str, message: str, detail: str | None = None):
        super().__init__(message, detail)
        self.uid = uid


class ConfigError(ChatVaultError):
    """The configuration file is malformed."""
