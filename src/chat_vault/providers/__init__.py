"""Provider adapters and detection helpers."""

from ..errors import ProviderMismatchError
from .base import Message, ProviderAdapter
from .chatgpt import ChatGPTAdapter
from .claude import ClaudeAdapter

PROVIDER_NAMES = ("chatgpt", "claude")


def get_adapter(provider_name: str) -> ProviderAdapter:
    """Get an adapter instance by name.

    Args:
        provider_name: The provider name ('claude' or 'chatgpt').

    Returns:
        Adapter instance.

    Raises:
        ValueError: If provider name is unknown.
    """
    if provider_name == "chatgpt":
        return ChatGPTAdapter()
    elif provider_name == "claude":
        return ClaudeAdapter()
    else:
        raise ValueError(f"Unknown provider: {provider_name}")


def detect_provider(records: list) -> str:
    """Auto-detect the provider from normalized records.

    Only the first record is inspected, the same way exports are
    homogeneous per provider.

    Returns:
        Provider name, or 'unknown' if no adapter matches.
    """
    if not records:
        return "unknown"

    first = records[0]
    for name in PROVIDER_NAMES:
        if get_adapter(name).matches(first):
            return name
    return "unknown"


def validate_provider_match(records: list, forced_provider: str) -> None:
    """Check that a user-forced provider agrees with the record shape.

    Raises:
        ProviderMismatchError: If the first record has another provider's shape.
    """
    if not records:
        return

    if not get_adapter(forced_provider).matches(records[0]):
        other = detect_provider(records)
        found = f"appears to be from {other}" if other != "unknown" else "has an unrecognised structure"
        raise ProviderMismatchError(
            "Provider mismatch",
            f"You selected {forced_provider} but this archive {found}.",
        )


__all__ = [
    "ChatGPTAdapter",
    "ClaudeAdapter",
    "Message",
    "PROVIDER_NAMES",
    "ProviderAdapter",
    "detect_provider",
    "get_adapter",
    "validate_provider_match",
]
