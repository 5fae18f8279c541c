"""chat-vault: import chat export archives into a Markdown vault."""

__version__ = "0.1.0"
