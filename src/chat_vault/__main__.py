"""Allow running chat-vault as ``python -m chat_vault``."""

from .cli import main

if __name__ == "__main__":
    main()
