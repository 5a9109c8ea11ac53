"""Telegram relay bot: long-polls the Bot API and hands messages to feature handlers."""

__version__ = "0.1.0"
