"""Telegram bot that stores uploads under their SHA-256 hash and serves them over HTTP."""

__version__ = "1.0.0"
