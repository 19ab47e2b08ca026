"""Parley: direct messaging core: conversations, messages, moderation."""

__version__ = "0.1.0"
