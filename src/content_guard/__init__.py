"""Automatic content moderation and flagging engine."""

__version__ = "0.1.0"
