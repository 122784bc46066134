# src/content_guard/db/__init__.py
"""Database configuration and utilities.

Import ``content_guard.db.session`` explicitly; it creates the engine.
"""
