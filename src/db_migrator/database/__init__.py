"""Database connection management."""

from .connection import DATABASE_URL_ENV, DatabaseManager

__all__ = ["DATABASE_URL_ENV", "DatabaseManager"]
