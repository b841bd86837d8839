# src/sealpost/db/__init__.py
"""Database configuration and utilities."""

from .session import SessionLocal, get_db, storage_errors

__all__ = ["get_db", "SessionLocal", "storage_errors"]
