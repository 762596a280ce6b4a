"""Persistence ports and their SQLAlchemy adapters."""
