"""SQLAlchemy declarative base and session management."""
