"""Centralized SQLAlchemy declarative base for all ORM models."""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all ORM models.

    All SQLAlchemy ORM models must inherit from this class to ensure proper
    table registration and schema management.
    """

    pass
