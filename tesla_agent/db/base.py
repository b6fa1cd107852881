"""Declarative base for the agent's SQLite tables."""

from typing import Any

from sqlalchemy.orm import as_declarative


@as_declarative()
class Base:
    """Base class for all database models; each sets ``__tablename__``."""

    id: Any
    __tablename__: str
