"""Declarative base shared by all models."""

from __future__ import annotations

from datetime import datetime
from uuid import uuid4

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


def new_id() -> str:
    return str(uuid4())


def isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None
