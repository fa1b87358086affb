"""Shared column mixins."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime
from sqlalchemy.orm import declared_attr


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    """created_at / updated_at maintained on insert and update."""

    @declared_attr
    def created_at(cls):
        return Column(DateTime(timezone=True), nullable=False, default=utcnow)

    @declared_attr
    def updated_at(cls):
        return Column(
            DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
        )
