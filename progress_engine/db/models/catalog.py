"""
Content catalog models.

The catalog is owned by the content pipeline; the engine only reads it to
scope attempt histories (activity -> module, activity -> curriculum standard)
and to label summaries.
"""

from __future__ import annotations

from sqlalchemy import ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, new_id


class CurriculumStandard(Base):
    """An externally defined curriculum competency (e.g. a BNCC code)."""

    __tablename__ = "curriculum_standards"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    competency: Mapped[str] = mapped_column(Text, nullable=False)

    def __repr__(self) -> str:
        return f"<CurriculumStandard {self.code}>"


class ContentModule(Base):
    __tablename__ = "content_modules"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    slug: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    curriculum_standard_id: Mapped[str | None] = mapped_column(
        ForeignKey("curriculum_standards.id")
    )

    curriculum_standard: Mapped[CurriculumStandard | None] = relationship()

    def __repr__(self) -> str:
        return f"<ContentModule {self.slug}>"


class Activity(Base):
    """A playable activity, tagged with one module and one curriculum standard."""

    __tablename__ = "activities"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    slug: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    module_id: Mapped[str] = mapped_column(
        ForeignKey("content_modules.id"), nullable=False, index=True
    )
    curriculum_standard_id: Mapped[str] = mapped_column(
        ForeignKey("curriculum_standards.id"), nullable=False, index=True
    )

    module: Mapped[ContentModule] = relationship()
    curriculum_standard: Mapped[CurriculumStandard] = relationship()

    def __repr__(self) -> str:
        return f"<Activity {self.slug} module={self.module_id}>"
