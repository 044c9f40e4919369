"""DriveFile model: the local row mirroring one remote Drive file."""

from __future__ import annotations

from sqlalchemy import JSON, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from drivevault.db.base import Base


class DriveFile(Base):
    """A file observed under the configured root folders.

    Rows are created and updated by reconciliation. ``local_path`` is only
    written after a completed download and survives metadata updates.
    """

    __tablename__ = "files"

    # Drive file ID
    id: Mapped[str] = mapped_column(String(128), primary_key=True)

    # Remote metadata
    name: Mapped[str] = mapped_column(Text, nullable=False)
    parent_ids: Mapped[list[str] | None] = mapped_column(JSON(none_as_null=True), nullable=True)
    view_link: Mapped[str] = mapped_column(Text, nullable=False)

    # Download cache
    local_path: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Indexes
    __table_args__ = (
        Index("ix_files_name", "name"),
    )

    def __repr__(self) -> str:
        return f"DriveFile(id={self.id!r}, name={self.name!r})"
