from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orgauthz.constants import ALL, NodeType
from orgauthz.db.base import Base, utcnow


PATH_SEPARATOR = "."


class OrgNode(Base):
    """
    One position in the organizational tree.

    `path` is the materialized ancestry (`Chairman.Board.CEO.Finance`), so subtree
    membership is a string-prefix test instead of a recursive walk.
    """

    __tablename__ = "org_nodes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    node_type: Mapped[str] = mapped_column(String(20), default=NodeType.CELL.value, nullable=False, index=True)
    department_code: Mapped[str] = mapped_column(String(30), default=ALL, nullable=False, index=True)

    parent_id: Mapped[int | None] = mapped_column(ForeignKey("org_nodes.id"), nullable=True, index=True)
    path: Mapped[str] = mapped_column(String(1000), unique=True, nullable=False, index=True)
    level: Mapped[int] = mapped_column(Integer, default=0, nullable=False, index=True)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    parent: Mapped["OrgNode | None"] = relationship(remote_side=[id], back_populates="children")
    children: Mapped[list["OrgNode"]] = relationship(back_populates="parent")

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    def is_ancestor_of(self, other: OrgNode) -> bool:
        return other.path.startswith(self.path + PATH_SEPARATOR)

    def contains(self, other: OrgNode) -> bool:
        """Same node or a descendant of it."""
        return other.path == self.path or self.is_ancestor_of(other)

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"OrgNode(id={self.id}, path={self.path!r}, level={self.level})"
