"""SQLAlchemy model for rate limit counters."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import BigInteger, Integer, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from ..db.session import Base


class RateLimitCounterModel(Base):
    """Request count for one project and route inside one fixed window."""

    __tablename__ = "rate_limit_windows"
    __table_args__ = (
        UniqueConstraint(
            "project_id", "route_key", "window_start", name="uq_rate_project_route_window"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)
    route_key: Mapped[str] = mapped_column(String(128), nullable=False)
    window_start: Mapped[int] = mapped_column(BigInteger, nullable=False)
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
