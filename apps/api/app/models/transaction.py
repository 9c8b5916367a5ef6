"""SQLAlchemy model for gateway transactions."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Integer, JSON, String, Text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from ..db.session import Base


class TransactionModel(Base):
    """Local mirror of one gateway order."""

    __tablename__ = "transactions"
    __table_args__ = (
        Index("ix_transactions_project_created", "project_id", "created_at"),
        Index("ix_transactions_status_updated", "status", "updated_at"),
    )

    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), primary_key=True, default=uuid4
    )
    project_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    external_id: Mapped[str] = mapped_column(String(191), nullable=False)
    gateway_order_id: Mapped[str] = mapped_column(String(191), nullable=False, unique=True)
    method: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    fee: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    platform_fee: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    provider_fee: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_payment: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    payment_number: Mapped[str | None] = mapped_column(String(191), nullable=True)
    qr_string: Mapped[str | None] = mapped_column(Text, nullable=True)
    qr_image_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    expired_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=False), nullable=True
    )
    paid_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=False), nullable=True
    )
    gateway_status: Mapped[str | None] = mapped_column(String(64), nullable=True)
    gateway_completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=False), nullable=True
    )
    gateway_raw: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=datetime.utcnow, nullable=False
    )
