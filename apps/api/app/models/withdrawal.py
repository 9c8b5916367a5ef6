"""SQLAlchemy model for payout withdrawals."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, DateTime, ForeignKey, String
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from ..db.session import Base


class WithdrawalModel(Base):
    __tablename__ = "withdrawals"

    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), primary_key=True, default=uuid4
    )
    project_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    amount_gross: Mapped[int] = mapped_column(BigInteger, nullable=False)
    amount_fee: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    amount_net: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    payout_bank_name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    payout_account_name: Mapped[str | None] = mapped_column(String(160), nullable=True)
    payout_account_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    note: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=False), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=datetime.utcnow, nullable=False
    )
