from __future__ import annotations

from typing import Optional
from sqlalchemy import Text, Numeric, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import Base, UUIDPkMixin, TimestampMixin


class RawMaterialTransaction(UUIDPkMixin, TimestampMixin, Base):
    """
    Stock movement for a raw material. quantity is signed: issues are negative,
    returns and receipts positive.
    """
    __tablename__ = "raw_material_transactions"
    __table_args__ = (
        Index("ix_raw_material_transactions_material_created", "raw_material_id", "created_at"),
    )

    raw_material_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("raw_materials.id", ondelete="RESTRICT"), nullable=False
    )
    transaction_type: Mapped[str] = mapped_column(Text, nullable=False)  # issue/return/adjustment/receipt
    quantity: Mapped[float] = mapped_column(Numeric(14, 4), nullable=False)
    reference: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # e.g. ISS-20240101-001
    remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    performed_by: Mapped[Optional[UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
