from __future__ import annotations

from typing import Optional
from sqlalchemy import Text, Numeric, DateTime, Date, ForeignKey, Index, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import Base, UUIDPkMixin, TimestampMixin, RecordStatusMixin


class RawMaterialIssuance(UUIDPkMixin, RecordStatusMixin, TimestampMixin, Base):
    """Header of a raw material issuance to the production floor."""
    __tablename__ = "raw_material_issuances"
    __table_args__ = (UniqueConstraint("issuance_number", name="uq_raw_material_issuances_number"),)

    issuance_number: Mapped[str] = mapped_column(Text, nullable=False)
    issuance_date: Mapped[Date] = mapped_column(Date, nullable=False)
    issued_to: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    product_id: Mapped[Optional[UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("products.id", ondelete="SET NULL"), nullable=True
    )
    production_reference: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # batch / shift ref
    planned_output: Mapped[Optional[float]] = mapped_column(Numeric(12, 2), nullable=True)
    remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    issued_by: Mapped[Optional[UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )


class RawMaterialIssuanceItem(UUIDPkMixin, RecordStatusMixin, TimestampMixin, Base):
    """Issued raw material line with the BOM suggestion it was based on."""
    __tablename__ = "raw_material_issuance_items"
    __table_args__ = (Index("ix_raw_material_issuance_items_issuance_id", "issuance_id"),)

    issuance_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("raw_material_issuances.id", ondelete="CASCADE"), nullable=False
    )
    raw_material_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("raw_materials.id", ondelete="RESTRICT"), nullable=False
    )
    product_id: Mapped[Optional[UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("products.id", ondelete="SET NULL"), nullable=True
    )
    quantity_issued: Mapped[float] = mapped_column(Numeric(12, 6), nullable=False)
    suggested_quantity: Mapped[Optional[float]] = mapped_column(Numeric(12, 6), nullable=True)
    calculation_basis: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    uom_id: Mapped[Optional[UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("uoms.id", ondelete="SET NULL"), nullable=True
    )
    remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class ProductionEntry(UUIDPkMixin, RecordStatusMixin, TimestampMixin, Base):
    """Actual shift output recorded against an issuance."""
    __tablename__ = "production_entries"
    __table_args__ = (
        # One live entry per issuance, date and shift
        Index(
            "uq_production_entries_issuance_date_shift",
            "issuance_id",
            "production_date",
            "shift",
            unique=True,
            postgresql_where=text("record_status = 1"),
        ),
    )

    issuance_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("raw_material_issuances.id", ondelete="RESTRICT"), nullable=False
    )
    production_date: Mapped[Date] = mapped_column(Date, nullable=False)
    shift: Mapped[str] = mapped_column(Text, nullable=False)  # A / B / General
    produced_quantity: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False)
    rejected_quantity: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False, default=0, server_default="0")
    empty_bottles_produced: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False, default=0, server_default="0")
    empty_bottles_used: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False, default=0, server_default="0")
    empty_bottles_pending: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False, default=0, server_default="0")
    derived_units: Mapped[Optional[float]] = mapped_column(Numeric(12, 2), nullable=True)
    remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[Optional[UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )


class ProductionReconciliation(UUIDPkMixin, RecordStatusMixin, TimestampMixin, Base):
    """End-of-shift reconciliation of issued material against usage."""
    __tablename__ = "production_reconciliations"
    __table_args__ = (
        UniqueConstraint("reconciliation_number", name="uq_production_reconciliations_number"),
        Index(
            "uq_production_reconciliations_issuance_shift",
            "issuance_id",
            "shift",
            unique=True,
            postgresql_where=text("record_status = 1"),
        ),
        Index("ix_production_reconciliations_date_shift_status", "reconciliation_date", "shift", "record_status"),
    )

    reconciliation_number: Mapped[str] = mapped_column(Text, nullable=False)
    reconciliation_date: Mapped[Date] = mapped_column(Date, nullable=False)
    shift: Mapped[str] = mapped_column(Text, nullable=False)
    issuance_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("raw_material_issuances.id", ondelete="RESTRICT"), nullable=False
    )
    production_entry_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("production_entries.id", ondelete="RESTRICT"), nullable=False
    )
    produced_cases: Mapped[int] = mapped_column(nullable=False)
    rejected_cases: Mapped[int] = mapped_column(nullable=False, default=0, server_default="0")
    empty_bottles_produced: Mapped[int] = mapped_column(nullable=False, default=0, server_default="0")
    empty_bottles_used: Mapped[int] = mapped_column(nullable=False, default=0, server_default="0")
    empty_bottles_pending: Mapped[int] = mapped_column(nullable=False, default=0, server_default="0")

    edit_count: Mapped[int] = mapped_column(nullable=False, default=0, server_default="0")
    last_edited_by: Mapped[Optional[UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    last_edited_at: Mapped[Optional[DateTime]] = mapped_column(DateTime(timezone=True), nullable=True)

    remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[Optional[UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )


class ProductionReconciliationItem(UUIDPkMixin, RecordStatusMixin, TimestampMixin, Base):
    """
    Material-level reconciliation line. Net consumed
    (used - returned - pending) is computed on read, never stored.
    """
    __tablename__ = "production_reconciliation_items"
    __table_args__ = (Index("ix_production_reconciliation_items_reconciliation_id", "reconciliation_id"),)

    reconciliation_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("production_reconciliations.id", ondelete="CASCADE"), nullable=False
    )
    raw_material_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("raw_materials.id", ondelete="RESTRICT"), nullable=False
    )
    issuance_item_id: Mapped[Optional[UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("raw_material_issuance_items.id", ondelete="SET NULL"), nullable=True
    )
    quantity_issued: Mapped[float] = mapped_column(Numeric(12, 4), nullable=False)
    quantity_used: Mapped[float] = mapped_column(Numeric(12, 4), nullable=False)
    quantity_returned: Mapped[float] = mapped_column(Numeric(12, 4), nullable=False, default=0, server_default="0")
    quantity_pending: Mapped[float] = mapped_column(Numeric(12, 4), nullable=False, default=0, server_default="0")
    uom_id: Mapped[Optional[UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("uoms.id", ondelete="SET NULL"), nullable=True
    )
    remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
