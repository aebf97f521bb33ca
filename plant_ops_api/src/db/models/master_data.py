from __future__ import annotations

from typing import Optional
from sqlalchemy import Text, Boolean, Numeric, ForeignKey, Index, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import Base, UUIDPkMixin, TimestampMixin, RecordStatusMixin


class Uom(UUIDPkMixin, RecordStatusMixin, TimestampMixin, Base):
    """Unit of measure master (KG, PCS, BOX, ROLL, ...)."""
    __tablename__ = "uoms"
    __table_args__ = (
        # Codes are unique among live rows; a soft-deleted code can be reused
        Index("uq_uoms_code", "code", unique=True, postgresql_where=text("record_status = 1")),
    )

    code: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")


class RawMaterialType(UUIDPkMixin, RecordStatusMixin, TimestampMixin, Base):
    """
    Raw material type with its conversion method.

    conversion_value and usable_units are computed from the method fields when
    the type is saved and stored for display.
    """
    __tablename__ = "raw_material_types"
    __table_args__ = (
        Index("uq_raw_material_types_type_code", "type_code", unique=True, postgresql_where=text("record_status = 1")),
    )

    type_code: Mapped[str] = mapped_column(Text, nullable=False)
    type_name: Mapped[str] = mapped_column(Text, nullable=False)
    conversion_method: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    base_unit: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # Bag, Box, Roll
    base_unit_weight: Mapped[Optional[float]] = mapped_column(Numeric(12, 4), nullable=True)  # kg
    derived_unit: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # Piece, Bottle
    weight_per_derived_unit: Mapped[Optional[float]] = mapped_column(Numeric(12, 4), nullable=True)  # g
    derived_value_per_base: Mapped[Optional[float]] = mapped_column(Numeric(14, 4), nullable=True)
    output_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    output_units_covered: Mapped[Optional[float]] = mapped_column(Numeric(14, 4), nullable=True)

    conversion_value: Mapped[Optional[float]] = mapped_column(Numeric(14, 4), nullable=True)
    loss_percent: Mapped[float] = mapped_column(Numeric(5, 2), nullable=False, default=0, server_default="0")
    usable_units: Mapped[Optional[int]] = mapped_column(nullable=True)

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")


class RawMaterial(UUIDPkMixin, RecordStatusMixin, TimestampMixin, Base):
    """Raw material with its running stock in base units."""
    __tablename__ = "raw_materials"
    __table_args__ = (
        Index("uq_raw_materials_material_code", "material_code", unique=True, postgresql_where=text("record_status = 1")),
    )

    material_code: Mapped[str] = mapped_column(Text, nullable=False)
    material_name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    type_id: Mapped[Optional[UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("raw_material_types.id", ondelete="SET NULL"), nullable=True
    )
    uom_id: Mapped[Optional[UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("uoms.id", ondelete="SET NULL"), nullable=True
    )
    current_stock: Mapped[float] = mapped_column(Numeric(14, 4), nullable=False, default=0, server_default="0")
    reorder_level: Mapped[Optional[float]] = mapped_column(Numeric(14, 4), nullable=True)
    unit_cost: Mapped[Optional[float]] = mapped_column(Numeric(14, 2), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")


class Product(UUIDPkMixin, RecordStatusMixin, TimestampMixin, Base):
    """Finished product master with packaging conversion details."""
    __tablename__ = "products"
    __table_args__ = (
        Index("uq_products_product_code", "product_code", unique=True, postgresql_where=text("record_status = 1")),
    )

    product_code: Mapped[str] = mapped_column(Text, nullable=False)
    product_name: Mapped[str] = mapped_column(Text, nullable=False)
    sku_code: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    base_unit: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # Case
    derived_unit: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # Bottle
    conversion_method: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    derived_value_per_base: Mapped[Optional[float]] = mapped_column(Numeric(10, 2), nullable=True)
    weight_per_base: Mapped[Optional[float]] = mapped_column(Numeric(10, 2), nullable=True)  # g
    weight_per_derived: Mapped[Optional[float]] = mapped_column(Numeric(10, 2), nullable=True)  # g
    default_loss_percent: Mapped[float] = mapped_column(Numeric(5, 2), nullable=False, default=0, server_default="0")
    usable_derived_units: Mapped[Optional[float]] = mapped_column(Numeric(12, 4), nullable=True)

    uom_id: Mapped[Optional[UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("uoms.id", ondelete="SET NULL"), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")


class ProductBom(UUIDPkMixin, RecordStatusMixin, TimestampMixin, Base):
    """Bill of materials line: raw material quantity required per unit of product."""
    __tablename__ = "product_bom"
    __table_args__ = (
        Index("ix_product_bom_product_id", "product_id"),
        Index("ix_product_bom_raw_material_id", "raw_material_id"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )
    raw_material_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("raw_materials.id", ondelete="RESTRICT"), nullable=False
    )
    quantity_required: Mapped[float] = mapped_column(Numeric(12, 6), nullable=False)
    uom_id: Mapped[Optional[UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("uoms.id", ondelete="SET NULL"), nullable=True
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
