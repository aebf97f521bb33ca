"""Master data, stock movements and production schema.

- uoms, raw_material_types, raw_materials, products, product_bom
- raw_material_transactions
- raw_material_issuances / raw_material_issuance_items
- production_entries
- production_reconciliations / production_reconciliation_items

Partial unique indexes on live rows (record_status = 1) enforce master data
codes, one production entry per issuance/date/shift and one reconciliation per
issuance/shift, so soft-deleted rows do not block a new row with the same key.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "6e4a2f8b1c73"
down_revision: Union[str, None] = "3c1d9e7a5b20"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


_LIVE = sa.text("record_status = 1")


def _pk() -> sa.Column:
    return sa.Column("id", sa.UUID(), primary_key=True, server_default=sa.text("uuid_generate_v4()"))


def _housekeeping() -> list:
    return [
        sa.Column("record_status", sa.Integer(), server_default=sa.text("1"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    # Units of measure
    op.create_table(
        "uoms",
        _pk(),
        sa.Column("code", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_housekeeping(),
    )
    op.create_index("uq_uoms_code", "uoms", ["code"], unique=True, postgresql_where=_LIVE)

    # Raw material types with conversion settings
    op.create_table(
        "raw_material_types",
        _pk(),
        sa.Column("type_code", sa.Text(), nullable=False),
        sa.Column("type_name", sa.Text(), nullable=False),
        sa.Column("conversion_method", sa.Text(), nullable=True),
        sa.Column("base_unit", sa.Text(), nullable=True),
        sa.Column("base_unit_weight", sa.Numeric(12, 4), nullable=True),
        sa.Column("derived_unit", sa.Text(), nullable=True),
        sa.Column("weight_per_derived_unit", sa.Numeric(12, 4), nullable=True),
        sa.Column("derived_value_per_base", sa.Numeric(14, 4), nullable=True),
        sa.Column("output_type", sa.Text(), nullable=True),
        sa.Column("output_units_covered", sa.Numeric(14, 4), nullable=True),
        sa.Column("conversion_value", sa.Numeric(14, 4), nullable=True),
        sa.Column("loss_percent", sa.Numeric(5, 2), server_default=sa.text("0"), nullable=False),
        sa.Column("usable_units", sa.Integer(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_housekeeping(),
    )
    op.create_index("uq_raw_material_types_type_code", "raw_material_types", ["type_code"], unique=True, postgresql_where=_LIVE)

    op.create_table(
        "raw_materials",
        _pk(),
        sa.Column("material_code", sa.Text(), nullable=False),
        sa.Column("material_name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("type_id", sa.UUID(), nullable=True),
        sa.Column("uom_id", sa.UUID(), nullable=True),
        sa.Column("current_stock", sa.Numeric(14, 4), server_default=sa.text("0"), nullable=False),
        sa.Column("reorder_level", sa.Numeric(14, 4), nullable=True),
        sa.Column("unit_cost", sa.Numeric(14, 2), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_housekeeping(),
        sa.ForeignKeyConstraint(["type_id"], ["raw_material_types.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["uom_id"], ["uoms.id"], ondelete="SET NULL"),
    )
    op.create_index("uq_raw_materials_material_code", "raw_materials", ["material_code"], unique=True, postgresql_where=_LIVE)

    op.create_table(
        "products",
        _pk(),
        sa.Column("product_code", sa.Text(), nullable=False),
        sa.Column("product_name", sa.Text(), nullable=False),
        sa.Column("sku_code", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("base_unit", sa.Text(), nullable=True),
        sa.Column("derived_unit", sa.Text(), nullable=True),
        sa.Column("conversion_method", sa.Text(), nullable=True),
        sa.Column("derived_value_per_base", sa.Numeric(10, 2), nullable=True),
        sa.Column("weight_per_base", sa.Numeric(10, 2), nullable=True),
        sa.Column("weight_per_derived", sa.Numeric(10, 2), nullable=True),
        sa.Column("default_loss_percent", sa.Numeric(5, 2), server_default=sa.text("0"), nullable=False),
        sa.Column("usable_derived_units", sa.Numeric(12, 4), nullable=True),
        sa.Column("uom_id", sa.UUID(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_housekeeping(),
        sa.ForeignKeyConstraint(["uom_id"], ["uoms.id"], ondelete="SET NULL"),
    )
    op.create_index("uq_products_product_code", "products", ["product_code"], unique=True, postgresql_where=_LIVE)

    op.create_table(
        "product_bom",
        _pk(),
        sa.Column("product_id", sa.UUID(), nullable=False),
        sa.Column("raw_material_id", sa.UUID(), nullable=False),
        sa.Column("quantity_required", sa.Numeric(12, 6), nullable=False),
        sa.Column("uom_id", sa.UUID(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_housekeeping(),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["raw_material_id"], ["raw_materials.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["uom_id"], ["uoms.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_product_bom_product_id", "product_bom", ["product_id"])
    op.create_index("ix_product_bom_raw_material_id", "product_bom", ["raw_material_id"])

    # Stock movements
    op.create_table(
        "raw_material_transactions",
        _pk(),
        sa.Column("raw_material_id", sa.UUID(), nullable=False),
        sa.Column("transaction_type", sa.Text(), nullable=False),
        sa.Column("quantity", sa.Numeric(14, 4), nullable=False),
        sa.Column("reference", sa.Text(), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("performed_by", sa.UUID(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["raw_material_id"], ["raw_materials.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["performed_by"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index(
        "ix_raw_material_transactions_material_created",
        "raw_material_transactions",
        ["raw_material_id", "created_at"],
    )

    # Issuances
    op.create_table(
        "raw_material_issuances",
        _pk(),
        sa.Column("issuance_number", sa.Text(), nullable=False),
        sa.Column("issuance_date", sa.Date(), nullable=False),
        sa.Column("issued_to", sa.Text(), nullable=True),
        sa.Column("product_id", sa.UUID(), nullable=True),
        sa.Column("production_reference", sa.Text(), nullable=True),
        sa.Column("planned_output", sa.Numeric(12, 2), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("issued_by", sa.UUID(), nullable=True),
        *_housekeeping(),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["issued_by"], ["users.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("issuance_number", name="uq_raw_material_issuances_number"),
    )

    op.create_table(
        "raw_material_issuance_items",
        _pk(),
        sa.Column("issuance_id", sa.UUID(), nullable=False),
        sa.Column("raw_material_id", sa.UUID(), nullable=False),
        sa.Column("product_id", sa.UUID(), nullable=True),
        sa.Column("quantity_issued", sa.Numeric(12, 6), nullable=False),
        sa.Column("suggested_quantity", sa.Numeric(12, 6), nullable=True),
        sa.Column("calculation_basis", sa.Text(), nullable=True),
        sa.Column("uom_id", sa.UUID(), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        *_housekeeping(),
        sa.ForeignKeyConstraint(["issuance_id"], ["raw_material_issuances.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["raw_material_id"], ["raw_materials.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["uom_id"], ["uoms.id"], ondelete="SET NULL"),
    )
    op.create_index(
        "ix_raw_material_issuance_items_issuance_id", "raw_material_issuance_items", ["issuance_id"]
    )

    # Production entries
    op.create_table(
        "production_entries",
        _pk(),
        sa.Column("issuance_id", sa.UUID(), nullable=False),
        sa.Column("production_date", sa.Date(), nullable=False),
        sa.Column("shift", sa.Text(), nullable=False),
        sa.Column("produced_quantity", sa.Numeric(12, 2), nullable=False),
        sa.Column("rejected_quantity", sa.Numeric(12, 2), server_default=sa.text("0"), nullable=False),
        sa.Column("empty_bottles_produced", sa.Numeric(12, 2), server_default=sa.text("0"), nullable=False),
        sa.Column("empty_bottles_used", sa.Numeric(12, 2), server_default=sa.text("0"), nullable=False),
        sa.Column("empty_bottles_pending", sa.Numeric(12, 2), server_default=sa.text("0"), nullable=False),
        sa.Column("derived_units", sa.Numeric(12, 2), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("created_by", sa.UUID(), nullable=True),
        *_housekeeping(),
        sa.ForeignKeyConstraint(["issuance_id"], ["raw_material_issuances.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index(
        "uq_production_entries_issuance_date_shift",
        "production_entries",
        ["issuance_id", "production_date", "shift"],
        unique=True,
        postgresql_where=_LIVE,
    )

    # Reconciliations
    op.create_table(
        "production_reconciliations",
        _pk(),
        sa.Column("reconciliation_number", sa.Text(), nullable=False),
        sa.Column("reconciliation_date", sa.Date(), nullable=False),
        sa.Column("shift", sa.Text(), nullable=False),
        sa.Column("issuance_id", sa.UUID(), nullable=False),
        sa.Column("production_entry_id", sa.UUID(), nullable=False),
        sa.Column("produced_cases", sa.Integer(), nullable=False),
        sa.Column("rejected_cases", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("empty_bottles_produced", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("empty_bottles_used", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("empty_bottles_pending", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("edit_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("last_edited_by", sa.UUID(), nullable=True),
        sa.Column("last_edited_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("created_by", sa.UUID(), nullable=True),
        *_housekeeping(),
        sa.ForeignKeyConstraint(["issuance_id"], ["raw_material_issuances.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["production_entry_id"], ["production_entries.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["last_edited_by"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("reconciliation_number", name="uq_production_reconciliations_number"),
    )
    op.create_index(
        "uq_production_reconciliations_issuance_shift",
        "production_reconciliations",
        ["issuance_id", "shift"],
        unique=True,
        postgresql_where=_LIVE,
    )
    op.create_index(
        "ix_production_reconciliations_date_shift_status",
        "production_reconciliations",
        ["reconciliation_date", "shift", "record_status"],
    )

    op.create_table(
        "production_reconciliation_items",
        _pk(),
        sa.Column("reconciliation_id", sa.UUID(), nullable=False),
        sa.Column("raw_material_id", sa.UUID(), nullable=False),
        sa.Column("issuance_item_id", sa.UUID(), nullable=True),
        sa.Column("quantity_issued", sa.Numeric(12, 4), nullable=False),
        sa.Column("quantity_used", sa.Numeric(12, 4), nullable=False),
        sa.Column("quantity_returned", sa.Numeric(12, 4), server_default=sa.text("0"), nullable=False),
        sa.Column("quantity_pending", sa.Numeric(12, 4), server_default=sa.text("0"), nullable=False),
        sa.Column("uom_id", sa.UUID(), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        *_housekeeping(),
        sa.ForeignKeyConstraint(["reconciliation_id"], ["production_reconciliations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["raw_material_id"], ["raw_materials.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["issuance_item_id"], ["raw_material_issuance_items.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["uom_id"], ["uoms.id"], ondelete="SET NULL"),
    )
    op.create_index(
        "ix_production_reconciliation_items_reconciliation_id",
        "production_reconciliation_items",
        ["reconciliation_id"],
    )


def downgrade() -> None:
    # Drop in reverse dependency order
    op.drop_table("production_reconciliation_items")
    op.drop_table("production_reconciliations")
    op.drop_table("production_entries")
    op.drop_table("raw_material_issuance_items")
    op.drop_table("raw_material_issuances")
    op.drop_table("raw_material_transactions")
    op.drop_table("product_bom")
    op.drop_table("products")
    op.drop_table("raw_materials")
    op.drop_table("raw_material_types")
    op.drop_table("uoms")
