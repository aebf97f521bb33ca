from __future__ import annotations

from datetime import date
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, update

from src.db.base import RECORD_ACTIVE, RECORD_DELETED
from src.db.models.master_data import Product, RawMaterial
from src.db.models.production import (
    ProductionEntry,
    ProductionReconciliation,
    ProductionReconciliationItem,
    RawMaterialIssuance,
)
from .base import SoftDeleteRepository


class ReconciliationRepository(SoftDeleteRepository[ProductionReconciliation]):
    """Repository for production reconciliations and their material lines."""

    model = ProductionReconciliation

    async def next_reconciliation_number(self, on: date) -> str:
        return await self.next_document_number(
            ProductionReconciliation.reconciliation_number, f"REC-{on.strftime('%Y%m%d')}-"
        )

    async def find_for_shift(self, issuance_id: UUID, shift: str) -> Optional[ProductionReconciliation]:
        stmt = self._live().where(
            ProductionReconciliation.issuance_id == issuance_id,
            ProductionReconciliation.shift == shift,
        )
        return await self.scalar_one_or_none(stmt)

    async def get_for_update(self, reconciliation_id: UUID) -> Optional[ProductionReconciliation]:
        """Load a live reconciliation row locked so concurrent edits count correctly."""
        stmt = self._live().where(ProductionReconciliation.id == reconciliation_id).with_for_update()
        return await self.scalar_one_or_none(stmt)

    async def list_items(self, reconciliation_id: UUID) -> List[ProductionReconciliationItem]:
        stmt = (
            select(ProductionReconciliationItem)
            .where(
                ProductionReconciliationItem.reconciliation_id == reconciliation_id,
                ProductionReconciliationItem.record_status == RECORD_ACTIVE,
            )
            .order_by(ProductionReconciliationItem.created_at)
        )
        res = await self.scalars(stmt)
        return list(res)

    async def list_items_with_materials(
        self, reconciliation_ids: List[UUID]
    ) -> List[Tuple[ProductionReconciliationItem, Optional[RawMaterial]]]:
        if not reconciliation_ids:
            return []
        stmt = (
            select(ProductionReconciliationItem, RawMaterial)
            .outerjoin(RawMaterial, RawMaterial.id == ProductionReconciliationItem.raw_material_id)
            .where(
                ProductionReconciliationItem.reconciliation_id.in_(reconciliation_ids),
                ProductionReconciliationItem.record_status == RECORD_ACTIVE,
            )
            .order_by(ProductionReconciliationItem.created_at)
        )
        res = await self.execute(stmt)
        return [tuple(row) for row in res.all()]

    async def replace_items(
        self, reconciliation_id: UUID, items: List[dict]
    ) -> List[ProductionReconciliationItem]:
        await self.execute(
            update(ProductionReconciliationItem)
            .where(
                ProductionReconciliationItem.reconciliation_id == reconciliation_id,
                ProductionReconciliationItem.record_status == RECORD_ACTIVE,
            )
            .values(record_status=RECORD_DELETED)
            .execution_options(synchronize_session="fetch")
        )
        return await self.add_items(reconciliation_id, items)

    async def add_items(
        self, reconciliation_id: UUID, items: List[dict]
    ) -> List[ProductionReconciliationItem]:
        rows = [ProductionReconciliationItem(reconciliation_id=reconciliation_id, **item) for item in items]
        await self.add_all(rows)
        await self.flush()
        return rows

    async def report_headers(
        self,
        *,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        product_id: Optional[UUID] = None,
        production_entry_id: Optional[UUID] = None,
        shift: Optional[str] = None,
        limit: int = 1000,
        offset: int = 0,
    ) -> List[Tuple[ProductionReconciliation, RawMaterialIssuance, Optional[ProductionEntry], Optional[Product]]]:
        """
        Live reconciliations joined with issuance, production entry and product,
        newest first.
        """
        stmt = (
            select(ProductionReconciliation, RawMaterialIssuance, ProductionEntry, Product)
            .join(RawMaterialIssuance, RawMaterialIssuance.id == ProductionReconciliation.issuance_id)
            .outerjoin(ProductionEntry, ProductionEntry.id == ProductionReconciliation.production_entry_id)
            .outerjoin(Product, Product.id == RawMaterialIssuance.product_id)
            .where(ProductionReconciliation.record_status == RECORD_ACTIVE)
        )
        if date_from:
            stmt = stmt.where(ProductionReconciliation.reconciliation_date >= date_from)
        if date_to:
            stmt = stmt.where(ProductionReconciliation.reconciliation_date <= date_to)
        if product_id:
            stmt = stmt.where(RawMaterialIssuance.product_id == product_id)
        if production_entry_id:
            stmt = stmt.where(ProductionReconciliation.production_entry_id == production_entry_id)
        if shift:
            stmt = stmt.where(ProductionReconciliation.shift == shift)
        stmt = (
            stmt.order_by(
                ProductionReconciliation.reconciliation_date.desc(),
                ProductionReconciliation.reconciliation_number.desc(),
            )
            .offset(offset)
            .limit(limit)
        )
        res = await self.execute(stmt)
        return [tuple(row) for row in res.all()]
