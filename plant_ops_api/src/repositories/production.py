from __future__ import annotations

from datetime import date
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select

from src.db.base import RECORD_ACTIVE
from src.db.models.production import RawMaterialIssuance, RawMaterialIssuanceItem, ProductionEntry
from .base import SoftDeleteRepository


class IssuanceRepository(SoftDeleteRepository[RawMaterialIssuance]):
    """Repository for raw material issuances and their items."""

    model = RawMaterialIssuance

    async def next_issuance_number(self, on: date) -> str:
        return await self.next_document_number(
            RawMaterialIssuance.issuance_number, f"ISS-{on.strftime('%Y%m%d')}-"
        )

    async def list_issuances(
        self,
        *,
        product_id: Optional[UUID],
        date_from: Optional[date],
        date_to: Optional[date],
        limit: int,
        offset: int,
    ) -> List[RawMaterialIssuance]:
        filters = []
        if product_id:
            filters.append(RawMaterialIssuance.product_id == product_id)
        if date_from:
            filters.append(RawMaterialIssuance.issuance_date >= date_from)
        if date_to:
            filters.append(RawMaterialIssuance.issuance_date <= date_to)
        return await self.list(
            *filters, order_by=RawMaterialIssuance.issuance_date.desc(), limit=limit, offset=offset
        )

    async def list_items(self, issuance_id: UUID) -> List[RawMaterialIssuanceItem]:
        stmt = (
            select(RawMaterialIssuanceItem)
            .where(
                RawMaterialIssuanceItem.issuance_id == issuance_id,
                RawMaterialIssuanceItem.record_status == RECORD_ACTIVE,
            )
            .order_by(RawMaterialIssuanceItem.created_at)
        )
        res = await self.scalars(stmt)
        return list(res)

    async def add_items(self, issuance_id: UUID, items: List[dict]) -> List[RawMaterialIssuanceItem]:
        rows = [RawMaterialIssuanceItem(issuance_id=issuance_id, **item) for item in items]
        await self.add_all(rows)
        await self.flush()
        return rows


class ProductionEntryRepository(SoftDeleteRepository[ProductionEntry]):
    """Repository for production entries."""

    model = ProductionEntry

    async def find_for_shift(
        self, issuance_id: UUID, production_date: date, shift: str
    ) -> Optional[ProductionEntry]:
        stmt = self._live().where(
            ProductionEntry.issuance_id == issuance_id,
            ProductionEntry.production_date == production_date,
            ProductionEntry.shift == shift,
        )
        return await self.scalar_one_or_none(stmt)

    async def list_entries(
        self,
        *,
        issuance_id: Optional[UUID],
        date_from: Optional[date],
        date_to: Optional[date],
        shift: Optional[str],
        limit: int,
        offset: int,
    ) -> List[ProductionEntry]:
        filters = []
        if issuance_id:
            filters.append(ProductionEntry.issuance_id == issuance_id)
        if date_from:
            filters.append(ProductionEntry.production_date >= date_from)
        if date_to:
            filters.append(ProductionEntry.production_date <= date_to)
        if shift:
            filters.append(ProductionEntry.shift == shift)
        return await self.list(
            *filters, order_by=ProductionEntry.production_date.desc(), limit=limit, offset=offset
        )
