from __future__ import annotations

import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select

from src.db.models.inventory import RawMaterialTransaction
from src.db.models.master_data import RawMaterial
from .base import BaseRepository

logger = logging.getLogger(__name__)


class StockRepository(BaseRepository):
    """Raw material stock levels and the movement ledger."""

    async def adjust_stock(
        self,
        raw_material_id: UUID,
        delta: float,
        *,
        transaction_type: str,
        reference: Optional[str] = None,
        remarks: Optional[str] = None,
        performed_by: Optional[UUID] = None,
    ) -> Optional[RawMaterialTransaction]:
        """
        Apply a signed stock change and record it as a transaction.

        Returns None (and records nothing) when the raw material does not exist
        or delta is 0.
        """
        if not delta:
            return None
        stmt = select(RawMaterial).where(RawMaterial.id == raw_material_id).with_for_update()
        material = await self.scalar_one_or_none(stmt)
        if material is None:
            logger.warning("Stock change %s for unknown raw material %s ignored", delta, raw_material_id)
            return None

        new_stock = float(material.current_stock or 0) + float(delta)
        if new_stock < 0:
            logger.warning(
                "Stock for %s goes negative (%.4f) after %s %s",
                material.material_code,
                new_stock,
                transaction_type,
                reference or "",
            )
        material.current_stock = new_stock

        txn = RawMaterialTransaction(
            raw_material_id=raw_material_id,
            transaction_type=transaction_type,
            quantity=float(delta),
            reference=reference,
            remarks=remarks,
            performed_by=performed_by,
        )
        await self.add(txn)
        await self.flush()
        return txn

    async def list_transactions(
        self,
        *,
        raw_material_id: Optional[UUID] = None,
        transaction_type: Optional[str] = None,
        reference: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[RawMaterialTransaction]:
        stmt = select(RawMaterialTransaction)
        if raw_material_id:
            stmt = stmt.where(RawMaterialTransaction.raw_material_id == raw_material_id)
        if transaction_type:
            stmt = stmt.where(RawMaterialTransaction.transaction_type == transaction_type)
        if reference:
            stmt = stmt.where(RawMaterialTransaction.reference == reference)
        stmt = stmt.order_by(RawMaterialTransaction.created_at.desc()).offset(offset).limit(limit)
        res = await self.scalars(stmt)
        return list(res)
