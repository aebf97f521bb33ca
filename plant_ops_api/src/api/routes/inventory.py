from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.deps import get_session, require_roles
from src.repositories.inventory import StockRepository
from src.schemas.inventory import RawMaterialTransactionRead

router = APIRouter(prefix="/inventory", tags=["Inventory"])


# PUBLIC_INTERFACE
@router.get(
    "/transactions",
    response_model=List[RawMaterialTransactionRead],
    summary="List stock movements",
    description="Raw material stock ledger across all materials, newest first.",
    dependencies=[Depends(require_roles("manager", "operator", "reviewer"))],
)
async def list_transactions(
    session: AsyncSession = Depends(get_session),
    raw_material_id: Optional[UUID] = Query(None, description="Filter by raw material"),
    transaction_type: Optional[str] = Query(None, description="issue, return, adjustment or receipt"),
    reference: Optional[str] = Query(None, description="Document number, e.g. ISS-20240101-001"),
    limit: int = Query(100, ge=1, le=1000, description="Max records"),
    offset: int = Query(0, ge=0, description="Records to skip"),
) -> List[RawMaterialTransactionRead]:
    """
    Return stock movements.

    Returns:
        List[RawMaterialTransactionRead]: Movements ordered by created_at desc.
    """
    repo = StockRepository(session)
    records = await repo.list_transactions(
        raw_material_id=raw_material_id,
        transaction_type=transaction_type,
        reference=reference,
        limit=limit,
        offset=offset,
    )
    return [RawMaterialTransactionRead.model_validate(r) for r in records]
