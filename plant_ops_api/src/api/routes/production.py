from __future__ import annotations

from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.deps import ADMIN_ROLE, get_current_active_user, get_current_user_roles, get_session, is_admin, require_roles
from src.schemas.production import (
    BomComparison,
    BomSuggestionRequest,
    BomSuggestionResponse,
    IssuanceCreate,
    IssuanceRead,
    IssuanceSummary,
    ProductionEntryCreate,
    ProductionEntryRead,
    Shift,
)
from src.schemas.reconciliation import ReconciliationCreate, ReconciliationRead, ReconciliationUpdate
from src.services.issuance import IssuanceService
from src.services.production import ProductionService
from src.services.reconciliation import ReconciliationService

router = APIRouter(prefix="/production", tags=["Production"])

VIEW_ROLES = ("manager", "operator", "reviewer")
OPERATE_ROLES = ("manager", "operator")


# BOM suggestions

# PUBLIC_INTERFACE
@router.post(
    "/bom-suggestions",
    response_model=BomSuggestionResponse,
    summary="Suggest raw material quantities",
    description=(
        "Compute base-unit quantities of each raw material needed for a planned output, "
        "from a product's BOM or inline lines. Nothing is stored."
    ),
    dependencies=[Depends(require_roles(*VIEW_ROLES))],
)
async def suggest_quantities(
    payload: BomSuggestionRequest,
    session: AsyncSession = Depends(get_session),
) -> BomSuggestionResponse:
    return await IssuanceService(session).suggestions(payload)


# Issuances

# PUBLIC_INTERFACE
@router.get(
    "/issuances",
    response_model=List[IssuanceRead],
    summary="List issuances",
    description="List raw material issuances ordered by issuance date desc.",
    dependencies=[Depends(require_roles(*VIEW_ROLES))],
)
async def list_issuances(
    session: AsyncSession = Depends(get_session),
    product_id: Optional[UUID] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[IssuanceRead]:
    return await IssuanceService(session).list_issuances(
        product_id=product_id, date_from=date_from, date_to=date_to, limit=limit, offset=offset
    )


# PUBLIC_INTERFACE
@router.post(
    "/issuances",
    response_model=IssuanceRead,
    status_code=status.HTTP_201_CREATED,
    summary="Issue raw materials",
    description=(
        "Create an issuance. With a product and planned output and no items, items are "
        "auto-populated from the BOM suggestions. Issued quantities are deducted from stock."
    ),
    dependencies=[Depends(require_roles(*OPERATE_ROLES))],
)
async def create_issuance(
    payload: IssuanceCreate,
    session: AsyncSession = Depends(get_session),
    user=Depends(get_current_active_user),
) -> IssuanceRead:
    return await IssuanceService(session).create_issuance(payload, user_id=user.id)


# PUBLIC_INTERFACE
@router.get(
    "/issuances/{issuance_id}",
    response_model=IssuanceRead,
    summary="Get issuance",
    dependencies=[Depends(require_roles(*VIEW_ROLES))],
)
async def get_issuance(issuance_id: UUID = Path(...), session: AsyncSession = Depends(get_session)) -> IssuanceRead:
    return await IssuanceService(session).get_issuance(issuance_id)


# PUBLIC_INTERFACE
@router.get(
    "/issuances/{issuance_id}/summary",
    response_model=IssuanceSummary,
    summary="Issuance summary",
    description="Issuance with items, product and the product's BOM with material and type details.",
    dependencies=[Depends(require_roles(*VIEW_ROLES))],
)
async def get_issuance_summary(
    issuance_id: UUID = Path(...), session: AsyncSession = Depends(get_session)
) -> IssuanceSummary:
    return await IssuanceService(session).get_summary(issuance_id)


# Production entries

# PUBLIC_INTERFACE
@router.get(
    "/entries",
    response_model=List[ProductionEntryRead],
    summary="List production entries",
    dependencies=[Depends(require_roles(*VIEW_ROLES))],
)
async def list_entries(
    session: AsyncSession = Depends(get_session),
    issuance_id: Optional[UUID] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    shift: Optional[Shift] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[ProductionEntryRead]:
    return await ProductionService(session).list_entries(
        issuance_id=issuance_id, date_from=date_from, date_to=date_to, shift=shift, limit=limit, offset=offset
    )


# PUBLIC_INTERFACE
@router.post(
    "/entries",
    response_model=ProductionEntryRead,
    status_code=status.HTTP_201_CREATED,
    summary="Record production",
    description="Record a shift's output against an issuance. One entry per issuance, date and shift.",
    dependencies=[Depends(require_roles(*OPERATE_ROLES))],
)
async def create_entry(
    payload: ProductionEntryCreate,
    session: AsyncSession = Depends(get_session),
    user=Depends(get_current_active_user),
) -> ProductionEntryRead:
    return await ProductionService(session).create_entry(payload, user_id=user.id)


# PUBLIC_INTERFACE
@router.get(
    "/entries/{entry_id}",
    response_model=ProductionEntryRead,
    summary="Get production entry",
    dependencies=[Depends(require_roles(*VIEW_ROLES))],
)
async def get_entry(entry_id: UUID = Path(...), session: AsyncSession = Depends(get_session)) -> ProductionEntryRead:
    return await ProductionService(session).get_entry(entry_id)


# PUBLIC_INTERFACE
@router.get(
    "/entries/{entry_id}/bom-comparison",
    response_model=BomComparison,
    summary="Compare issued with BOM expectation",
    description="Per raw material: expected quantity for the produced output, issued quantity, variance and severity.",
    dependencies=[Depends(require_roles(*VIEW_ROLES))],
)
async def get_bom_comparison(entry_id: UUID = Path(...), session: AsyncSession = Depends(get_session)) -> BomComparison:
    return await ProductionService(session).bom_comparison(entry_id)


# Reconciliations

# PUBLIC_INTERFACE
@router.get(
    "/reconciliations",
    response_model=List[ReconciliationRead],
    summary="List reconciliations",
    dependencies=[Depends(require_roles(*VIEW_ROLES))],
)
async def list_reconciliations(
    session: AsyncSession = Depends(get_session),
    issuance_id: Optional[UUID] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    shift: Optional[Shift] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[ReconciliationRead]:
    return await ReconciliationService(session).list(
        issuance_id=issuance_id, date_from=date_from, date_to=date_to, shift=shift, limit=limit, offset=offset
    )


# PUBLIC_INTERFACE
@router.post(
    "/reconciliations",
    response_model=ReconciliationRead,
    status_code=status.HTTP_201_CREATED,
    summary="Reconcile a shift",
    description=(
        "Create the end-of-shift reconciliation for an issuance. Items default to the issued "
        "quantities; returned quantities are added back to stock."
    ),
    dependencies=[Depends(require_roles(*OPERATE_ROLES))],
)
async def create_reconciliation(
    payload: ReconciliationCreate,
    session: AsyncSession = Depends(get_session),
    user=Depends(get_current_active_user),
) -> ReconciliationRead:
    return await ReconciliationService(session).create(payload, user_id=user.id)


# PUBLIC_INTERFACE
@router.get(
    "/reconciliations/{reconciliation_id}",
    response_model=ReconciliationRead,
    summary="Get reconciliation",
    dependencies=[Depends(require_roles(*VIEW_ROLES))],
)
async def get_reconciliation(
    reconciliation_id: UUID = Path(...), session: AsyncSession = Depends(get_session)
) -> ReconciliationRead:
    return await ReconciliationService(session).get(reconciliation_id)


# PUBLIC_INTERFACE
@router.patch(
    "/reconciliations/{reconciliation_id}",
    response_model=ReconciliationRead,
    summary="Edit reconciliation",
    description="Non-admin users may edit a reconciliation a limited number of times (RECONCILIATION_EDIT_LIMIT).",
    dependencies=[Depends(require_roles(*OPERATE_ROLES))],
)
async def update_reconciliation(
    payload: ReconciliationUpdate,
    reconciliation_id: UUID = Path(...),
    session: AsyncSession = Depends(get_session),
    user=Depends(get_current_active_user),
    roles: List[str] = Depends(get_current_user_roles),
) -> ReconciliationRead:
    return await ReconciliationService(session).update(
        reconciliation_id, payload, user_id=user.id, is_admin=is_admin(roles)
    )


# PUBLIC_INTERFACE
@router.delete(
    "/reconciliations/{reconciliation_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete reconciliation",
    description="Soft delete. Admin only.",
    dependencies=[Depends(require_roles(ADMIN_ROLE))],
)
async def delete_reconciliation(reconciliation_id: UUID = Path(...), session: AsyncSession = Depends(get_session)) -> None:
    await ReconciliationService(session).delete(reconciliation_id)
