from __future__ import annotations

import io
import logging
from datetime import date, datetime, timezone
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.deps import get_session, require_roles
from src.schemas.production import Shift
from src.schemas.reconciliation import AnalyticsPeriod, ReconciliationReportRow, VarianceAnalytics
from src.services.export import export_dataframe
from src.services.reconciliation import ReconciliationService, report_to_dataframe

logger = logging.getLogger(__name__)

# PUBLIC_INTERFACE
router = APIRouter(
    prefix="/reports",
    tags=["Reports"],
)

REPORT_ROLES = ("manager", "reviewer")


# PUBLIC_INTERFACE
@router.get(
    "/production-reconciliation",
    response_model=List[ReconciliationReportRow],
    summary="Production reconciliation report",
    description=(
        "Reconciliations with yield and efficiency, and per raw material the net consumed "
        "quantity, BOM expectation, variance and severity."
    ),
    dependencies=[Depends(require_roles(*REPORT_ROLES))],
)
async def production_reconciliation_report(
    session: AsyncSession = Depends(get_session),
    date_from: Optional[date] = Query(None, description="Reconciliation date from (inclusive)"),
    date_to: Optional[date] = Query(None, description="Reconciliation date to (inclusive)"),
    product_id: Optional[UUID] = Query(None),
    production_entry_id: Optional[UUID] = Query(None),
    shift: Optional[Shift] = Query(None),
    limit: int = Query(1000, ge=1, le=10000),
    offset: int = Query(0, ge=0),
) -> List[ReconciliationReportRow]:
    return await ReconciliationService(session).report(
        date_from=date_from,
        date_to=date_to,
        product_id=product_id,
        production_entry_id=production_entry_id,
        shift=shift,
        limit=limit,
        offset=offset,
    )


# PUBLIC_INTERFACE
@router.get(
    "/production-reconciliation/export",
    summary="Export production reconciliation report",
    description="Download the report flattened to one row per raw material as CSV, XLSX or PDF.",
    dependencies=[Depends(require_roles(*REPORT_ROLES))],
    responses={
        200: {
            "content": {
                "text/csv": {},
                "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": {},
                "application/pdf": {},
            },
            "description": "Report file",
        }
    },
)
async def export_production_reconciliation(
    session: AsyncSession = Depends(get_session),
    format: str = Query("csv", description="csv | xlsx | pdf"),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    product_id: Optional[UUID] = Query(None),
    production_entry_id: Optional[UUID] = Query(None),
    shift: Optional[Shift] = Query(None),
) -> StreamingResponse:
    rows = await ReconciliationService(session).report(
        date_from=date_from,
        date_to=date_to,
        product_id=product_id,
        production_entry_id=production_entry_id,
        shift=shift,
        limit=10000,
    )
    export = export_dataframe(report_to_dataframe(rows), "production_reconciliation", format)
    logger.info("Exported %d reconciliation(s) as %s", len(rows), export.filename)
    return StreamingResponse(
        io.BytesIO(export.content),
        media_type=export.media_type,
        headers={"Content-Disposition": f'attachment; filename="{export.filename}"'},
    )


# PUBLIC_INTERFACE
@router.get(
    "/variance-analytics",
    response_model=VarianceAnalytics,
    summary="Variance analytics",
    description=(
        "Average variance, efficiency and yield per week, month, quarter or year, with "
        "good / warning / critical reconciliation counts and the raw materials with the highest variance."
    ),
    dependencies=[Depends(require_roles(*REPORT_ROLES))],
)
async def variance_analytics(
    session: AsyncSession = Depends(get_session),
    period: AnalyticsPeriod = Query("monthly", description="weekly | monthly | quarterly | yearly"),
    year: Optional[int] = Query(None, ge=2000, le=2100, description="Calendar year, defaults to the current year"),
) -> VarianceAnalytics:
    return await ReconciliationService(session).variance_analytics(
        period=period, year=year or datetime.now(tz=timezone.utc).year
    )
