from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import UUID

import pandas as pd
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.settings import AppSettings, get_app_settings
from src.db.models.production import ProductionReconciliation, ProductionReconciliationItem
from src.repositories.inventory import StockRepository
from src.repositories.master_data import ProductRepository
from src.repositories.production import IssuanceRepository, ProductionEntryRepository
from src.repositories.reconciliation import ReconciliationRepository
from src.schemas.reconciliation import (
    AnalyticsPeriod,
    MaterialReportLine,
    MaterialVarianceSummary,
    PeriodVarianceAnalytics,
    ReconciliationCreate,
    ReconciliationItemIn,
    ReconciliationItemRead,
    ReconciliationRead,
    ReconciliationReportRow,
    ReconciliationUpdate,
    VarianceAnalytics,
    VarianceAnalyticsTotals,
)
from src.services.base import BaseService
from src.services.calculations import (
    BomSuggestion,
    calculate_variance,
    calculate_variance_percent,
    classify_variance,
    efficiency_percent,
    net_consumed,
    yield_percent,
)
from src.services.errors import BusinessRuleError, ConflictError, EditLimitExceededError, NotFoundError
from src.services.issuance import bom_lines_from_rows
from src.services.production import expected_suggestions, produced_output

logger = logging.getLogger(__name__)

EDIT_LIMIT_MESSAGE = "Edit limit reached. Contact an administrator for further changes."

# Materials listed on the variance analytics, worst average variance first
TOP_MATERIALS = 10

# Reconciliations read for one year of analytics
ANALYTICS_ROW_LIMIT = 50000

REPORT_COLUMNS = [
    "reconciliation_number",
    "reconciliation_date",
    "shift",
    "issuance_number",
    "product_name",
    "produced_cases",
    "produced_bottles",
    "yield_percent",
    "efficiency_percent",
    "material_code",
    "material_name",
    "quantity_issued",
    "quantity_used",
    "quantity_returned",
    "quantity_pending",
    "net_consumed",
    "expected_total",
    "variance",
    "variance_percent",
    "severity",
]


def reconciliation_to_read(
    rec: ProductionReconciliation, items: Sequence[ProductionReconciliationItem]
) -> ReconciliationRead:
    read = ReconciliationRead.model_validate(rec)
    read.items = [ReconciliationItemRead.model_validate(i) for i in items]
    return read


def _returned_by_material(items) -> Dict[UUID, float]:
    totals: Dict[UUID, float] = defaultdict(float)
    for item in items:
        totals[item.raw_material_id] += float(item.quantity_returned or 0)
    return totals


def _round(value: Optional[float], places: int = 2) -> Optional[float]:
    return None if value is None else round(value, places)


class ReconciliationService(BaseService):
    """
    End-of-shift production reconciliation: creation from an issuance and its
    production entry, limited edits, soft delete and the reconciliation report.
    """

    def __init__(self, session: AsyncSession, settings: Optional[AppSettings] = None) -> None:
        super().__init__(session)
        self.settings = settings or get_app_settings()
        self.reconciliations = ReconciliationRepository(session)
        self.issuances = IssuanceRepository(session)
        self.entries = ProductionEntryRepository(session)
        self.products = ProductRepository(session)
        self.stock = StockRepository(session)

    async def _item_rows(self, issuance_id: UUID, items: Optional[List[ReconciliationItemIn]]) -> List[dict]:
        """
        Material lines to store. Without explicit items every issuance item is
        reconciled as fully used.
        """
        issued_items = await self.issuances.list_items(issuance_id)
        if not items:
            return [
                {
                    "raw_material_id": i.raw_material_id,
                    "issuance_item_id": i.id,
                    "quantity_issued": float(i.quantity_issued),
                    "quantity_used": float(i.quantity_issued),
                    "quantity_returned": 0.0,
                    "quantity_pending": 0.0,
                    "uom_id": i.uom_id,
                    "remarks": None,
                }
                for i in issued_items
            ]

        by_id = {i.id: i for i in issued_items}
        issued_by_material: Dict[UUID, float] = defaultdict(float)
        for i in issued_items:
            issued_by_material[i.raw_material_id] += float(i.quantity_issued)

        rows = []
        for item in items:
            quantity_issued = item.quantity_issued
            if quantity_issued is None:
                source = by_id.get(item.issuance_item_id) if item.issuance_item_id else None
                quantity_issued = (
                    float(source.quantity_issued) if source is not None else issued_by_material.get(item.raw_material_id, 0.0)
                )
            rows.append(
                {
                    "raw_material_id": item.raw_material_id,
                    "issuance_item_id": item.issuance_item_id,
                    "quantity_issued": quantity_issued,
                    "quantity_used": item.quantity_used,
                    "quantity_returned": item.quantity_returned,
                    "quantity_pending": item.quantity_pending,
                    "uom_id": item.uom_id,
                    "remarks": item.remarks,
                }
            )
        return rows

    async def _apply_returns(
        self, changes: Dict[UUID, float], reference: str, user_id: Optional[UUID]
    ) -> None:
        for rm_id, delta in changes.items():
            if not delta:
                continue
            await self.stock.adjust_stock(
                rm_id,
                delta,
                transaction_type="return" if delta > 0 else "adjustment",
                reference=reference,
                remarks="Returned from production" if delta > 0 else "Reconciliation return reduced",
                performed_by=user_id,
            )

    # PUBLIC_INTERFACE
    async def create(self, payload: ReconciliationCreate, user_id: Optional[UUID] = None) -> ReconciliationRead:
        """
        Create a reconciliation for an issuance and shift.

        Raises:
            NotFoundError: issuance or production entry missing.
            BusinessRuleError: the production entry belongs to another issuance.
            ConflictError: a live reconciliation already exists for the issuance and shift.
        """
        issuance = await self.issuances.get(payload.issuance_id)
        if issuance is None:
            raise NotFoundError("Issuance not found", details={"issuance_id": str(payload.issuance_id)})
        entry = await self.entries.get(payload.production_entry_id)
        if entry is None:
            raise NotFoundError(
                "Production entry not found", details={"production_entry_id": str(payload.production_entry_id)}
            )
        if entry.issuance_id != issuance.id:
            raise BusinessRuleError("Production entry does not belong to the issuance")

        existing = await self.reconciliations.find_for_shift(issuance.id, payload.shift)
        if existing is not None:
            raise ConflictError(
                "A reconciliation already exists for this issuance and shift",
                details={"reconciliation_number": existing.reconciliation_number},
            )

        rows = await self._item_rows(issuance.id, payload.items)
        number = await self.reconciliations.next_reconciliation_number(payload.reconciliation_date)

        def _pick(value, fallback) -> int:
            return int(value if value is not None else round(float(fallback or 0)))

        async with self.conflict_on_duplicate(
            "A reconciliation already exists for this issuance and shift",
            details={"issuance_id": str(issuance.id), "shift": payload.shift},
        ):
            rec = await self.reconciliations.create(
                reconciliation_number=number,
                reconciliation_date=payload.reconciliation_date,
                shift=payload.shift,
                issuance_id=issuance.id,
                production_entry_id=entry.id,
                produced_cases=int(round(float(entry.produced_quantity))),
                rejected_cases=int(round(float(entry.rejected_quantity or 0))),
                empty_bottles_produced=_pick(payload.empty_bottles_produced, entry.empty_bottles_produced),
                empty_bottles_used=_pick(payload.empty_bottles_used, entry.empty_bottles_used),
                empty_bottles_pending=_pick(payload.empty_bottles_pending, entry.empty_bottles_pending),
                edit_count=0,
                remarks=payload.remarks,
                created_by=user_id,
            )
            items = await self.reconciliations.add_items(rec.id, rows)
            await self._apply_returns(_returned_by_material(items), number, user_id)
            await self.session.commit()
        logger.info("Created reconciliation %s for issuance %s shift %s", number, issuance.issuance_number, payload.shift)
        return reconciliation_to_read(rec, items)

    # PUBLIC_INTERFACE
    async def update(
        self,
        reconciliation_id: UUID,
        payload: ReconciliationUpdate,
        user_id: Optional[UUID] = None,
        is_admin: bool = False,
    ) -> ReconciliationRead:
        """
        Edit a reconciliation. Non-admin users get RECONCILIATION_EDIT_LIMIT edits.

        Replacing items re-balances stock by the change in returned quantity
        per raw material.

        Raises:
            NotFoundError: reconciliation missing.
            BusinessRuleError: items is given as an empty list.
            EditLimitExceededError: a non-admin user has no edits left.
        """
        rec = await self.reconciliations.get_for_update(reconciliation_id)
        if rec is None:
            raise NotFoundError("Reconciliation not found", details={"reconciliation_id": str(reconciliation_id)})
        if payload.items is not None and not payload.items:
            raise BusinessRuleError("items must not be empty; omit the field to keep the current items")

        limit = self.settings.RECONCILIATION_EDIT_LIMIT
        if not is_admin and (rec.edit_count or 0) >= limit:
            logger.info("Edit of %s refused: %d/%d edits used", rec.reconciliation_number, rec.edit_count, limit)
            raise EditLimitExceededError(EDIT_LIMIT_MESSAGE, details={"edit_count": rec.edit_count, "limit": limit})

        for field in ("reconciliation_date", "empty_bottles_produced", "empty_bottles_used", "empty_bottles_pending", "remarks"):
            value = getattr(payload, field)
            if value is not None:
                setattr(rec, field, value)

        if payload.items is not None:
            old_items = await self.reconciliations.list_items(rec.id)
            before = _returned_by_material(old_items)
            rows = await self._item_rows(rec.issuance_id, payload.items)
            items = await self.reconciliations.replace_items(rec.id, rows)
            after = _returned_by_material(items)
            changes = {rm: after.get(rm, 0.0) - before.get(rm, 0.0) for rm in set(before) | set(after)}
            await self._apply_returns(changes, rec.reconciliation_number, user_id)
        else:
            items = await self.reconciliations.list_items(rec.id)

        rec.edit_count = (rec.edit_count or 0) + 1
        rec.last_edited_by = user_id
        rec.last_edited_at = datetime.now(tz=timezone.utc)
        await self.reconciliations.flush()
        await self.session.commit()
        logger.info("Updated reconciliation %s (edit %d)", rec.reconciliation_number, rec.edit_count)
        return reconciliation_to_read(rec, items)

    # PUBLIC_INTERFACE
    async def delete(self, reconciliation_id: UUID) -> None:
        """Soft delete; stock movements already recorded are left in place."""
        if not await self.reconciliations.soft_delete(reconciliation_id):
            raise NotFoundError("Reconciliation not found", details={"reconciliation_id": str(reconciliation_id)})
        await self.session.commit()
        logger.info("Soft-deleted reconciliation %s", reconciliation_id)

    # PUBLIC_INTERFACE
    async def get(self, reconciliation_id: UUID) -> ReconciliationRead:
        rec = await self.reconciliations.get(reconciliation_id)
        if rec is None:
            raise NotFoundError("Reconciliation not found", details={"reconciliation_id": str(reconciliation_id)})
        return reconciliation_to_read(rec, await self.reconciliations.list_items(rec.id))

    # PUBLIC_INTERFACE
    async def list(
        self,
        *,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        shift: Optional[str] = None,
        issuance_id: Optional[UUID] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[ReconciliationRead]:
        filters = []
        if date_from:
            filters.append(ProductionReconciliation.reconciliation_date >= date_from)
        if date_to:
            filters.append(ProductionReconciliation.reconciliation_date <= date_to)
        if shift:
            filters.append(ProductionReconciliation.shift == shift)
        if issuance_id:
            filters.append(ProductionReconciliation.issuance_id == issuance_id)
        rows = await self.reconciliations.list(
            *filters, order_by=ProductionReconciliation.reconciliation_date.desc(), limit=limit, offset=offset
        )
        return [reconciliation_to_read(r, await self.reconciliations.list_items(r.id)) for r in rows]

    # PUBLIC_INTERFACE
    async def report(
        self,
        *,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        product_id: Optional[UUID] = None,
        production_entry_id: Optional[UUID] = None,
        shift: Optional[str] = None,
        limit: int = 1000,
        offset: int = 0,
    ) -> List[ReconciliationReportRow]:
        """
        Reconciliation report rows with yield, efficiency and per-material
        net consumption and variance against the BOM expectation for the
        produced cases. Efficiency compares produced cases with the issuance plan.
        """
        headers = await self.reconciliations.report_headers(
            date_from=date_from,
            date_to=date_to,
            product_id=product_id,
            production_entry_id=production_entry_id,
            shift=shift,
            limit=limit,
            offset=offset,
        )
        item_rows = await self.reconciliations.list_items_with_materials([h[0].id for h in headers])
        items_by_rec: Dict[UUID, list] = defaultdict(list)
        for item, material in item_rows:
            items_by_rec[item.reconciliation_id].append((item, material))

        bom_cache: Dict[UUID, list] = {}
        report: List[ReconciliationReportRow] = []
        for rec, issuance, entry, product in headers:
            output = produced_output(rec.produced_cases, product)
            suggestions: Dict[UUID, BomSuggestion] = {}
            if product is not None:
                if product.id not in bom_cache:
                    bom_cache[product.id] = bom_lines_from_rows(await self.products.list_bom_with_details(product.id))
                suggestions = expected_suggestions(rec.produced_cases, bom_cache[product.id])

            materials = []
            for item, material in items_by_rec.get(rec.id, []):
                suggestion = suggestions.get(item.raw_material_id)
                expected = suggestion.suggested_quantity if suggestion else 0.0
                issued = float(item.quantity_issued)
                pct = calculate_variance_percent(issued, expected)
                severity = classify_variance(
                    pct, self.settings.VARIANCE_GOOD_THRESHOLD, self.settings.VARIANCE_WARNING_THRESHOLD
                )
                materials.append(
                    MaterialReportLine(
                        raw_material_id=item.raw_material_id,
                        material_code=material.material_code if material is not None else None,
                        material_name=material.material_name if material is not None else None,
                        quantity_issued=issued,
                        quantity_used=float(item.quantity_used),
                        quantity_returned=float(item.quantity_returned or 0),
                        quantity_pending=float(item.quantity_pending or 0),
                        net_consumed=net_consumed(item.quantity_used, item.quantity_returned, item.quantity_pending),
                        expected_total=round(expected, 4),
                        variance=round(calculate_variance(issued, expected), 4),
                        variance_percent=_round(pct),
                        severity=severity.value if severity else None,
                    )
                )

            report.append(
                ReconciliationReportRow(
                    reconciliation_id=rec.id,
                    reconciliation_number=rec.reconciliation_number,
                    reconciliation_date=rec.reconciliation_date,
                    shift=rec.shift,
                    issuance_id=issuance.id,
                    issuance_number=issuance.issuance_number,
                    production_entry_id=rec.production_entry_id,
                    product_id=product.id if product is not None else None,
                    product_name=product.product_name if product is not None else None,
                    produced_cases=rec.produced_cases,
                    produced_bottles=output,
                    rejected_cases=rec.rejected_cases or 0,
                    yield_percent=_round(yield_percent(rec.produced_cases, rec.rejected_cases or 0)),
                    efficiency_percent=_round(efficiency_percent(rec.produced_cases, issuance.planned_output)),
                    materials=materials,
                )
            )
        return report

    # PUBLIC_INTERFACE
    async def variance_analytics(self, *, period: AnalyticsPeriod, year: int) -> VarianceAnalytics:
        """Variance, efficiency and yield trends of one calendar year."""
        rows = await self.report(date_from=date(year, 1, 1), date_to=date(year, 12, 31), limit=ANALYTICS_ROW_LIMIT)
        analytics = summarize_variance(
            rows,
            period=period,
            year=year,
            good_threshold=self.settings.VARIANCE_GOOD_THRESHOLD,
            warning_threshold=self.settings.VARIANCE_WARNING_THRESHOLD,
        )
        logger.info("Variance analytics for %s (%s): %d reconciliation(s)", year, period, len(rows))
        return analytics


# PUBLIC_INTERFACE
def report_to_dataframe(rows: Sequence[ReconciliationReportRow]) -> pd.DataFrame:
    """Flatten report rows to one line per material (header-only rows keep empty material columns)."""
    data = []
    for row in rows:
        header = {
            "reconciliation_number": row.reconciliation_number,
            "reconciliation_date": row.reconciliation_date,
            "shift": row.shift,
            "issuance_number": row.issuance_number,
            "product_name": row.product_name,
            "produced_cases": row.produced_cases,
            "produced_bottles": row.produced_bottles,
            "yield_percent": row.yield_percent,
            "efficiency_percent": row.efficiency_percent,
        }
        if not row.materials:
            data.append(header)
            continue
        for m in row.materials:
            data.append(
                {
                    **header,
                    "material_code": m.material_code,
                    "material_name": m.material_name,
                    "quantity_issued": m.quantity_issued,
                    "quantity_used": m.quantity_used,
                    "quantity_returned": m.quantity_returned,
                    "quantity_pending": m.quantity_pending,
                    "net_consumed": m.net_consumed,
                    "expected_total": m.expected_total,
                    "variance": m.variance,
                    "variance_percent": m.variance_percent,
                    "severity": m.severity,
                }
            )
    return pd.DataFrame(data, columns=REPORT_COLUMNS)


def _period_of(day: date, period: str) -> Tuple[int, str]:
    if period == "weekly":
        week = (day.timetuple().tm_yday - 1) // 7 + 1
        return week, f"Week {week}"
    if period == "monthly":
        return day.month, day.strftime("%b")
    if period == "quarterly":
        quarter = (day.month - 1) // 3 + 1
        return quarter, f"Q{quarter}"
    return 1, str(day.year)


def _mean(series: pd.Series) -> Optional[float]:
    value = series.mean()
    return None if pd.isna(value) else round(float(value), 2)


def _band_counts(severities: pd.Series) -> Dict[str, int]:
    counts = severities.value_counts()
    return {band: int(counts.get(band, 0)) for band in ("good", "warning", "critical")}


# PUBLIC_INTERFACE
def summarize_variance(
    rows: Sequence[ReconciliationReportRow],
    *,
    period: str,
    year: int,
    good_threshold: float,
    warning_threshold: float,
) -> VarianceAnalytics:
    """
    Aggregate report rows into per-period variance analytics.

    A reconciliation's variance is the mean |variance %| of its material lines
    that have one, and that mean is what gets banded good / warning /
    critical. Reconciliations without any such line count towards the totals
    but not towards a band or the variance average. Weeks are 7-day blocks
    from 1 January.
    """
    recs = []
    lines = []
    for row in rows:
        percents = [abs(m.variance_percent) for m in row.materials if m.variance_percent is not None]
        variance = sum(percents) / len(percents) if percents else None
        severity = classify_variance(variance, good_threshold, warning_threshold)
        index, label = _period_of(row.reconciliation_date, period)
        recs.append(
            {
                "period_index": index,
                "period": label,
                "variance": variance,
                "efficiency": row.efficiency_percent,
                "yield": row.yield_percent,
                "severity": severity.value if severity else None,
            }
        )
        for m in row.materials:
            lines.append(
                {
                    "raw_material_id": m.raw_material_id,
                    "material_name": m.material_name or m.material_code,
                    "variance_percent": abs(m.variance_percent) if m.variance_percent is not None else None,
                    "variance": m.variance,
                }
            )

    df = pd.DataFrame(recs, columns=["period_index", "period", "variance", "efficiency", "yield", "severity"])
    df[["variance", "efficiency", "yield"]] = df[["variance", "efficiency", "yield"]].astype(float)

    analytics = []
    for (index, label), group in df.groupby(["period_index", "period"], sort=True):
        bands = _band_counts(group["severity"])
        analytics.append(
            PeriodVarianceAnalytics(
                period=label,
                period_index=int(index),
                reconciliation_count=len(group),
                avg_variance=_mean(group["variance"]),
                avg_efficiency=_mean(group["efficiency"]),
                avg_yield=_mean(group["yield"]),
                good_count=bands["good"],
                warning_count=bands["warning"],
                critical_count=bands["critical"],
            )
        )

    bands = _band_counts(df["severity"])
    totals = VarianceAnalyticsTotals(
        total_reconciliations=len(df),
        avg_variance=_mean(df["variance"]),
        avg_efficiency=_mean(df["efficiency"]),
        avg_yield=_mean(df["yield"]),
        total_good=bands["good"],
        total_warning=bands["warning"],
        total_critical=bands["critical"],
    )

    top_materials = []
    if lines:
        mf = pd.DataFrame(lines)
        mf[["variance_percent", "variance"]] = mf[["variance_percent", "variance"]].astype(float)
        summary = (
            mf.groupby("raw_material_id", as_index=False, sort=False)
            .agg(
                material_name=("material_name", "first"),
                avg_variance=("variance_percent", "mean"),
                total_variance=("variance", "sum"),
                occurrences=("variance", "size"),
            )
            .sort_values("avg_variance", ascending=False, na_position="last", kind="stable")
            .head(TOP_MATERIALS)
        )
        for item in summary.itertuples(index=False):
            top_materials.append(
                MaterialVarianceSummary(
                    raw_material_id=item.raw_material_id,
                    material_name=item.material_name if isinstance(item.material_name, str) else None,
                    avg_variance=None if pd.isna(item.avg_variance) else round(float(item.avg_variance), 2),
                    total_variance=round(float(item.total_variance), 4),
                    occurrences=int(item.occurrences),
                )
            )

    return VarianceAnalytics(year=year, period=period, analytics=analytics, totals=totals, top_materials=top_materials)
