from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.settings import AppSettings, get_app_settings
from src.db.models.master_data import Product
from src.db.models.production import ProductionEntry
from src.repositories.master_data import ProductRepository
from src.repositories.production import IssuanceRepository, ProductionEntryRepository
from src.schemas.production import (
    BomComparison,
    BomComparisonLine,
    ProductionEntryCreate,
    ProductionEntryRead,
)
from src.services.base import BaseService
from src.services.calculations import (
    BomLine,
    BomSuggestion,
    ConversionMethod,
    calculate_bom_suggestions,
    calculate_derived_units,
    calculate_variance,
    calculate_variance_percent,
    classify_variance,
    format_quantity,
)
from src.services.errors import ConflictError, NotFoundError
from src.services.issuance import bom_lines_from_rows

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
def produced_output(produced_quantity: float, product: Optional[Product]) -> float:
    """
    Produced derived units (cases -> bottles) when the product defines
    usable_derived_units, else the produced quantity itself.
    """
    per_base = getattr(product, "usable_derived_units", None) if product is not None else None
    if per_base:
        return calculate_derived_units(produced_quantity, per_base)
    return float(produced_quantity or 0)


# PUBLIC_INTERFACE
def expected_suggestions(produced_quantity: float, lines: Iterable[BomLine]) -> Dict[UUID, BomSuggestion]:
    """
    BOM expectation for a produced quantity, keyed by raw material.

    The calculator runs on the produced quantity as entered. Lines without a
    conversion method have no expectation and are left out.
    """
    typed = [line for line in lines if line.type_details is not None]
    suggestions = calculate_bom_suggestions(float(produced_quantity or 0), typed)
    return {rm: s for rm, s in suggestions.items() if s.calculation_basis is not ConversionMethod.MANUAL}


def entry_to_read(entry: ProductionEntry) -> ProductionEntryRead:
    read = ProductionEntryRead.model_validate(entry)
    if entry.derived_units is not None:
        read.derived_units_display = format_quantity(float(entry.derived_units))
    return read


class ProductionService(BaseService):
    """
    Production entries recorded against issuances, and the comparison of what
    was issued with what the BOM expects for the produced output.
    """

    def __init__(self, session: AsyncSession, settings: Optional[AppSettings] = None) -> None:
        super().__init__(session)
        self.settings = settings or get_app_settings()
        self.products = ProductRepository(session)
        self.issuances = IssuanceRepository(session)
        self.entries = ProductionEntryRepository(session)

    # PUBLIC_INTERFACE
    async def create_entry(self, payload: ProductionEntryCreate, user_id: Optional[UUID] = None) -> ProductionEntryRead:
        """
        Record the output of a shift.

        Raises:
            NotFoundError: the issuance does not exist.
            ConflictError: an entry already exists for the issuance, date and shift.
        """
        issuance = await self.issuances.get(payload.issuance_id)
        if issuance is None:
            raise NotFoundError("Issuance not found", details={"issuance_id": str(payload.issuance_id)})

        existing = await self.entries.find_for_shift(payload.issuance_id, payload.production_date, payload.shift)
        if existing is not None:
            raise ConflictError(
                "A production entry already exists for this issuance, date and shift",
                details={"production_entry_id": str(existing.id)},
            )

        product = await self.products.get(issuance.product_id) if issuance.product_id else None
        derived = None
        if product is not None and product.usable_derived_units:
            derived = calculate_derived_units(payload.produced_quantity, float(product.usable_derived_units))

        async with self.conflict_on_duplicate(
            "A production entry already exists for this issuance, date and shift",
            details={"issuance_id": str(payload.issuance_id), "shift": payload.shift},
        ):
            entry = await self.entries.create(
                issuance_id=payload.issuance_id,
                production_date=payload.production_date,
                shift=payload.shift,
                produced_quantity=payload.produced_quantity,
                rejected_quantity=payload.rejected_quantity,
                empty_bottles_produced=payload.empty_bottles_produced,
                empty_bottles_used=payload.empty_bottles_used,
                empty_bottles_pending=payload.empty_bottles_pending,
                derived_units=derived,
                remarks=payload.remarks,
                created_by=user_id,
            )
            await self.session.commit()
        logger.info(
            "Recorded production for issuance %s on %s shift %s: %s produced",
            issuance.issuance_number,
            payload.production_date,
            payload.shift,
            payload.produced_quantity,
        )
        return entry_to_read(entry)

    # PUBLIC_INTERFACE
    async def get_entry(self, entry_id: UUID) -> ProductionEntryRead:
        entry = await self.entries.get(entry_id)
        if entry is None:
            raise NotFoundError("Production entry not found", details={"production_entry_id": str(entry_id)})
        return entry_to_read(entry)

    # PUBLIC_INTERFACE
    async def list_entries(
        self,
        *,
        issuance_id: Optional[UUID] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        shift: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[ProductionEntryRead]:
        rows = await self.entries.list_entries(
            issuance_id=issuance_id, date_from=date_from, date_to=date_to, shift=shift, limit=limit, offset=offset
        )
        return [entry_to_read(r) for r in rows]

    # PUBLIC_INTERFACE
    async def bom_comparison(self, entry_id: UUID) -> BomComparison:
        """
        Compare issued quantities with the BOM suggestion for the produced quantity.

        Materials without an expectation (untyped BOM lines, lines the
        calculator leaves out, materials outside the BOM) are expected at 0,
        so their variance percent is None and they carry no severity.
        """
        entry = await self.entries.get(entry_id)
        if entry is None:
            raise NotFoundError("Production entry not found", details={"production_entry_id": str(entry_id)})
        issuance = await self.issuances.get(entry.issuance_id)
        if issuance is None:
            raise NotFoundError("Issuance not found", details={"issuance_id": str(entry.issuance_id)})

        product = await self.products.get(issuance.product_id) if issuance.product_id else None
        output = produced_output(float(entry.produced_quantity), product)

        rows = await self.products.list_bom_with_details(product.id) if product is not None else []
        suggestions = expected_suggestions(float(entry.produced_quantity), bom_lines_from_rows(rows))
        materials = {m.id: m for _, m, _ in rows if m is not None}

        issued: Dict[UUID, float] = defaultdict(float)
        for item in await self.issuances.list_items(issuance.id):
            issued[item.raw_material_id] += float(item.quantity_issued)

        order: List[UUID] = []
        for bom, _, _ in rows:
            if bom.raw_material_id not in order:
                order.append(bom.raw_material_id)
        for rm_id in issued:
            if rm_id not in order:
                order.append(rm_id)

        lines = []
        for rm_id in order:
            suggestion = suggestions.get(rm_id)
            expected = suggestion.suggested_quantity if suggestion else 0.0
            issued_qty = issued.get(rm_id, 0.0)
            pct = calculate_variance_percent(issued_qty, expected)
            severity = classify_variance(
                pct, self.settings.VARIANCE_GOOD_THRESHOLD, self.settings.VARIANCE_WARNING_THRESHOLD
            )
            material = materials.get(rm_id)
            lines.append(
                BomComparisonLine(
                    raw_material_id=rm_id,
                    material_code=material.material_code if material is not None else None,
                    material_name=material.material_name if material is not None else None,
                    calculation_basis=suggestion.calculation_basis.value if suggestion else None,
                    expected_quantity=expected,
                    issued_quantity=issued_qty,
                    variance=calculate_variance(issued_qty, expected),
                    variance_percent=pct,
                    severity=severity.value if severity else None,
                )
            )

        return BomComparison(
            production_entry_id=entry.id,
            issuance_id=issuance.id,
            product_id=issuance.product_id,
            produced_quantity=float(entry.produced_quantity),
            produced_output=output,
            lines=lines,
        )
