from __future__ import annotations

import logging
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.master_data import ProductBom, RawMaterial, RawMaterialType
from src.db.models.production import RawMaterialIssuance, RawMaterialIssuanceItem
from src.repositories.inventory import StockRepository
from src.repositories.master_data import ProductRepository, RawMaterialRepository
from src.repositories.production import IssuanceRepository
from src.schemas.master_data import ProductBomLineRead, ProductRead, RawMaterialRead, RawMaterialTypeRead
from src.schemas.production import (
    BomLineDetail,
    BomSuggestionLineIn,
    BomSuggestionRead,
    BomSuggestionRequest,
    BomSuggestionResponse,
    IssuanceCreate,
    IssuanceItemRead,
    IssuanceRead,
    IssuanceSummary,
)
from src.services.base import BaseService
from src.services.calculations import (
    BomLine,
    BomSuggestion,
    ConversionMethod,
    TypeConversion,
    calculate_bom_suggestions,
)
from src.services.errors import BusinessRuleError, NotFoundError

logger = logging.getLogger(__name__)

BomRow = Tuple[ProductBom, Optional[RawMaterial], Optional[RawMaterialType]]


def _f(value) -> Optional[float]:
    return None if value is None else float(value)


# PUBLIC_INTERFACE
def type_conversion_from_row(row: Optional[RawMaterialType]) -> Optional[TypeConversion]:
    """Map a stored raw material type onto the calculator's TypeConversion."""
    if row is None:
        return None
    return TypeConversion(
        conversion_method=row.conversion_method,
        base_unit_weight=_f(row.base_unit_weight),
        weight_per_derived_unit=_f(row.weight_per_derived_unit),
        derived_value_per_base=_f(row.derived_value_per_base),
        output_units_covered=_f(row.output_units_covered),
        loss_percent=_f(row.loss_percent) or 0.0,
    )


# PUBLIC_INTERFACE
def bom_lines_from_rows(rows: Iterable[BomRow]) -> List[BomLine]:
    """Build calculator input from BOM rows joined with material and type."""
    lines = []
    for bom, material, material_type in rows:
        lines.append(
            BomLine(
                raw_material_id=bom.raw_material_id if material is not None else None,
                quantity_required=_f(bom.quantity_required),
                uom_id=bom.uom_id or (material.uom_id if material is not None else None),
                type_details=type_conversion_from_row(material_type),
            )
        )
    return lines


def _inline_line(line: BomSuggestionLineIn) -> BomLine:
    details = None
    if line.type_details is not None:
        details = TypeConversion(**line.type_details.model_dump())
    return BomLine(
        raw_material_id=line.raw_material_id,
        quantity_required=line.quantity_required,
        uom_id=line.uom_id,
        type_details=details,
    )


def suggestion_to_read(
    raw_material_id: UUID, suggestion: BomSuggestion, material: Optional[RawMaterial] = None
) -> BomSuggestionRead:
    return BomSuggestionRead(
        raw_material_id=raw_material_id,
        material_code=material.material_code if material is not None else None,
        material_name=material.material_name if material is not None else None,
        suggested_quantity=suggestion.suggested_quantity,
        rounded_quantity=suggestion.rounded_quantity,
        calculation_basis=suggestion.calculation_basis.value,
        calculation_details=suggestion.calculation_details,
        uom_id=suggestion.uom_id,
        conversion_value=suggestion.conversion_value,
        usable_units=suggestion.usable_units,
    )


def issuance_to_read(issuance: RawMaterialIssuance, items: List[RawMaterialIssuanceItem]) -> IssuanceRead:
    read = IssuanceRead.model_validate(issuance)
    read.items = [IssuanceItemRead.model_validate(i) for i in items]
    return read


class IssuanceService(BaseService):
    """
    Raw material issuance: BOM suggestions, auto-populated items and the
    matching stock deductions.
    """

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.products = ProductRepository(session)
        self.materials = RawMaterialRepository(session)
        self.issuances = IssuanceRepository(session)
        self.stock = StockRepository(session)

    async def _product_bom(self, product_id: UUID) -> List[BomRow]:
        product = await self.products.get(product_id)
        if product is None:
            raise NotFoundError("Product not found", details={"product_id": str(product_id)})
        return await self.products.list_bom_with_details(product_id)

    # PUBLIC_INTERFACE
    async def suggest_for_product(self, product_id: UUID, planned_output: float) -> Dict[UUID, BomSuggestion]:
        """BOM suggestions for a stored product and planned output."""
        rows = await self._product_bom(product_id)
        return calculate_bom_suggestions(planned_output, bom_lines_from_rows(rows))

    # PUBLIC_INTERFACE
    async def suggestions(self, payload: BomSuggestionRequest) -> BomSuggestionResponse:
        """
        Compute suggestions without persisting anything.

        Inline lines take precedence over the product's stored BOM.
        """
        materials: Dict[UUID, RawMaterial] = {}
        if payload.lines:
            result = calculate_bom_suggestions(payload.planned_output, [_inline_line(l) for l in payload.lines])
            for material in await self.materials.get_many(list(result.keys())):
                materials[material.id] = material
        else:
            rows = await self._product_bom(payload.product_id)
            materials = {m.id: m for _, m, _ in rows if m is not None}
            result = calculate_bom_suggestions(payload.planned_output, bom_lines_from_rows(rows))

        return BomSuggestionResponse(
            planned_output=payload.planned_output,
            product_id=payload.product_id,
            suggestions=[suggestion_to_read(rm_id, s, materials.get(rm_id)) for rm_id, s in result.items()],
        )

    # PUBLIC_INTERFACE
    async def create_issuance(self, payload: IssuanceCreate, user_id: Optional[UUID] = None) -> IssuanceRead:
        """
        Create an issuance, its items and one 'issue' stock transaction per item.

        Items are taken from the payload; when none are given and auto_populate
        is set they are created from the BOM suggestions (rounded quantities).

        Raises:
            NotFoundError: unknown product or raw material.
            BusinessRuleError: no items, or an item without quantity and suggestion.
        """
        suggestions: Dict[UUID, BomSuggestion] = {}
        if payload.product_id is not None:
            if payload.planned_output:
                suggestions = await self.suggest_for_product(payload.product_id, payload.planned_output)
            elif await self.products.get(payload.product_id) is None:
                raise NotFoundError("Product not found", details={"product_id": str(payload.product_id)})

        planned_items: List[dict] = []
        if payload.items:
            for item in payload.items:
                suggestion = suggestions.get(item.raw_material_id)
                quantity = item.quantity_issued
                if quantity is None:
                    if suggestion is None or suggestion.rounded_quantity <= 0:
                        raise BusinessRuleError(
                            "quantity_issued is required when no BOM suggestion is available",
                            details={"raw_material_id": str(item.raw_material_id)},
                        )
                    quantity = float(suggestion.rounded_quantity)
                planned_items.append(
                    {
                        "raw_material_id": item.raw_material_id,
                        "quantity_issued": quantity,
                        "uom_id": item.uom_id or (suggestion.uom_id if suggestion else None),
                        "remarks": item.remarks,
                        "suggestion": suggestion,
                    }
                )
        elif payload.auto_populate:
            for rm_id, suggestion in suggestions.items():
                if suggestion.rounded_quantity <= 0:
                    continue
                planned_items.append(
                    {
                        "raw_material_id": rm_id,
                        "quantity_issued": float(suggestion.rounded_quantity),
                        "uom_id": suggestion.uom_id,
                        "remarks": None,
                        "suggestion": suggestion,
                    }
                )

        if not planned_items:
            raise BusinessRuleError("An issuance needs at least one item")

        wanted = {item["raw_material_id"] for item in planned_items}
        found = {m.id for m in await self.materials.get_many(list(wanted))}
        missing = wanted - found
        if missing:
            raise NotFoundError("Raw material not found", details={"raw_material_ids": sorted(str(m) for m in missing)})

        number = await self.issuances.next_issuance_number(payload.issuance_date)
        issuance = await self.issuances.create(
            issuance_number=number,
            issuance_date=payload.issuance_date,
            issued_to=payload.issued_to,
            product_id=payload.product_id,
            production_reference=payload.production_reference,
            planned_output=payload.planned_output,
            remarks=payload.remarks,
            issued_by=user_id,
        )

        rows = []
        for item in planned_items:
            suggestion: Optional[BomSuggestion] = item.pop("suggestion")
            item["product_id"] = payload.product_id
            item["suggested_quantity"] = suggestion.suggested_quantity if suggestion else None
            item["calculation_basis"] = (
                suggestion.calculation_basis.value if suggestion else ConversionMethod.MANUAL.value
            )
            rows.append(item)
        items = await self.issuances.add_items(issuance.id, rows)

        for item in items:
            await self.stock.adjust_stock(
                item.raw_material_id,
                -float(item.quantity_issued),
                transaction_type="issue",
                reference=number,
                performed_by=user_id,
            )

        await self.session.commit()
        logger.info("Created issuance %s with %d item(s)", number, len(items))
        return issuance_to_read(issuance, items)

    # PUBLIC_INTERFACE
    async def get_issuance(self, issuance_id: UUID) -> IssuanceRead:
        issuance = await self.issuances.get(issuance_id)
        if issuance is None:
            raise NotFoundError("Issuance not found", details={"issuance_id": str(issuance_id)})
        return issuance_to_read(issuance, await self.issuances.list_items(issuance_id))

    # PUBLIC_INTERFACE
    async def list_issuances(
        self,
        *,
        product_id: Optional[UUID] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[IssuanceRead]:
        rows = await self.issuances.list_issuances(
            product_id=product_id, date_from=date_from, date_to=date_to, limit=limit, offset=offset
        )
        return [issuance_to_read(r, await self.issuances.list_items(r.id)) for r in rows]

    # PUBLIC_INTERFACE
    async def get_summary(self, issuance_id: UUID) -> IssuanceSummary:
        """Issuance with items, its product and the product's BOM with material/type details."""
        issuance = await self.get_issuance(issuance_id)
        product_read = None
        bom: List[BomLineDetail] = []
        if issuance.product_id is not None:
            product = await self.products.get(issuance.product_id)
            if product is not None:
                product_read = ProductRead.model_validate(product)
                for line, material, material_type in await self.products.list_bom_with_details(product.id):
                    bom.append(
                        BomLineDetail(
                            line=ProductBomLineRead.model_validate(line),
                            raw_material=RawMaterialRead.model_validate(material) if material is not None else None,
                            raw_material_type=(
                                RawMaterialTypeRead.model_validate(material_type) if material_type is not None else None
                            ),
                        )
                    )
        return IssuanceSummary(issuance=issuance, product=product_read, bom=bom)
