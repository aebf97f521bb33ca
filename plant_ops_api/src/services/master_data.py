from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.inventory import RawMaterialTransaction
from src.db.models.master_data import Product, RawMaterial, RawMaterialType, Uom
from src.repositories.inventory import StockRepository
from src.repositories.master_data import (
    ProductRepository,
    RawMaterialRepository,
    RawMaterialTypeRepository,
    UomRepository,
)
from src.schemas.master_data import (
    ProductBomReplace,
    ProductCreate,
    ProductUpdate,
    RawMaterialCreate,
    RawMaterialTypeCreate,
    RawMaterialTypeUpdate,
    RawMaterialUpdate,
    UomCreate,
    UomUpdate,
)
from src.schemas.inventory import StockAdjustmentCreate
from src.services.base import BaseService
from src.services.calculations import (
    ConversionMethod,
    TypeConversion,
    conversion_value,
    normalize_conversion_method,
    usable_units,
)
from src.services.errors import BusinessRuleError, ConflictError, NotFoundError

logger = logging.getLogger(__name__)

# Fields that only apply to one conversion method; cleared when the method changes.
METHOD_FIELDS = {
    ConversionMethod.FORMULA_BASED: ("base_unit_weight", "weight_per_derived_unit"),
    ConversionMethod.DIRECT_VALUE: ("derived_value_per_base",),
    ConversionMethod.OUTPUT_COVERAGE: ("output_units_covered",),
}


# PUBLIC_INTERFACE
def computed_conversion(values: Dict[str, Any]) -> Dict[str, Any]:
    """
    Compute conversion_value and usable_units for raw material type values.

    Raises:
        BusinessRuleError: the method is unknown or its fields are missing.
    """
    method = normalize_conversion_method(values.get("conversion_method"))
    if method is ConversionMethod.MANUAL:
        raise BusinessRuleError(
            "conversion_method must be formula-based, direct-value or output-coverage",
            details={"conversion_method": values.get("conversion_method")},
        )
    details = TypeConversion(
        conversion_method=method.value,
        base_unit_weight=values.get("base_unit_weight"),
        weight_per_derived_unit=values.get("weight_per_derived_unit"),
        derived_value_per_base=values.get("derived_value_per_base"),
        output_units_covered=values.get("output_units_covered"),
        loss_percent=values.get("loss_percent") or 0,
    )
    value = conversion_value(details)
    if value is None:
        raise BusinessRuleError(
            f"Missing conversion fields for {method.value}",
            details={"required": list(METHOD_FIELDS[method])},
        )
    return {
        "conversion_method": method.value,
        "conversion_value": round(value, 4),
        "usable_units": usable_units(value, details.loss_percent),
    }


class MasterDataService(BaseService):
    """Units of measure, raw material types, raw materials and products with BOMs."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.uoms = UomRepository(session)
        self.types = RawMaterialTypeRepository(session)
        self.materials = RawMaterialRepository(session)
        self.products = ProductRepository(session)
        self.stock = StockRepository(session)

    # UOM

    async def create_uom(self, payload: UomCreate) -> Uom:
        code = payload.code.strip().upper()
        if await self.uoms.exists(Uom.code == code):
            raise ConflictError("UOM code already exists", details={"code": code})
        async with self.conflict_on_duplicate("UOM code already exists", details={"code": code}):
            row = await self.uoms.create(**{**payload.model_dump(), "code": code})
            await self.session.commit()
        return row

    async def get_uom(self, uom_id: UUID) -> Uom:
        row = await self.uoms.get(uom_id)
        if row is None:
            raise NotFoundError("UOM not found", details={"uom_id": str(uom_id)})
        return row

    async def update_uom(self, uom_id: UUID, payload: UomUpdate) -> Uom:
        values = payload.model_dump(exclude_unset=True)
        if values.get("code"):
            values["code"] = values["code"].strip().upper()
            if await self.uoms.exists(Uom.code == values["code"], exclude_id=uom_id):
                raise ConflictError("UOM code already exists", details={"code": values["code"]})
        async with self.conflict_on_duplicate("UOM code already exists", details={"code": values.get("code")}):
            row = await self.uoms.update(uom_id, **values)
            if row is None:
                raise NotFoundError("UOM not found", details={"uom_id": str(uom_id)})
            await self.session.commit()
        return row

    async def delete_uom(self, uom_id: UUID) -> None:
        if not await self.uoms.soft_delete(uom_id):
            raise NotFoundError("UOM not found", details={"uom_id": str(uom_id)})
        await self.session.commit()

    # Raw material types

    # PUBLIC_INTERFACE
    async def create_type(self, payload: RawMaterialTypeCreate) -> RawMaterialType:
        """Create a type; conversion_value and usable_units are computed and stored."""
        values = payload.model_dump()
        code = values.pop("type_code", None) or await self.types.next_type_code()
        if await self.types.exists(RawMaterialType.type_code == code):
            raise ConflictError("Raw material type code already exists", details={"type_code": code})
        values.update(computed_conversion(values))
        async with self.conflict_on_duplicate("Raw material type code already exists", details={"type_code": code}):
            row = await self.types.create(type_code=code, **values)
            await self.session.commit()
        logger.info(
            "Created raw material type %s (%s, %s usable units per base)",
            code,
            row.conversion_method,
            row.usable_units,
        )
        return row

    async def get_type(self, type_id: UUID) -> RawMaterialType:
        row = await self.types.get(type_id)
        if row is None:
            raise NotFoundError("Raw material type not found", details={"type_id": str(type_id)})
        return row

    # PUBLIC_INTERFACE
    async def update_type(self, type_id: UUID, payload: RawMaterialTypeUpdate) -> RawMaterialType:
        """
        Apply a partial update and recompute the conversion against the
        resulting method. Switching method clears the previous method's fields.
        """
        row = await self.get_type(type_id)
        changes = payload.model_dump(exclude_unset=True)
        merged = {
            "conversion_method": row.conversion_method,
            "loss_percent": row.loss_percent,
        }
        for fields in METHOD_FIELDS.values():
            for field in fields:
                merged[field] = getattr(row, field)

        new_method = changes.get("conversion_method")
        if new_method and normalize_conversion_method(new_method) != normalize_conversion_method(row.conversion_method):
            keep = METHOD_FIELDS.get(normalize_conversion_method(new_method), ())
            for fields in METHOD_FIELDS.values():
                for field in fields:
                    if field not in keep:
                        merged[field] = None
                        changes.setdefault(field, None)
        merged.update({k: v for k, v in changes.items() if k in merged})
        computed = computed_conversion(merged)

        for key, value in {**changes, **computed}.items():
            setattr(row, key, value)
        await self.types.flush()
        await self.session.commit()
        return row

    async def delete_type(self, type_id: UUID) -> None:
        if not await self.types.soft_delete(type_id):
            raise NotFoundError("Raw material type not found", details={"type_id": str(type_id)})
        await self.session.commit()

    # Raw materials

    async def _check_refs(self, type_id: Optional[UUID], uom_id: Optional[UUID]) -> None:
        if type_id is not None and await self.types.get(type_id) is None:
            raise NotFoundError("Raw material type not found", details={"type_id": str(type_id)})
        if uom_id is not None and await self.uoms.get(uom_id) is None:
            raise NotFoundError("UOM not found", details={"uom_id": str(uom_id)})

    # PUBLIC_INTERFACE
    async def create_material(self, payload: RawMaterialCreate, user_id: Optional[UUID] = None) -> RawMaterial:
        """Create a raw material; opening stock is booked as a receipt transaction."""
        values = payload.model_dump()
        opening = values.pop("opening_stock", 0) or 0
        code = values.pop("material_code", None) or await self.materials.next_material_code()
        if await self.materials.exists(RawMaterial.material_code == code):
            raise ConflictError("Raw material code already exists", details={"material_code": code})
        await self._check_refs(values.get("type_id"), values.get("uom_id"))

        async with self.conflict_on_duplicate("Raw material code already exists", details={"material_code": code}):
            row = await self.materials.create(material_code=code, current_stock=0, **values)
            if opening:
                await self.stock.adjust_stock(
                    row.id,
                    opening,
                    transaction_type="receipt",
                    reference=code,
                    remarks="Opening stock",
                    performed_by=user_id,
                )
            await self.session.commit()
        logger.info("Created raw material %s", code)
        return row

    async def get_material(self, material_id: UUID) -> RawMaterial:
        row = await self.materials.get(material_id)
        if row is None:
            raise NotFoundError("Raw material not found", details={"raw_material_id": str(material_id)})
        return row

    async def update_material(self, material_id: UUID, payload: RawMaterialUpdate) -> RawMaterial:
        values = payload.model_dump(exclude_unset=True)
        await self._check_refs(values.get("type_id"), values.get("uom_id"))
        row = await self.materials.update(material_id, **values)
        if row is None:
            raise NotFoundError("Raw material not found", details={"raw_material_id": str(material_id)})
        await self.session.commit()
        return row

    # PUBLIC_INTERFACE
    async def adjust_stock(
        self, material_id: UUID, payload: StockAdjustmentCreate, user_id: Optional[UUID] = None
    ) -> RawMaterialTransaction:
        """Book a manual receipt or adjustment against a raw material."""
        material = await self.get_material(material_id)
        if payload.quantity == 0:
            raise BusinessRuleError("quantity must not be 0")
        if payload.transaction_type == "receipt" and payload.quantity < 0:
            raise BusinessRuleError("A receipt quantity must be positive")
        txn = await self.stock.adjust_stock(
            material.id,
            payload.quantity,
            transaction_type=payload.transaction_type,
            reference=payload.reference,
            remarks=payload.remarks,
            performed_by=user_id,
        )
        await self.session.commit()
        logger.info("Stock %s of %s for %s", payload.transaction_type, payload.quantity, material.material_code)
        return txn

    async def delete_material(self, material_id: UUID) -> None:
        if not await self.materials.soft_delete(material_id):
            raise NotFoundError("Raw material not found", details={"raw_material_id": str(material_id)})
        await self.session.commit()

    # Products

    async def create_product(self, payload: ProductCreate) -> Product:
        if await self.products.exists(Product.product_code == payload.product_code):
            raise ConflictError("Product code already exists", details={"product_code": payload.product_code})
        async with self.conflict_on_duplicate("Product code already exists", details={"product_code": payload.product_code}):
            row = await self.products.create(**payload.model_dump())
            await self.session.commit()
        logger.info("Created product %s", row.product_code)
        return row

    async def get_product(self, product_id: UUID) -> Product:
        row = await self.products.get(product_id)
        if row is None:
            raise NotFoundError("Product not found", details={"product_id": str(product_id)})
        return row

    async def update_product(self, product_id: UUID, payload: ProductUpdate) -> Product:
        row = await self.products.update(product_id, **payload.model_dump(exclude_unset=True))
        if row is None:
            raise NotFoundError("Product not found", details={"product_id": str(product_id)})
        await self.session.commit()
        return row

    async def delete_product(self, product_id: UUID) -> None:
        if not await self.products.soft_delete(product_id):
            raise NotFoundError("Product not found", details={"product_id": str(product_id)})
        await self.session.commit()

    # PUBLIC_INTERFACE
    async def replace_bom(self, product_id: UUID, payload: ProductBomReplace) -> List:
        """
        Replace a product's BOM. Each raw material may appear once.

        Raises:
            NotFoundError: unknown product or raw material.
            BusinessRuleError: duplicate raw material lines.
        """
        await self.get_product(product_id)
        ids = [line.raw_material_id for line in payload.lines]
        if len(ids) != len(set(ids)):
            raise BusinessRuleError("A raw material may appear only once in a BOM")
        found = {m.id for m in await self.materials.get_many(ids)}
        missing = set(ids) - found
        if missing:
            raise NotFoundError("Raw material not found", details={"raw_material_ids": sorted(str(m) for m in missing)})
        rows = await self.products.replace_bom(product_id, [line.model_dump() for line in payload.lines])
        await self.session.commit()
        logger.info("Replaced BOM of product %s with %d line(s)", product_id, len(rows))
        return rows
