from __future__ import annotations

from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, or_, update

from src.db.base import RECORD_ACTIVE, RECORD_DELETED
from src.db.models.master_data import Uom, RawMaterialType, RawMaterial, Product, ProductBom
from .base import SoftDeleteRepository


class UomRepository(SoftDeleteRepository[Uom]):
    """Repository for units of measure."""

    model = Uom

    async def list_uoms(self, *, search: Optional[str], limit: int, offset: int) -> List[Uom]:
        filters = []
        if search:
            like = f"%{search}%"
            filters.append(or_(Uom.code.ilike(like), Uom.name.ilike(like)))
        return await self.list(*filters, order_by=Uom.code, limit=limit, offset=offset)


class RawMaterialTypeRepository(SoftDeleteRepository[RawMaterialType]):
    """Repository for raw material types."""

    model = RawMaterialType

    async def list_types(
        self, *, search: Optional[str], conversion_method: Optional[str], limit: int, offset: int
    ) -> List[RawMaterialType]:
        filters = []
        if search:
            like = f"%{search}%"
            filters.append(or_(RawMaterialType.type_code.ilike(like), RawMaterialType.type_name.ilike(like)))
        if conversion_method:
            filters.append(RawMaterialType.conversion_method == conversion_method)
        return await self.list(*filters, order_by=RawMaterialType.type_code, limit=limit, offset=offset)

    async def next_type_code(self) -> str:
        return await self.next_document_number(RawMaterialType.type_code, "RMT-")


class RawMaterialRepository(SoftDeleteRepository[RawMaterial]):
    """Repository for raw materials and their running stock."""

    model = RawMaterial

    async def list_materials(
        self, *, search: Optional[str], type_id: Optional[UUID], limit: int, offset: int
    ) -> List[RawMaterial]:
        filters = []
        if search:
            like = f"%{search}%"
            filters.append(or_(RawMaterial.material_code.ilike(like), RawMaterial.material_name.ilike(like)))
        if type_id:
            filters.append(RawMaterial.type_id == type_id)
        return await self.list(*filters, order_by=RawMaterial.material_code, limit=limit, offset=offset)

    async def next_material_code(self) -> str:
        return await self.next_document_number(RawMaterial.material_code, "RM-")

    async def get_many(self, material_ids: List[UUID]) -> List[RawMaterial]:
        if not material_ids:
            return []
        stmt = self._live().where(RawMaterial.id.in_(material_ids))
        res = await self.scalars(stmt)
        return list(res)

    async def get_for_update(self, material_id: UUID) -> Optional[RawMaterial]:
        """Load a live raw material row locked for a stock change."""
        stmt = self._live().where(RawMaterial.id == material_id).with_for_update()
        return await self.scalar_one_or_none(stmt)


class ProductRepository(SoftDeleteRepository[Product]):
    """Repository for products and their BOM lines."""

    model = Product

    async def list_products(self, *, search: Optional[str], limit: int, offset: int) -> List[Product]:
        filters = []
        if search:
            like = f"%{search}%"
            filters.append(
                or_(Product.product_code.ilike(like), Product.product_name.ilike(like), Product.sku_code.ilike(like))
            )
        return await self.list(*filters, order_by=Product.product_code, limit=limit, offset=offset)

    async def list_bom(self, product_id: UUID) -> List[ProductBom]:
        stmt = (
            select(ProductBom)
            .where(ProductBom.product_id == product_id, ProductBom.record_status == RECORD_ACTIVE)
            .order_by(ProductBom.created_at)
        )
        res = await self.scalars(stmt)
        return list(res)

    async def list_bom_with_details(
        self, product_id: UUID
    ) -> List[Tuple[ProductBom, Optional[RawMaterial], Optional[RawMaterialType]]]:
        """
        BOM lines joined with their raw material and its type, used to feed the
        suggestion calculator.
        """
        stmt = (
            select(ProductBom, RawMaterial, RawMaterialType)
            .outerjoin(
                RawMaterial,
                (RawMaterial.id == ProductBom.raw_material_id) & (RawMaterial.record_status == RECORD_ACTIVE),
            )
            .outerjoin(
                RawMaterialType,
                (RawMaterialType.id == RawMaterial.type_id) & (RawMaterialType.record_status == RECORD_ACTIVE),
            )
            .where(ProductBom.product_id == product_id, ProductBom.record_status == RECORD_ACTIVE)
            .order_by(ProductBom.created_at)
        )
        res = await self.execute(stmt)
        return [tuple(row) for row in res.all()]

    async def replace_bom(self, product_id: UUID, lines: List[dict]) -> List[ProductBom]:
        """Soft-delete the current BOM of a product and insert the given lines."""
        await self.execute(
            update(ProductBom)
            .where(ProductBom.product_id == product_id, ProductBom.record_status == RECORD_ACTIVE)
            .values(record_status=RECORD_DELETED)
            .execution_options(synchronize_session="fetch")
        )
        rows = [ProductBom(product_id=product_id, **line) for line in lines]
        await self.add_all(rows)
        await self.flush()
        return rows
