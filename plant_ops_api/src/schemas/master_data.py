from __future__ import annotations

from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, RootModel


class UomRead(BaseModel):
    """Unit of measure read model."""
    id: UUID = Field(..., description="UOM ID")
    code: str = Field(..., description="UOM code, e.g. KG")
    name: str = Field(..., description="UOM name")
    description: Optional[str] = Field(None)
    is_active: bool = Field(...)
    created_at: datetime = Field(..., description="Created timestamp")
    updated_at: datetime = Field(..., description="Updated timestamp")

    class Config:
        from_attributes = True


class UomCreate(BaseModel):
    """Create UOM payload."""
    code: str = Field(..., min_length=1, description="Unique code")
    name: str = Field(..., min_length=1)
    description: Optional[str] = Field(None)
    is_active: bool = Field(True)


class UomUpdate(BaseModel):
    code: Optional[str] = Field(None, min_length=1)
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = Field(None)
    is_active: Optional[bool] = Field(None)


# Raw material types. Create payloads are discriminated on conversion_method so
# each method only accepts (and requires) its own fields.

class _RawMaterialTypeBase(BaseModel):
    type_code: Optional[str] = Field(None, description="Unique code; generated as RMT-### when omitted")
    type_name: str = Field(..., min_length=1, description="Type name, e.g. Preform")
    base_unit: Optional[str] = Field(None, description="Base unit (Bag, Box, Roll)")
    loss_percent: float = Field(0, ge=0, le=100, description="Process loss in percent")
    description: Optional[str] = Field(None)
    is_active: bool = Field(True)


class FormulaBasedTypeCreate(_RawMaterialTypeBase):
    """Weight based conversion: base unit weight (kg) over weight per derived unit (g)."""
    conversion_method: Literal["formula-based"] = "formula-based"
    base_unit_weight: float = Field(..., gt=0, description="Weight of one base unit in kg")
    derived_unit: Optional[str] = Field(None, description="Derived unit, e.g. Piece")
    weight_per_derived_unit: float = Field(..., gt=0, description="Weight of one derived unit in g")


class DirectValueTypeCreate(_RawMaterialTypeBase):
    """Fixed count of derived units per base unit."""
    conversion_method: Literal["direct-value"] = "direct-value"
    derived_unit: Optional[str] = Field(None)
    derived_value_per_base: float = Field(..., gt=0, description="Derived units per base unit")


class OutputCoverageTypeCreate(_RawMaterialTypeBase):
    """Number of finished outputs one base unit covers."""
    conversion_method: Literal["output-coverage"] = "output-coverage"
    output_type: Optional[str] = Field(None, description="Output covered, e.g. Bottle")
    output_units_covered: float = Field(..., gt=0, description="Outputs covered per base unit")


RawMaterialTypeCreate = Annotated[
    Union[FormulaBasedTypeCreate, DirectValueTypeCreate, OutputCoverageTypeCreate],
    Field(discriminator="conversion_method"),
]


class RawMaterialTypeCreateRequest(RootModel[RawMaterialTypeCreate]):
    """Request body wrapper for the discriminated create payload."""


class RawMaterialTypeUpdate(BaseModel):
    """Partial update; conversion fields are re-validated against the resulting method."""
    type_name: Optional[str] = Field(None, min_length=1)
    conversion_method: Optional[Literal["formula-based", "direct-value", "output-coverage"]] = Field(None)
    base_unit: Optional[str] = Field(None)
    base_unit_weight: Optional[float] = Field(None, gt=0)
    derived_unit: Optional[str] = Field(None)
    weight_per_derived_unit: Optional[float] = Field(None, gt=0)
    derived_value_per_base: Optional[float] = Field(None, gt=0)
    output_type: Optional[str] = Field(None)
    output_units_covered: Optional[float] = Field(None, gt=0)
    loss_percent: Optional[float] = Field(None, ge=0, le=100)
    description: Optional[str] = Field(None)
    is_active: Optional[bool] = Field(None)


class RawMaterialTypeRead(BaseModel):
    """Raw material type read model including computed conversion."""
    id: UUID = Field(...)
    type_code: str = Field(...)
    type_name: str = Field(...)
    conversion_method: Optional[str] = Field(None)
    base_unit: Optional[str] = Field(None)
    base_unit_weight: Optional[float] = Field(None)
    derived_unit: Optional[str] = Field(None)
    weight_per_derived_unit: Optional[float] = Field(None)
    derived_value_per_base: Optional[float] = Field(None)
    output_type: Optional[str] = Field(None)
    output_units_covered: Optional[float] = Field(None)
    conversion_value: Optional[float] = Field(None, description="Derived units per base unit (computed)")
    loss_percent: float = Field(0)
    usable_units: Optional[int] = Field(None, description="Usable derived units per base after loss (computed)")
    description: Optional[str] = Field(None)
    is_active: bool = Field(...)
    created_at: datetime = Field(...)
    updated_at: datetime = Field(...)

    class Config:
        from_attributes = True


class RawMaterialRead(BaseModel):
    """Raw material read model."""
    id: UUID = Field(...)
    material_code: str = Field(...)
    material_name: str = Field(...)
    description: Optional[str] = Field(None)
    type_id: Optional[UUID] = Field(None)
    uom_id: Optional[UUID] = Field(None)
    current_stock: float = Field(0, description="Stock on hand in base units")
    reorder_level: Optional[float] = Field(None)
    unit_cost: Optional[float] = Field(None)
    is_active: bool = Field(...)
    created_at: datetime = Field(...)
    updated_at: datetime = Field(...)

    class Config:
        from_attributes = True


class RawMaterialCreate(BaseModel):
    material_code: Optional[str] = Field(None, description="Unique code; generated as RM-### when omitted")
    material_name: str = Field(..., min_length=1)
    description: Optional[str] = Field(None)
    type_id: Optional[UUID] = Field(None)
    uom_id: Optional[UUID] = Field(None)
    opening_stock: float = Field(0, ge=0, description="Initial stock, recorded as a receipt transaction")
    reorder_level: Optional[float] = Field(None, ge=0)
    unit_cost: Optional[float] = Field(None, ge=0)
    is_active: bool = Field(True)


class RawMaterialUpdate(BaseModel):
    material_name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = Field(None)
    type_id: Optional[UUID] = Field(None)
    uom_id: Optional[UUID] = Field(None)
    reorder_level: Optional[float] = Field(None, ge=0)
    unit_cost: Optional[float] = Field(None, ge=0)
    is_active: Optional[bool] = Field(None)


class ProductRead(BaseModel):
    """Product read model."""
    id: UUID = Field(...)
    product_code: str = Field(...)
    product_name: str = Field(...)
    sku_code: Optional[str] = Field(None)
    description: Optional[str] = Field(None)
    base_unit: Optional[str] = Field(None)
    derived_unit: Optional[str] = Field(None)
    conversion_method: Optional[str] = Field(None)
    derived_value_per_base: Optional[float] = Field(None)
    weight_per_base: Optional[float] = Field(None)
    weight_per_derived: Optional[float] = Field(None)
    default_loss_percent: float = Field(0)
    usable_derived_units: Optional[float] = Field(None, description="Derived units per base unit, e.g. bottles per case")
    uom_id: Optional[UUID] = Field(None)
    is_active: bool = Field(...)
    created_at: datetime = Field(...)
    updated_at: datetime = Field(...)

    class Config:
        from_attributes = True


class ProductCreate(BaseModel):
    product_code: str = Field(..., min_length=1, description="Unique product code")
    product_name: str = Field(..., min_length=1)
    sku_code: Optional[str] = Field(None)
    description: Optional[str] = Field(None)
    base_unit: Optional[str] = Field(None)
    derived_unit: Optional[str] = Field(None)
    conversion_method: Optional[str] = Field(None)
    derived_value_per_base: Optional[float] = Field(None, gt=0)
    weight_per_base: Optional[float] = Field(None, gt=0)
    weight_per_derived: Optional[float] = Field(None, gt=0)
    default_loss_percent: float = Field(0, ge=0, le=100)
    usable_derived_units: Optional[float] = Field(None, gt=0)
    uom_id: Optional[UUID] = Field(None)
    is_active: bool = Field(True)


class ProductUpdate(BaseModel):
    product_name: Optional[str] = Field(None, min_length=1)
    sku_code: Optional[str] = Field(None)
    description: Optional[str] = Field(None)
    base_unit: Optional[str] = Field(None)
    derived_unit: Optional[str] = Field(None)
    conversion_method: Optional[str] = Field(None)
    derived_value_per_base: Optional[float] = Field(None, gt=0)
    weight_per_base: Optional[float] = Field(None, gt=0)
    weight_per_derived: Optional[float] = Field(None, gt=0)
    default_loss_percent: Optional[float] = Field(None, ge=0, le=100)
    usable_derived_units: Optional[float] = Field(None, gt=0)
    uom_id: Optional[UUID] = Field(None)
    is_active: Optional[bool] = Field(None)


class ProductBomLineIn(BaseModel):
    """BOM line payload: quantity of a raw material per unit of product."""
    raw_material_id: UUID = Field(...)
    quantity_required: float = Field(1, ge=0, description="Quantity per unit of product")
    uom_id: Optional[UUID] = Field(None)
    notes: Optional[str] = Field(None)


class ProductBomLineRead(BaseModel):
    id: UUID = Field(...)
    product_id: UUID = Field(...)
    raw_material_id: UUID = Field(...)
    quantity_required: float = Field(...)
    uom_id: Optional[UUID] = Field(None)
    notes: Optional[str] = Field(None)

    class Config:
        from_attributes = True


class ProductBomReplace(BaseModel):
    """Replace the whole BOM of a product."""
    lines: List[ProductBomLineIn] = Field(default_factory=list)
