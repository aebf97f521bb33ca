from __future__ import annotations

from datetime import date, datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from src.schemas.master_data import ProductBomLineRead, ProductRead, RawMaterialRead, RawMaterialTypeRead

Shift = Literal["A", "B", "General"]


# BOM suggestions

class TypeConversionIn(BaseModel):
    """Inline raw material type conversion settings."""
    conversion_method: Optional[str] = Field(None, description="formula-based | direct-value | output-coverage | manual")
    base_unit_weight: Optional[float] = Field(None, description="kg per base unit")
    weight_per_derived_unit: Optional[float] = Field(None, description="g per derived unit")
    derived_value_per_base: Optional[float] = Field(None)
    output_units_covered: Optional[float] = Field(None)
    loss_percent: Optional[float] = Field(0, description="Process loss in percent")


class BomSuggestionLineIn(BaseModel):
    """Inline BOM line for ad-hoc suggestion requests."""
    raw_material_id: UUID = Field(...)
    quantity_required: Optional[float] = Field(1, description="Quantity per unit of product")
    uom_id: Optional[UUID] = Field(None)
    type_details: Optional[TypeConversionIn] = Field(None, description="Conversion settings; omitted means manual")


class BomSuggestionRequest(BaseModel):
    """Compute suggestions for a product's BOM or for inline lines."""
    planned_output: float = Field(..., gt=0, description="Planned finished units")
    product_id: Optional[UUID] = Field(None, description="Use this product's stored BOM")
    lines: Optional[List[BomSuggestionLineIn]] = Field(None, description="Inline BOM lines")

    @model_validator(mode="after")
    def _product_or_lines(self) -> "BomSuggestionRequest":
        if self.product_id is None and not self.lines:
            raise ValueError("Either product_id or lines must be provided")
        return self


class BomSuggestionRead(BaseModel):
    """Suggested issue quantity for one raw material."""
    raw_material_id: UUID = Field(...)
    material_code: Optional[str] = Field(None)
    material_name: Optional[str] = Field(None)
    suggested_quantity: float = Field(..., description="Unrounded base units required")
    rounded_quantity: int = Field(..., description="Whole base units to issue")
    calculation_basis: str = Field(..., description="Conversion method used, or 'manual'")
    calculation_details: str = Field(..., description="Human-readable explanation")
    uom_id: Optional[UUID] = Field(None)
    conversion_value: Optional[float] = Field(None)
    usable_units: Optional[int] = Field(None)


class BomSuggestionResponse(BaseModel):
    planned_output: float = Field(...)
    product_id: Optional[UUID] = Field(None)
    suggestions: List[BomSuggestionRead] = Field(default_factory=list)


# Issuance

class IssuanceItemCreate(BaseModel):
    raw_material_id: UUID = Field(...)
    quantity_issued: Optional[float] = Field(None, gt=0, description="Defaults to the rounded suggestion")
    uom_id: Optional[UUID] = Field(None)
    remarks: Optional[str] = Field(None)


class IssuanceCreate(BaseModel):
    """Create issuance payload."""
    issuance_date: date = Field(default_factory=date.today)
    issued_to: Optional[str] = Field(None, description="Line / person receiving the material")
    product_id: Optional[UUID] = Field(None)
    production_reference: Optional[str] = Field(None, description="Batch or shift reference")
    planned_output: Optional[float] = Field(None, gt=0, description="Planned finished units")
    remarks: Optional[str] = Field(None)
    auto_populate: bool = Field(True, description="Create items from BOM suggestions when none are given")
    items: List[IssuanceItemCreate] = Field(default_factory=list)


class IssuanceItemRead(BaseModel):
    id: UUID = Field(...)
    issuance_id: UUID = Field(...)
    raw_material_id: UUID = Field(...)
    product_id: Optional[UUID] = Field(None)
    quantity_issued: float = Field(...)
    suggested_quantity: Optional[float] = Field(None)
    calculation_basis: Optional[str] = Field(None)
    uom_id: Optional[UUID] = Field(None)
    remarks: Optional[str] = Field(None)

    class Config:
        from_attributes = True


class IssuanceRead(BaseModel):
    """Issuance read model with items."""
    id: UUID = Field(...)
    issuance_number: str = Field(..., description="ISS-YYYYMMDD-###")
    issuance_date: date = Field(...)
    issued_to: Optional[str] = Field(None)
    product_id: Optional[UUID] = Field(None)
    production_reference: Optional[str] = Field(None)
    planned_output: Optional[float] = Field(None)
    remarks: Optional[str] = Field(None)
    issued_by: Optional[UUID] = Field(None)
    created_at: datetime = Field(...)
    updated_at: datetime = Field(...)
    items: List[IssuanceItemRead] = Field(default_factory=list)

    class Config:
        from_attributes = True


class BomLineDetail(BaseModel):
    """BOM line with its raw material and type."""
    line: ProductBomLineRead
    raw_material: Optional[RawMaterialRead] = None
    raw_material_type: Optional[RawMaterialTypeRead] = None


class IssuanceSummary(BaseModel):
    """Issuance with product and BOM context."""
    issuance: IssuanceRead
    product: Optional[ProductRead] = None
    bom: List[BomLineDetail] = Field(default_factory=list)


# Production entries

class ProductionEntryCreate(BaseModel):
    """Create production entry payload."""
    issuance_id: UUID = Field(...)
    production_date: date = Field(...)
    shift: Shift = Field(..., description="A, B or General")
    produced_quantity: float = Field(..., gt=0, description="Produced base units, e.g. cases")
    rejected_quantity: float = Field(0, ge=0)
    empty_bottles_produced: float = Field(0, ge=0)
    empty_bottles_used: float = Field(0, ge=0)
    empty_bottles_pending: float = Field(0, ge=0)
    remarks: Optional[str] = Field(None)


class ProductionEntryRead(BaseModel):
    id: UUID = Field(...)
    issuance_id: UUID = Field(...)
    production_date: date = Field(...)
    shift: str = Field(...)
    produced_quantity: float = Field(...)
    rejected_quantity: float = Field(0)
    empty_bottles_produced: float = Field(0)
    empty_bottles_used: float = Field(0)
    empty_bottles_pending: float = Field(0)
    derived_units: Optional[float] = Field(None, description="Produced derived units, e.g. bottles")
    derived_units_display: Optional[str] = Field(None, description="Derived units formatted to 2 dp")
    remarks: Optional[str] = Field(None)
    created_by: Optional[UUID] = Field(None)
    created_at: datetime = Field(...)
    updated_at: datetime = Field(...)

    class Config:
        from_attributes = True


class BomComparisonLine(BaseModel):
    """Issued vs BOM-expected quantity for one raw material."""
    raw_material_id: UUID = Field(...)
    material_code: Optional[str] = Field(None)
    material_name: Optional[str] = Field(None)
    calculation_basis: Optional[str] = Field(None)
    expected_quantity: float = Field(..., description="BOM suggestion for the produced quantity")
    issued_quantity: float = Field(...)
    variance: float = Field(..., description="issued - expected")
    variance_percent: Optional[float] = Field(None, description="None when nothing was expected")
    severity: Optional[str] = Field(None, description="good | warning | critical")


class BomComparison(BaseModel):
    production_entry_id: UUID = Field(...)
    issuance_id: UUID = Field(...)
    product_id: Optional[UUID] = Field(None)
    produced_quantity: float = Field(...)
    produced_output: float = Field(..., description="Produced derived units, e.g. bottles")
    lines: List[BomComparisonLine] = Field(default_factory=list)
