from __future__ import annotations

from datetime import date, datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, computed_field

from src.schemas.production import Shift
from src.services.calculations import net_consumed


class ReconciliationItemIn(BaseModel):
    """Material line of a reconciliation."""
    raw_material_id: UUID = Field(...)
    issuance_item_id: Optional[UUID] = Field(None)
    quantity_issued: Optional[float] = Field(None, ge=0, description="Defaults to the issued quantity")
    quantity_used: float = Field(..., ge=0)
    quantity_returned: float = Field(0, ge=0, description="Returned to stores; added back to stock")
    quantity_pending: float = Field(0, ge=0)
    uom_id: Optional[UUID] = Field(None)
    remarks: Optional[str] = Field(None)


class ReconciliationCreate(BaseModel):
    """Create reconciliation payload. Items default to the issuance items."""
    reconciliation_date: date = Field(default_factory=date.today)
    shift: Shift = Field(...)
    issuance_id: UUID = Field(...)
    production_entry_id: UUID = Field(...)
    empty_bottles_produced: Optional[int] = Field(None, ge=0)
    empty_bottles_used: Optional[int] = Field(None, ge=0)
    empty_bottles_pending: Optional[int] = Field(None, ge=0)
    remarks: Optional[str] = Field(None)
    items: Optional[List[ReconciliationItemIn]] = Field(None)


class ReconciliationUpdate(BaseModel):
    """Partial update; providing items replaces all material lines (an empty list is rejected)."""
    reconciliation_date: Optional[date] = Field(None)
    empty_bottles_produced: Optional[int] = Field(None, ge=0)
    empty_bottles_used: Optional[int] = Field(None, ge=0)
    empty_bottles_pending: Optional[int] = Field(None, ge=0)
    remarks: Optional[str] = Field(None)
    items: Optional[List[ReconciliationItemIn]] = Field(None)


class ReconciliationItemRead(BaseModel):
    id: UUID = Field(...)
    raw_material_id: UUID = Field(...)
    issuance_item_id: Optional[UUID] = Field(None)
    quantity_issued: float = Field(...)
    quantity_used: float = Field(...)
    quantity_returned: float = Field(0)
    quantity_pending: float = Field(0)
    uom_id: Optional[UUID] = Field(None)
    remarks: Optional[str] = Field(None)

    class Config:
        from_attributes = True

    @computed_field  # type: ignore[misc]
    @property
    def net_consumed(self) -> float:
        return net_consumed(self.quantity_used, self.quantity_returned, self.quantity_pending)

    @computed_field  # type: ignore[misc]
    @property
    def is_negative(self) -> bool:
        return self.net_consumed < 0


class ReconciliationRead(BaseModel):
    id: UUID = Field(...)
    reconciliation_number: str = Field(..., description="REC-YYYYMMDD-###")
    reconciliation_date: date = Field(...)
    shift: str = Field(...)
    issuance_id: UUID = Field(...)
    production_entry_id: UUID = Field(...)
    produced_cases: int = Field(...)
    rejected_cases: int = Field(0)
    empty_bottles_produced: int = Field(0)
    empty_bottles_used: int = Field(0)
    empty_bottles_pending: int = Field(0)
    edit_count: int = Field(0)
    last_edited_by: Optional[UUID] = Field(None)
    last_edited_at: Optional[datetime] = Field(None)
    remarks: Optional[str] = Field(None)
    created_by: Optional[UUID] = Field(None)
    created_at: datetime = Field(...)
    updated_at: datetime = Field(...)
    items: List[ReconciliationItemRead] = Field(default_factory=list)

    class Config:
        from_attributes = True


class MaterialReportLine(BaseModel):
    """Per-material figures on the reconciliation report."""
    raw_material_id: UUID = Field(...)
    material_code: Optional[str] = Field(None)
    material_name: Optional[str] = Field(None)
    quantity_issued: float = Field(...)
    quantity_used: float = Field(...)
    quantity_returned: float = Field(...)
    quantity_pending: float = Field(...)
    net_consumed: float = Field(...)
    expected_total: float = Field(..., description="BOM quantity expected for the produced cases")
    variance: float = Field(..., description="issued - expected")
    variance_percent: Optional[float] = Field(None)
    severity: Optional[str] = Field(None)


class ReconciliationReportRow(BaseModel):
    reconciliation_id: UUID = Field(...)
    reconciliation_number: str = Field(...)
    reconciliation_date: date = Field(...)
    shift: str = Field(...)
    issuance_id: UUID = Field(...)
    issuance_number: str = Field(...)
    production_entry_id: UUID = Field(...)
    product_id: Optional[UUID] = Field(None)
    product_name: Optional[str] = Field(None)
    produced_cases: int = Field(...)
    produced_bottles: float = Field(..., description="Produced derived units")
    rejected_cases: int = Field(0)
    yield_percent: Optional[float] = Field(None)
    efficiency_percent: Optional[float] = Field(None)
    materials: List[MaterialReportLine] = Field(default_factory=list)


AnalyticsPeriod = Literal["weekly", "monthly", "quarterly", "yearly"]


class PeriodVarianceAnalytics(BaseModel):
    """Reconciliations of one week, month, quarter or year."""
    period: str = Field(..., description="Week 3, Jan, Q1 or the year")
    period_index: int = Field(..., description="Week, month or quarter number; 1 for yearly")
    reconciliation_count: int = Field(...)
    avg_variance: Optional[float] = Field(None, description="Mean of the reconciliations' mean |variance %|")
    avg_efficiency: Optional[float] = Field(None)
    avg_yield: Optional[float] = Field(None)
    good_count: int = Field(0)
    warning_count: int = Field(0)
    critical_count: int = Field(0)


class VarianceAnalyticsTotals(BaseModel):
    total_reconciliations: int = Field(0)
    avg_variance: Optional[float] = Field(None)
    avg_efficiency: Optional[float] = Field(None)
    avg_yield: Optional[float] = Field(None)
    total_good: int = Field(0)
    total_warning: int = Field(0)
    total_critical: int = Field(0)


class MaterialVarianceSummary(BaseModel):
    raw_material_id: UUID = Field(...)
    material_name: Optional[str] = Field(None)
    avg_variance: Optional[float] = Field(None, description="Mean |variance %| over the material's lines")
    total_variance: float = Field(..., description="Sum of issued - expected over the material's lines")
    occurrences: int = Field(..., description="Reconciliation lines for the material")


class VarianceAnalytics(BaseModel):
    year: int = Field(...)
    period: AnalyticsPeriod = Field(...)
    analytics: List[PeriodVarianceAnalytics] = Field(default_factory=list)
    totals: VarianceAnalyticsTotals = Field(default_factory=VarianceAnalyticsTotals)
    top_materials: List[MaterialVarianceSummary] = Field(default_factory=list)
