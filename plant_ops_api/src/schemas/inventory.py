from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class RawMaterialTransactionRead(BaseModel):
    """Read model for a raw material stock movement."""
    id: UUID = Field(..., description="Transaction ID")
    raw_material_id: UUID = Field(..., description="Raw material ID")
    transaction_type: str = Field(..., description="issue, return, adjustment or receipt")
    quantity: float = Field(..., description="Signed quantity in base units; issues are negative")
    reference: Optional[str] = Field(None, description="Document number, e.g. ISS-20240101-001")
    remarks: Optional[str] = Field(None)
    performed_by: Optional[UUID] = Field(None, description="User who caused the movement")
    created_at: datetime = Field(..., description="Created timestamp")

    class Config:
        from_attributes = True


class StockAdjustmentCreate(BaseModel):
    """Manual stock movement booked from the stores screen."""
    transaction_type: Literal["receipt", "adjustment"] = Field("adjustment")
    quantity: float = Field(..., description="Signed quantity; receipts must be positive")
    reference: Optional[str] = Field(None)
    remarks: Optional[str] = Field(None)
