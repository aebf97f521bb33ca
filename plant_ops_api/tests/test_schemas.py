from __future__ import annotations

from datetime import date
from uuid import uuid4

import pytest
from pydantic import ValidationError

from src.schemas.master_data import (
    DirectValueTypeCreate,
    FormulaBasedTypeCreate,
    OutputCoverageTypeCreate,
    RawMaterialTypeCreateRequest,
)
from src.schemas.production import BomSuggestionRequest, ProductionEntryCreate
from src.schemas.reconciliation import ReconciliationItemRead


def test_type_create_is_discriminated_by_method():
    formula = RawMaterialTypeCreateRequest.model_validate(
        {"type_name": "Preform", "conversion_method": "formula-based", "base_unit_weight": 25, "weight_per_derived_unit": 21}
    )
    direct = RawMaterialTypeCreateRequest.model_validate(
        {"type_name": "Cap", "conversion_method": "direct-value", "derived_value_per_base": 6930}
    )
    coverage = RawMaterialTypeCreateRequest.model_validate(
        {"type_name": "Label", "conversion_method": "output-coverage", "output_units_covered": 2500}
    )
    assert isinstance(formula.root, FormulaBasedTypeCreate)
    assert isinstance(direct.root, DirectValueTypeCreate)
    assert isinstance(coverage.root, OutputCoverageTypeCreate)


def test_type_create_requires_fields_of_its_method():
    with pytest.raises(ValidationError):
        RawMaterialTypeCreateRequest.model_validate(
            {"type_name": "Preform", "conversion_method": "formula-based", "base_unit_weight": 25}
        )
    with pytest.raises(ValidationError):
        RawMaterialTypeCreateRequest.model_validate(
            {"type_name": "Cap", "conversion_method": "by-weight", "derived_value_per_base": 10}
        )


def test_type_create_rejects_loss_above_hundred():
    with pytest.raises(ValidationError):
        DirectValueTypeCreate(type_name="Cap", derived_value_per_base=10, loss_percent=120)


def test_suggestion_request_needs_product_or_lines():
    with pytest.raises(ValidationError):
        BomSuggestionRequest(planned_output=100)
    with pytest.raises(ValidationError):
        BomSuggestionRequest(planned_output=0, product_id=uuid4())
    assert BomSuggestionRequest(planned_output=100, product_id=uuid4()).lines is None


def test_production_entry_shift_values():
    payload = {"issuance_id": uuid4(), "production_date": date(2024, 1, 5), "produced_quantity": 100}
    assert ProductionEntryCreate(shift="General", **payload).shift == "General"
    with pytest.raises(ValidationError):
        ProductionEntryCreate(shift="C", **payload)
    with pytest.raises(ValidationError):
        ProductionEntryCreate(shift="A", **{**payload, "produced_quantity": 0})


def test_reconciliation_item_read_computes_net_consumed():
    item = ReconciliationItemRead(
        id=uuid4(), raw_material_id=uuid4(), quantity_issued=10, quantity_used=4,
        quantity_returned=5, quantity_pending=1,
    )
    dumped = item.model_dump()
    assert dumped["net_consumed"] == -2
    assert dumped["is_negative"] is True
