from __future__ import annotations

from datetime import date
from uuid import uuid4

import pytest

from src.schemas.production import BomSuggestionRequest, IssuanceCreate, IssuanceItemCreate
from src.services.errors import BusinessRuleError, NotFoundError
from src.services.issuance import IssuanceService

from tests.fakes import FakeIssuanceRepo, FakeSession, FakeStockRepo


@pytest.fixture
def service(plant):
    svc = IssuanceService(FakeSession())
    svc.products = plant.products
    svc.materials = plant.materials
    svc.issuances = FakeIssuanceRepo()
    svc.stock = FakeStockRepo()
    return svc


@pytest.mark.anyio
async def test_auto_populated_issuance_uses_rounded_suggestions(service, plant, user_id):
    payload = IssuanceCreate(issuance_date=date(2024, 1, 5), product_id=plant.product.id, planned_output=1200)

    issuance = await service.create_issuance(payload, user_id)

    assert issuance.issuance_number == "ISS-20240105-001"
    quantities = {i.raw_material_id: i.quantity_issued for i in issuance.items}
    assert quantities == {plant.preform.id: 2.0, plant.cap.id: 1.0, plant.label.id: 1.0}
    preform = next(i for i in issuance.items if i.raw_material_id == plant.preform.id)
    assert preform.calculation_basis == "formula-based"
    assert preform.suggested_quantity == pytest.approx(1200 / 1131)
    assert service.session.commits == 1


@pytest.mark.anyio
async def test_issuance_deducts_stock_per_item(service, plant, user_id):
    payload = IssuanceCreate(issuance_date=date(2024, 1, 5), product_id=plant.product.id, planned_output=1200)

    await service.create_issuance(payload, user_id)

    deltas = {c["raw_material_id"]: c["delta"] for c in service.stock.calls}
    assert deltas == {plant.preform.id: -2.0, plant.cap.id: -1.0, plant.label.id: -1.0}
    assert {c["transaction_type"] for c in service.stock.calls} == {"issue"}
    assert {c["reference"] for c in service.stock.calls} == {"ISS-20240105-001"}


@pytest.mark.anyio
async def test_explicit_item_quantity_overrides_suggestion(service, plant):
    payload = IssuanceCreate(
        product_id=plant.product.id,
        planned_output=1200,
        items=[
            IssuanceItemCreate(raw_material_id=plant.preform.id, quantity_issued=5),
            IssuanceItemCreate(raw_material_id=plant.cap.id),
        ],
    )

    issuance = await service.create_issuance(payload)

    quantities = {i.raw_material_id: i.quantity_issued for i in issuance.items}
    assert quantities == {plant.preform.id: 5.0, plant.cap.id: 1.0}


@pytest.mark.anyio
async def test_item_without_quantity_or_suggestion_is_rejected(service, plant):
    payload = IssuanceCreate(items=[IssuanceItemCreate(raw_material_id=plant.preform.id)])
    with pytest.raises(BusinessRuleError):
        await service.create_issuance(payload)


@pytest.mark.anyio
async def test_issuance_needs_items(service, plant):
    with pytest.raises(BusinessRuleError):
        await service.create_issuance(IssuanceCreate(product_id=plant.product.id))
    assert service.session.commits == 0
    assert service.stock.calls == []


@pytest.mark.anyio
async def test_unknown_material_and_product(service, plant):
    with pytest.raises(NotFoundError):
        await service.create_issuance(
            IssuanceCreate(items=[IssuanceItemCreate(raw_material_id=uuid4(), quantity_issued=1)])
        )
    with pytest.raises(NotFoundError):
        await service.create_issuance(IssuanceCreate(product_id=uuid4(), planned_output=10))


@pytest.mark.anyio
async def test_suggestions_for_stored_bom(service, plant):
    response = await service.suggestions(BomSuggestionRequest(planned_output=1200, product_id=plant.product.id))

    by_code = {s.material_code: s for s in response.suggestions}
    assert by_code["RM-001"].rounded_quantity == 2
    assert by_code["RM-001"].usable_units == 1131
    assert by_code["RM-002"].calculation_basis == "direct-value"
    assert by_code["RM-003"].calculation_details.startswith("Output-Coverage")
    assert service.session.commits == 0


@pytest.mark.anyio
async def test_suggestions_for_inline_lines(service, plant):
    request = BomSuggestionRequest(
        planned_output=100,
        lines=[
            {"raw_material_id": plant.cap.id, "quantity_required": 2},
            {
                "raw_material_id": plant.label.id,
                "type_details": {"conversion_method": "output-coverage", "output_units_covered": 40},
            },
        ],
    )

    response = await service.suggestions(request)

    by_id = {s.raw_material_id: s for s in response.suggestions}
    assert by_id[plant.cap.id].calculation_basis == "manual"
    assert by_id[plant.cap.id].suggested_quantity == 200
    assert by_id[plant.label.id].rounded_quantity == 3
    assert by_id[plant.label.id].material_name == "Label 500ml"
