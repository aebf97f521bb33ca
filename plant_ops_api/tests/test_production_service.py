from __future__ import annotations

from datetime import date
from uuid import uuid4

import pytest

from src.core.settings import AppSettings
from src.schemas.production import ProductionEntryCreate
from src.services.errors import ConflictError, NotFoundError
from src.services.production import ProductionService, produced_output

from tests.fakes import FakeEntryRepo, FakeIssuanceRepo, FakeSession, lose_insert_race, make_row


@pytest.fixture
def issuance(plant):
    return make_row(issuance_number="ISS-20240105-001", product_id=plant.product.id, planned_output=1200)


@pytest.fixture
def service(plant, issuance):
    svc = ProductionService(FakeSession(), settings=AppSettings())
    svc.products = plant.products
    svc.issuances = FakeIssuanceRepo([issuance])
    svc.entries = FakeEntryRepo()
    return svc


def _entry(issuance, **overrides):
    values = {"issuance_id": issuance.id, "production_date": date(2024, 1, 5), "shift": "A", "produced_quantity": 100}
    values.update(overrides)
    return ProductionEntryCreate(**values)


def test_produced_output_uses_derived_units(plant):
    assert produced_output(100, plant.product) == 1200.0
    assert produced_output(100, make_row(usable_derived_units=None)) == 100.0
    assert produced_output(7, None) == 7.0


@pytest.mark.anyio
async def test_entry_stores_derived_units(service, issuance, user_id):
    entry = await service.create_entry(_entry(issuance, rejected_quantity=2), user_id)

    assert entry.derived_units == 1200.0
    assert entry.derived_units_display == "1200.00"
    assert entry.rejected_quantity == 2
    assert entry.created_by == user_id
    assert service.session.commits == 1


@pytest.mark.anyio
async def test_one_entry_per_issuance_date_and_shift(service, issuance):
    await service.create_entry(_entry(issuance))

    with pytest.raises(ConflictError):
        await service.create_entry(_entry(issuance, produced_quantity=50))

    other_shift = await service.create_entry(_entry(issuance, shift="B"))
    assert other_shift.shift == "B"


@pytest.mark.anyio
async def test_entry_insert_losing_a_race_is_conflict(service, issuance):
    lose_insert_race(service.entries)

    with pytest.raises(ConflictError) as exc:
        await service.create_entry(_entry(issuance))

    assert exc.value.details == {"issuance_id": str(issuance.id), "shift": "A"}
    assert service.session.rollbacks == 1
    assert service.session.commits == 0


@pytest.mark.anyio
async def test_entry_for_unknown_issuance(service):
    with pytest.raises(NotFoundError):
        await service.create_entry(
            ProductionEntryCreate(issuance_id=uuid4(), production_date=date(2024, 1, 5), shift="A", produced_quantity=1)
        )
    with pytest.raises(NotFoundError):
        await service.get_entry(uuid4())


@pytest.mark.anyio
async def test_bom_comparison_bands(service, plant, issuance):
    stray = uuid4()
    service.issuances.items[issuance.id] = [
        make_row(issuance_id=issuance.id, raw_material_id=plant.preform.id, quantity_issued=0.09),
        make_row(issuance_id=issuance.id, raw_material_id=plant.cap.id, quantity_issued=0.015),
        make_row(issuance_id=issuance.id, raw_material_id=plant.label.id, quantity_issued=1),
        make_row(issuance_id=issuance.id, raw_material_id=stray, quantity_issued=3),
    ]
    entry = await service.create_entry(_entry(issuance))

    comparison = await service.bom_comparison(entry.id)

    assert comparison.produced_quantity == 100
    assert comparison.produced_output == 1200.0
    lines = {line.raw_material_id: line for line in comparison.lines}
    assert list(lines) == [plant.preform.id, plant.cap.id, plant.label.id, stray]

    preform = lines[plant.preform.id]
    assert preform.expected_quantity == pytest.approx(100 / 1131)
    assert preform.variance == pytest.approx(0.09 - 100 / 1131)
    assert preform.severity == "good"
    assert lines[plant.cap.id].expected_quantity == pytest.approx(100 / 6930)
    assert lines[plant.cap.id].severity == "warning"
    assert lines[plant.label.id].expected_quantity == pytest.approx(0.04)
    assert lines[plant.label.id].severity == "critical"

    assert lines[stray].expected_quantity == 0
    assert lines[stray].variance == 3
    assert lines[stray].variance_percent is None
    assert lines[stray].severity is None


@pytest.mark.anyio
async def test_untyped_bom_line_has_no_expectation(service, plant, issuance):
    shrink = make_row(material_code="RM-004", material_name="Shrink film", type_id=None, uom_id=plant.uom_id)
    plant.products.bom[plant.product.id].append(
        (make_row(product_id=plant.product.id, raw_material_id=shrink.id, quantity_required=2, uom_id=None), shrink, None)
    )
    service.issuances.items[issuance.id] = [
        make_row(issuance_id=issuance.id, raw_material_id=shrink.id, quantity_issued=5),
    ]
    entry = await service.create_entry(_entry(issuance))

    comparison = await service.bom_comparison(entry.id)

    shrink_line = next(line for line in comparison.lines if line.raw_material_id == shrink.id)
    assert shrink_line.material_code == "RM-004"
    assert shrink_line.calculation_basis is None
    assert shrink_line.expected_quantity == 0
    assert shrink_line.variance == 5
    assert shrink_line.severity is None


def test_expected_suggestions_use_produced_quantity(plant):
    from src.services.issuance import bom_lines_from_rows
    from src.services.production import expected_suggestions

    expected = expected_suggestions(100, bom_lines_from_rows(plant.bom_rows))

    assert expected[plant.preform.id].suggested_quantity == pytest.approx(100 / 1131)
    assert expected[plant.label.id].suggested_quantity == pytest.approx(0.04)
