from __future__ import annotations

from uuid import uuid4

import pytest

from src.schemas.inventory import StockAdjustmentCreate
from src.schemas.master_data import (
    DirectValueTypeCreate,
    FormulaBasedTypeCreate,
    ProductBomLineIn,
    ProductBomReplace,
    ProductCreate,
    RawMaterialCreate,
    RawMaterialTypeUpdate,
    UomCreate,
    UomUpdate,
)
from src.services.errors import BusinessRuleError, ConflictError, NotFoundError
from src.db.models.master_data import Product, RawMaterial, RawMaterialType, Uom
from src.services.master_data import MasterDataService, computed_conversion

from tests.fakes import FakeRepo, FakeSession, FakeStockRepo, FakeTypeRepo, lose_insert_race


@pytest.fixture
def service(plant):
    svc = MasterDataService(FakeSession())
    svc.uoms = FakeRepo()
    svc.types = FakeTypeRepo(plant.types)
    svc.materials = plant.materials
    svc.products = plant.products
    svc.stock = FakeStockRepo()
    return svc


def test_computed_conversion():
    result = computed_conversion(
        {"conversion_method": "formula-based", "base_unit_weight": 25, "weight_per_derived_unit": 21, "loss_percent": 5}
    )
    assert result == {"conversion_method": "formula-based", "conversion_value": 1190.4762, "usable_units": 1131}


def test_computed_conversion_rejects_manual_and_missing_fields():
    with pytest.raises(BusinessRuleError):
        computed_conversion({"conversion_method": "manual"})
    with pytest.raises(BusinessRuleError) as exc:
        computed_conversion({"conversion_method": "formula-based", "base_unit_weight": 25})
    assert exc.value.details == {"required": ["base_unit_weight", "weight_per_derived_unit"]}


@pytest.mark.anyio
async def test_uom_codes_are_unique_and_uppercase(service):
    uom = await service.create_uom(UomCreate(code="kg", name="Kilogram"))
    assert uom.code == "KG"
    with pytest.raises(ConflictError):
        await service.create_uom(UomCreate(code=" Kg ", name="Kilo"))


@pytest.mark.anyio
async def test_deleted_codes_can_be_reused(service, plant):
    kg = await service.create_uom(UomCreate(code="KG", name="Kilogram"))
    await service.delete_uom(kg.id)

    again = await service.create_uom(UomCreate(code="kg", name="Kilogram"))
    assert again.id != kg.id
    assert again.code == "KG"

    await service.delete_product(plant.product.id)
    product = await service.create_product(ProductCreate(product_code="FG-500ML", product_name="Water 500ml v2"))
    assert product.product_code == "FG-500ML"

    await service.delete_material(plant.cap.id)
    cap = await service.create_material(RawMaterialCreate(material_code="RM-002", material_name="Cap 30mm"))
    assert cap.material_code == "RM-002"


@pytest.mark.parametrize("model", [Uom, RawMaterialType, RawMaterial, Product])
def test_code_indexes_only_cover_live_rows(model):
    code_indexes = [ix for ix in model.__table__.indexes if ix.name.startswith("uq_")]
    assert len(code_indexes) == 1
    index = code_indexes[0]
    assert index.unique is True
    assert str(index.dialect_options["postgresql"]["where"]) == "record_status = 1"


@pytest.mark.anyio
async def test_concurrent_duplicate_insert_is_conflict(service):
    lose_insert_race(service.uoms)

    with pytest.raises(ConflictError) as exc:
        await service.create_uom(UomCreate(code="BOX", name="Box"))

    assert exc.value.status_code == 409
    assert exc.value.details == {"code": "BOX"}
    assert service.session.rollbacks == 1
    assert service.session.commits == 0


@pytest.mark.anyio
async def test_concurrent_duplicate_material_and_product(service):
    lose_insert_race(service.materials)
    with pytest.raises(ConflictError):
        await service.create_material(RawMaterialCreate(material_code="RM-009", material_name="Sleeve"))

    lose_insert_race(service.products)
    with pytest.raises(ConflictError):
        await service.create_product(ProductCreate(product_code="FG-1L", product_name="Water 1L"))

    lose_insert_race(service.types)
    with pytest.raises(ConflictError):
        await service.create_type(DirectValueTypeCreate(type_name="Sleeve", derived_value_per_base=100))
    assert service.session.rollbacks == 3


@pytest.mark.anyio
async def test_uom_code_change_to_taken_code(service):
    await service.create_uom(UomCreate(code="KG", name="Kilogram"))
    pcs = await service.create_uom(UomCreate(code="PCS", name="Pieces"))

    with pytest.raises(ConflictError):
        await service.update_uom(pcs.id, UomUpdate(code="kg"))


@pytest.mark.anyio
async def test_create_type_generates_code_and_conversion(service):
    row = await service.create_type(DirectValueTypeCreate(type_name="Shrink film", derived_value_per_base=400, loss_percent=10))

    assert row.type_code == "RMT-004"
    assert row.conversion_value == 400
    assert row.usable_units == 360
    assert service.session.commits == 1


@pytest.mark.anyio
async def test_create_type_duplicate_code(service):
    payload = FormulaBasedTypeCreate(
        type_code="RMT-001", type_name="Preform 2", base_unit_weight=20, weight_per_derived_unit=18
    )
    with pytest.raises(ConflictError):
        await service.create_type(payload)


@pytest.mark.anyio
async def test_switching_method_clears_old_fields(service, plant):
    preform_type = plant.types[0]

    row = await service.update_type(
        preform_type.id, RawMaterialTypeUpdate(conversion_method="direct-value", derived_value_per_base=1000)
    )

    assert row.conversion_method == "direct-value"
    assert row.base_unit_weight is None
    assert row.weight_per_derived_unit is None
    assert row.conversion_value == 1000
    assert row.usable_units == 950


@pytest.mark.anyio
async def test_switching_method_without_its_fields_fails(service, plant):
    with pytest.raises(BusinessRuleError):
        await service.update_type(plant.types[1].id, RawMaterialTypeUpdate(conversion_method="output-coverage"))


@pytest.mark.anyio
async def test_loss_change_recomputes_usable_units(service, plant):
    row = await service.update_type(plant.types[1].id, RawMaterialTypeUpdate(loss_percent=50))
    assert row.usable_units == 3465


@pytest.mark.anyio
async def test_opening_stock_is_booked_as_receipt(service, user_id):
    row = await service.create_material(RawMaterialCreate(material_name="Handle", opening_stock=50), user_id)

    assert row.material_code == "RM-004"
    assert service.stock.calls == [
        {"raw_material_id": row.id, "delta": 50, "transaction_type": "receipt", "reference": "RM-004"}
    ]

    await service.create_material(RawMaterialCreate(material_name="Sleeve"))
    assert len(service.stock.calls) == 1


@pytest.mark.anyio
async def test_material_with_unknown_type(service):
    with pytest.raises(NotFoundError):
        await service.create_material(RawMaterialCreate(material_name="Handle", type_id=uuid4()))


@pytest.mark.anyio
async def test_manual_stock_adjustments(service, plant):
    with pytest.raises(BusinessRuleError):
        await service.adjust_stock(plant.cap.id, StockAdjustmentCreate(quantity=0))
    with pytest.raises(BusinessRuleError):
        await service.adjust_stock(plant.cap.id, StockAdjustmentCreate(transaction_type="receipt", quantity=-3))

    txn = await service.adjust_stock(plant.cap.id, StockAdjustmentCreate(quantity=-3, remarks="damaged"))
    assert txn.quantity == -3
    assert txn.transaction_type == "adjustment"


@pytest.mark.anyio
async def test_replace_bom_validation(service, plant):
    dup = ProductBomReplace(
        lines=[ProductBomLineIn(raw_material_id=plant.cap.id), ProductBomLineIn(raw_material_id=plant.cap.id)]
    )
    with pytest.raises(BusinessRuleError):
        await service.replace_bom(plant.product.id, dup)

    with pytest.raises(NotFoundError):
        await service.replace_bom(plant.product.id, ProductBomReplace(lines=[ProductBomLineIn(raw_material_id=uuid4())]))

    rows = await service.replace_bom(
        plant.product.id, ProductBomReplace(lines=[ProductBomLineIn(raw_material_id=plant.cap.id, quantity_required=2)])
    )
    assert [r.quantity_required for r in rows] == [2]
