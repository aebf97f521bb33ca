from __future__ import annotations

from types import SimpleNamespace
from uuid import uuid4

import pytest

from tests.fakes import FakeMaterialRepo, FakeProductRepo, make_row


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def plant():
    """
    A bottling plant: preform (formula-based), cap (direct-value) and label
    (output-coverage) materials on the BOM of a 12-bottle-per-case product.
    """
    preform_type = make_row(
        type_code="RMT-001", type_name="Preform", conversion_method="formula-based",
        base_unit_weight=25, weight_per_derived_unit=21, derived_value_per_base=None,
        output_units_covered=None, loss_percent=5,
    )
    cap_type = make_row(
        type_code="RMT-002", type_name="Cap", conversion_method="direct-value",
        base_unit_weight=None, weight_per_derived_unit=None, derived_value_per_base=6930,
        output_units_covered=None, loss_percent=0,
    )
    label_type = make_row(
        type_code="RMT-003", type_name="Label", conversion_method="output-coverage",
        base_unit_weight=None, weight_per_derived_unit=None, derived_value_per_base=None,
        output_units_covered=2500, loss_percent=0,
    )
    uom_id = uuid4()
    preform = make_row(material_code="RM-001", material_name="Preform 21g", type_id=preform_type.id, uom_id=uom_id)
    cap = make_row(material_code="RM-002", material_name="Cap 28mm", type_id=cap_type.id, uom_id=uom_id)
    label = make_row(material_code="RM-003", material_name="Label 500ml", type_id=label_type.id, uom_id=uom_id)
    product = make_row(product_code="FG-500ML", product_name="Water 500ml", usable_derived_units=12)

    bom_rows = [
        (make_row(product_id=product.id, raw_material_id=m.id, quantity_required=1, uom_id=None), m, t)
        for m, t in ((preform, preform_type), (cap, cap_type), (label, label_type))
    ]
    return SimpleNamespace(
        product=product,
        preform=preform,
        cap=cap,
        label=label,
        types=[preform_type, cap_type, label_type],
        uom_id=uom_id,
        bom_rows=bom_rows,
        products=FakeProductRepo([product], {product.id: bom_rows}),
        materials=FakeMaterialRepo([preform, cap, label]),
    )


@pytest.fixture
def user_id():
    return uuid4()
