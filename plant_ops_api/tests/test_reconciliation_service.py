from __future__ import annotations

from datetime import date
from uuid import uuid4

import pytest

from src.core.settings import AppSettings
from src.schemas.reconciliation import (
    MaterialReportLine,
    ReconciliationCreate,
    ReconciliationItemIn,
    ReconciliationReportRow,
    ReconciliationUpdate,
)
from src.services.errors import BusinessRuleError, ConflictError, EditLimitExceededError, NotFoundError
from src.services.reconciliation import (
    EDIT_LIMIT_MESSAGE,
    REPORT_COLUMNS,
    ReconciliationService,
    report_to_dataframe,
    summarize_variance,
)

from tests.fakes import (
    FakeEntryRepo,
    FakeIssuanceRepo,
    FakeReconciliationRepo,
    FakeSession,
    FakeStockRepo,
    lose_insert_race,
    make_row,
)


@pytest.fixture
def issuance(plant):
    return make_row(issuance_number="ISS-20240105-001", product_id=plant.product.id, planned_output=100)


@pytest.fixture
def entry(issuance):
    return make_row(
        issuance_id=issuance.id, production_date=date(2024, 1, 5), shift="A", produced_quantity=100,
        rejected_quantity=5, empty_bottles_produced=10, empty_bottles_used=8, empty_bottles_pending=2,
    )


@pytest.fixture
def service(plant, issuance, entry):
    items = [
        make_row(issuance_id=issuance.id, raw_material_id=m.id, quantity_issued=q, uom_id=plant.uom_id)
        for m, q in ((plant.preform, 2), (plant.cap, 1), (plant.label, 1))
    ]
    svc = ReconciliationService(FakeSession(), settings=AppSettings(RECONCILIATION_EDIT_LIMIT=3))
    svc.reconciliations = FakeReconciliationRepo(materials=plant.materials)
    svc.issuances = FakeIssuanceRepo([issuance], items)
    svc.entries = FakeEntryRepo([entry])
    svc.products = plant.products
    svc.stock = FakeStockRepo()
    return svc


def _create(issuance, entry, **overrides):
    values = {
        "reconciliation_date": date(2024, 1, 5),
        "shift": "A",
        "issuance_id": issuance.id,
        "production_entry_id": entry.id,
    }
    values.update(overrides)
    return ReconciliationCreate(**values)


@pytest.mark.anyio
async def test_items_default_to_issued_quantities(service, plant, issuance, entry, user_id):
    rec = await service.create(_create(issuance, entry), user_id)

    assert rec.reconciliation_number == "REC-20240105-001"
    assert rec.produced_cases == 100
    assert rec.rejected_cases == 5
    assert rec.empty_bottles_produced == 10
    assert rec.edit_count == 0
    by_material = {i.raw_material_id: i for i in rec.items}
    assert by_material[plant.preform.id].quantity_used == 2
    assert by_material[plant.preform.id].net_consumed == 2
    assert all(i.quantity_returned == 0 for i in rec.items)
    assert service.stock.calls == []
    assert service.session.commits == 1


@pytest.mark.anyio
async def test_returns_go_back_to_stock(service, plant, issuance, entry):
    payload = _create(
        issuance,
        entry,
        empty_bottles_pending=0,
        items=[ReconciliationItemIn(raw_material_id=plant.preform.id, quantity_used=1, quantity_returned=0.5)],
    )

    rec = await service.create(payload)

    item = rec.items[0]
    assert item.quantity_issued == 2
    assert item.net_consumed == 0.5
    assert rec.empty_bottles_pending == 0
    assert service.stock.calls == [
        {"raw_material_id": plant.preform.id, "delta": 0.5, "transaction_type": "return", "reference": rec.reconciliation_number}
    ]


@pytest.mark.anyio
async def test_negative_net_consumption_is_flagged(service, plant, issuance, entry):
    payload = _create(
        issuance,
        entry,
        items=[ReconciliationItemIn(raw_material_id=plant.cap.id, quantity_used=0.5, quantity_returned=1, quantity_pending=0.25)],
    )

    rec = await service.create(payload)

    assert rec.items[0].net_consumed == -0.75
    assert rec.items[0].is_negative is True


@pytest.mark.anyio
async def test_one_reconciliation_per_issuance_and_shift(service, issuance, entry):
    await service.create(_create(issuance, entry))
    with pytest.raises(ConflictError):
        await service.create(_create(issuance, entry))


@pytest.mark.anyio
async def test_reconciliation_insert_losing_a_race_is_conflict(service, issuance, entry):
    lose_insert_race(service.reconciliations)

    with pytest.raises(ConflictError):
        await service.create(_create(issuance, entry))

    assert service.session.rollbacks == 1
    assert service.stock.calls == []


@pytest.mark.anyio
async def test_empty_item_list_is_rejected_on_update(service, issuance, entry):
    rec = await service.create(_create(issuance, entry))

    with pytest.raises(BusinessRuleError):
        await service.update(rec.id, ReconciliationUpdate(items=[]))

    stored = await service.get(rec.id)
    assert stored.edit_count == 0
    assert len(stored.items) == 3


@pytest.mark.anyio
async def test_entry_must_belong_to_issuance(service, issuance):
    foreign = make_row(issuance_id=uuid4(), produced_quantity=1, rejected_quantity=0)
    service.entries.rows[foreign.id] = foreign
    with pytest.raises(BusinessRuleError):
        await service.create(_create(issuance, foreign))
    with pytest.raises(NotFoundError):
        await service.create(_create(issuance, make_row()))


@pytest.mark.anyio
async def test_edit_limit_applies_to_non_admins(service, issuance, entry, user_id):
    rec = await service.create(_create(issuance, entry))

    for n in range(1, 4):
        updated = await service.update(rec.id, ReconciliationUpdate(remarks=f"edit {n}"), user_id)
        assert updated.edit_count == n

    with pytest.raises(EditLimitExceededError) as exc:
        await service.update(rec.id, ReconciliationUpdate(remarks="edit 4"), user_id)
    assert exc.value.message == EDIT_LIMIT_MESSAGE
    assert exc.value.status_code == 403

    updated = await service.update(rec.id, ReconciliationUpdate(remarks="admin fix"), user_id, is_admin=True)
    assert updated.edit_count == 4
    assert updated.remarks == "admin fix"
    assert updated.last_edited_by == user_id
    assert updated.last_edited_at is not None


@pytest.mark.anyio
async def test_replacing_items_rebalances_returns(service, plant, issuance, entry):
    rec = await service.create(
        _create(
            issuance,
            entry,
            items=[ReconciliationItemIn(raw_material_id=plant.preform.id, quantity_used=1, quantity_returned=1)],
        )
    )
    service.stock.calls.clear()

    await service.update(
        rec.id,
        ReconciliationUpdate(
            items=[
                ReconciliationItemIn(raw_material_id=plant.preform.id, quantity_used=1.75, quantity_returned=0.25),
                ReconciliationItemIn(raw_material_id=plant.cap.id, quantity_used=0.5, quantity_returned=0.5),
            ]
        ),
    )

    calls = {c["raw_material_id"]: c for c in service.stock.calls}
    assert calls[plant.preform.id]["delta"] == pytest.approx(-0.75)
    assert calls[plant.preform.id]["transaction_type"] == "adjustment"
    assert calls[plant.cap.id]["delta"] == pytest.approx(0.5)
    assert calls[plant.cap.id]["transaction_type"] == "return"
    assert len(await service.reconciliations.list_items(rec.id)) == 2


@pytest.mark.anyio
async def test_soft_delete(service, issuance, entry):
    rec = await service.create(_create(issuance, entry))

    await service.delete(rec.id)

    with pytest.raises(NotFoundError):
        await service.get(rec.id)
    with pytest.raises(NotFoundError):
        await service.delete(rec.id)
    # the shift is free again
    again = await service.create(_create(issuance, entry))
    assert again.id != rec.id


@pytest.mark.anyio
async def test_report_figures(service, plant, issuance, entry):
    rec = await service.create(_create(issuance, entry))
    stored = service.reconciliations.rows[rec.id]
    service.reconciliations.headers = [(stored, issuance, entry, plant.product)]

    rows = await service.report()

    assert len(rows) == 1
    row = rows[0]
    assert row.issuance_number == "ISS-20240105-001"
    assert row.produced_bottles == 1200.0
    assert row.yield_percent == pytest.approx(95.24)
    assert row.efficiency_percent == pytest.approx(100.0)

    lines = {m.material_code: m for m in row.materials}
    preform = lines["RM-001"]
    assert preform.expected_total == pytest.approx(round(100 / 1131, 4))
    assert preform.variance == pytest.approx(round(2 - 100 / 1131, 4))
    assert preform.net_consumed == 2
    assert preform.severity == "critical"
    assert lines["RM-003"].expected_total == pytest.approx(0.04)


@pytest.mark.anyio
async def test_report_dataframe_has_one_line_per_material(service, plant, issuance, entry):
    rec = await service.create(_create(issuance, entry))
    service.reconciliations.headers = [(service.reconciliations.rows[rec.id], issuance, entry, plant.product)]

    df = report_to_dataframe(await service.report())

    assert list(df.columns) == REPORT_COLUMNS
    assert len(df) == 3
    assert set(df["material_code"]) == {"RM-001", "RM-002", "RM-003"}
    assert set(df["reconciliation_number"]) == {rec.reconciliation_number}


def test_report_dataframe_empty():
    df = report_to_dataframe([])
    assert list(df.columns) == REPORT_COLUMNS
    assert df.empty


@pytest.mark.anyio
async def test_variance_analytics_for_the_year(service, plant, issuance, entry):
    rec = await service.create(_create(issuance, entry))
    service.reconciliations.headers = [(service.reconciliations.rows[rec.id], issuance, entry, plant.product)]

    result = await service.variance_analytics(period="monthly", year=2024)

    assert result.year == 2024
    assert [p.period for p in result.analytics] == ["Jan"]
    assert result.totals.total_reconciliations == 1
    assert result.totals.avg_efficiency == 100.0
    assert result.top_materials[0].material_name == "Cap 28mm"
    assert (result.totals.total_good, result.totals.total_critical) == (0, 1)


def _material(raw_material_id, name, variance, percent):
    return MaterialReportLine(
        raw_material_id=raw_material_id,
        material_code=None,
        material_name=name,
        quantity_issued=1,
        quantity_used=1,
        quantity_returned=0,
        quantity_pending=0,
        net_consumed=1,
        expected_total=1,
        variance=variance,
        variance_percent=percent,
    )


def _report_row(day, efficiency, yield_, materials):
    return ReconciliationReportRow(
        reconciliation_id=uuid4(),
        reconciliation_number="REC-" + day.strftime("%Y%m%d") + "-001",
        reconciliation_date=day,
        shift="A",
        issuance_id=uuid4(),
        issuance_number="ISS",
        production_entry_id=uuid4(),
        produced_cases=100,
        produced_bottles=1200,
        yield_percent=yield_,
        efficiency_percent=efficiency,
        materials=materials,
    )


@pytest.fixture
def year_of_rows():
    preform, cap = uuid4(), uuid4()
    rows = [
        _report_row(date(2024, 1, 10), 90, 95, [
            _material(preform, "Preform", 0.01, 1.0),
            _material(cap, "Cap", -0.02, -3.0),
        ]),
        _report_row(date(2024, 1, 20), 110, 97, [
            _material(preform, "Preform", 0.1, 10.0),
            _material(cap, "Cap", 5, None),
        ]),
        _report_row(date(2024, 2, 3), None, 100, [_material(cap, "Cap", 0.03, 4.0)]),
        _report_row(date(2024, 5, 5), 100, 90, []),
    ]
    return rows, preform, cap


def _summarize(rows, period):
    return summarize_variance(rows, period=period, year=2024, good_threshold=2, warning_threshold=5)


def test_monthly_variance_bands_and_averages(year_of_rows):
    rows, _, _ = year_of_rows

    result = _summarize(rows, "monthly")

    jan, feb, may = result.analytics
    assert (jan.period, jan.period_index, jan.reconciliation_count) == ("Jan", 1, 2)
    assert jan.avg_variance == 6.0
    assert jan.avg_efficiency == 100.0
    assert jan.avg_yield == 96.0
    assert (jan.good_count, jan.warning_count, jan.critical_count) == (1, 0, 1)

    assert feb.avg_variance == 4.0
    assert feb.avg_efficiency is None
    assert (feb.good_count, feb.warning_count, feb.critical_count) == (0, 1, 0)

    # no material lines: counted, but in no band
    assert may.reconciliation_count == 1
    assert may.avg_variance is None
    assert (may.good_count, may.warning_count, may.critical_count) == (0, 0, 0)


def test_variance_totals_and_top_materials(year_of_rows):
    rows, preform, cap = year_of_rows

    result = _summarize(rows, "monthly")

    totals = result.totals
    assert totals.total_reconciliations == 4
    assert totals.avg_variance == pytest.approx(5.33)
    assert totals.avg_efficiency == 100.0
    assert totals.avg_yield == 95.5
    assert (totals.total_good, totals.total_warning, totals.total_critical) == (1, 1, 1)

    first, second = result.top_materials
    assert (first.raw_material_id, first.avg_variance, first.occurrences) == (preform, 5.5, 2)
    assert first.total_variance == pytest.approx(0.11)
    assert (second.raw_material_id, second.avg_variance, second.occurrences) == (cap, 3.5, 3)
    assert second.total_variance == pytest.approx(5.01)


def test_variance_periods(year_of_rows):
    rows, _, _ = year_of_rows

    weekly = _summarize(rows, "weekly")
    assert [(p.period, p.period_index) for p in weekly.analytics] == [
        ("Week 2", 2), ("Week 3", 3), ("Week 5", 5), ("Week 18", 18)
    ]

    quarterly = _summarize(rows, "quarterly")
    assert [(p.period, p.reconciliation_count) for p in quarterly.analytics] == [("Q1", 3), ("Q2", 1)]
    assert quarterly.analytics[0].avg_variance == pytest.approx(5.33)

    yearly = _summarize(rows, "yearly")
    assert [(p.period, p.reconciliation_count) for p in yearly.analytics] == [("2024", 4)]


def test_variance_analytics_without_reconciliations():
    result = _summarize([], "weekly")

    assert result.analytics == []
    assert result.top_materials == []
    assert result.totals.total_reconciliations == 0
    assert result.totals.avg_variance is None
