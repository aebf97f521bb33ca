"""In-memory stand-ins for the session and repositories used by service tests."""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, timezone
from types import SimpleNamespace
from typing import Dict, List, Optional
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError


def make_row(**values) -> SimpleNamespace:
    """In-memory stand-in for an ORM row with the housekeeping columns filled."""
    now = datetime(2024, 1, 5, 8, 0, tzinfo=timezone.utc)
    base = {"id": uuid4(), "record_status": 1, "created_at": now, "updated_at": now}
    base.update(values)
    return SimpleNamespace(**base)


def lose_insert_race(repo) -> None:
    """Make create fail the way a concurrent insert of the same key does."""

    async def create(**values):
        raise IntegrityError("INSERT", values, Exception("duplicate key value violates unique constraint"))

    repo.create = create


class FakeSession:
    def __init__(self) -> None:
        self.commits = 0
        self.rollbacks = 0

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        self.rollbacks += 1

    async def flush(self) -> None:
        return None


class FakeRepo:
    """Dictionary-backed subset of SoftDeleteRepository."""

    def __init__(self, rows: Optional[List[SimpleNamespace]] = None) -> None:
        self.rows: Dict[UUID, SimpleNamespace] = {r.id: r for r in rows or []}

    async def get(self, entity_id):
        row = self.rows.get(entity_id)
        return row if row is not None and row.record_status == 1 else None

    async def create(self, **values):
        row = make_row(**values)
        self.rows[row.id] = row
        return row

    async def update(self, entity_id, **values):
        row = await self.get(entity_id)
        if row is None:
            return None
        for key, value in values.items():
            setattr(row, key, value)
        return row

    async def soft_delete(self, entity_id) -> bool:
        row = await self.get(entity_id)
        if row is None:
            return False
        row.record_status = 0
        return True

    async def exists(self, *filters, exclude_id=None) -> bool:
        # Only understands `Model.column == value` clauses.
        wanted = {clause.left.key: clause.right.value for clause in filters}
        return any(
            row.record_status == 1
            and row.id != exclude_id
            and all(getattr(row, key, None) == value for key, value in wanted.items())
            for row in self.rows.values()
        )

    async def flush(self) -> None:
        return None


class FakeTypeRepo(FakeRepo):
    async def next_type_code(self) -> str:
        return f"RMT-{len(self.rows) + 1:03d}"


class FakeProductRepo(FakeRepo):
    def __init__(self, rows=None, bom=None) -> None:
        super().__init__(rows)
        self.bom: Dict[UUID, list] = bom or {}

    async def list_bom_with_details(self, product_id):
        return list(self.bom.get(product_id, []))

    async def replace_bom(self, product_id, lines):
        return [make_row(product_id=product_id, **line) for line in lines]


class FakeMaterialRepo(FakeRepo):
    async def get_many(self, ids):
        return [r for r in self.rows.values() if r.id in set(ids) and r.record_status == 1]

    async def next_material_code(self) -> str:
        return f"RM-{len(self.rows) + 1:03d}"


class FakeStockRepo:
    def __init__(self) -> None:
        self.calls: List[dict] = []

    async def adjust_stock(self, raw_material_id, delta, *, transaction_type, reference=None, remarks=None, performed_by=None):
        call = {
            "raw_material_id": raw_material_id,
            "delta": delta,
            "transaction_type": transaction_type,
            "reference": reference,
        }
        self.calls.append(call)
        return make_row(quantity=delta, transaction_type=transaction_type, raw_material_id=raw_material_id,
                        reference=reference, remarks=remarks, performed_by=performed_by)


class FakeIssuanceRepo(FakeRepo):
    def __init__(self, rows=None, items=None) -> None:
        super().__init__(rows)
        self.items: Dict[UUID, list] = defaultdict(list)
        for item in items or []:
            self.items[item.issuance_id].append(item)

    async def next_issuance_number(self, on: date) -> str:
        return f"ISS-{on.strftime('%Y%m%d')}-{len(self.rows) + 1:03d}"

    async def add_items(self, issuance_id, items):
        rows = [make_row(issuance_id=issuance_id, **item) for item in items]
        self.items[issuance_id].extend(rows)
        return rows

    async def list_items(self, issuance_id):
        return list(self.items.get(issuance_id, []))

    async def list_issuances(self, **kwargs):
        return [r for r in self.rows.values() if r.record_status == 1]


class FakeEntryRepo(FakeRepo):
    async def find_for_shift(self, issuance_id, production_date, shift):
        for row in self.rows.values():
            if (row.record_status == 1 and row.issuance_id == issuance_id
                    and row.production_date == production_date and row.shift == shift):
                return row
        return None

    async def list_entries(self, **kwargs):
        return [r for r in self.rows.values() if r.record_status == 1]


class FakeReconciliationRepo(FakeRepo):
    def __init__(self, rows=None, materials: Optional[FakeMaterialRepo] = None, headers=None) -> None:
        super().__init__(rows)
        self.items: Dict[UUID, list] = defaultdict(list)
        self.materials = materials
        self.headers = headers or []

    async def next_reconciliation_number(self, on: date) -> str:
        return f"REC-{on.strftime('%Y%m%d')}-{len(self.rows) + 1:03d}"

    async def find_for_shift(self, issuance_id, shift):
        for row in self.rows.values():
            if row.record_status == 1 and row.issuance_id == issuance_id and row.shift == shift:
                return row
        return None

    async def get_for_update(self, reconciliation_id):
        return await self.get(reconciliation_id)

    async def add_items(self, reconciliation_id, items):
        rows = [make_row(reconciliation_id=reconciliation_id, **item) for item in items]
        self.items[reconciliation_id].extend(rows)
        return rows

    async def replace_items(self, reconciliation_id, items):
        for item in self.items[reconciliation_id]:
            item.record_status = 0
        return await self.add_items(reconciliation_id, items)

    async def list_items(self, reconciliation_id):
        return [i for i in self.items.get(reconciliation_id, []) if i.record_status == 1]

    async def list_items_with_materials(self, reconciliation_ids):
        out = []
        for rid in reconciliation_ids:
            for item in await self.list_items(rid):
                material = self.materials.rows.get(item.raw_material_id) if self.materials else None
                out.append((item, material))
        return out

    async def report_headers(self, **kwargs):
        return list(self.headers)

    async def list(self, *filters, order_by=None, limit=100, offset=0):
        return [r for r in self.rows.values() if r.record_status == 1]

