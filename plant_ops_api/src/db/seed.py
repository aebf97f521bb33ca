"""
Database seeding utilities for minimal reference data.

Seeds:
- Built-in roles (admin, manager, operator, reviewer) with screen permissions
- Units of measure (KG, PCS, BOX, ROLL, CASE)
- Raw material types for each conversion method (preform, cap, label)
- Raw materials of those types
- A sample product (500ml bottle, 12 per case) with its BOM
- Optional admin user when SEED_ADMIN_EMAIL / SEED_ADMIN_PASSWORD are set

Usage:
  python -m src.db.run_migrations upgrade head
  python -m src.db.seed
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Tuple
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.security import hash_password
from src.core.settings import get_app_settings
from src.db.session import session_scope
from src.services.calculations import TypeConversion, conversion_value, usable_units

logger = logging.getLogger(__name__)

SCREEN_KEYS = [
    "dashboard",
    "uom",
    "raw-material-types",
    "raw-materials",
    "products",
    "raw-material-issuance",
    "production-entry",
    "production-reconciliation",
    "production-reconciliation-report",
    "users",
    "roles",
]

# role -> (view, create, edit, delete) applied to every screen, with per-screen overrides
ROLE_DEFAULTS: Dict[str, Tuple[bool, bool, bool, bool]] = {
    "admin": (True, True, True, True),
    "manager": (True, True, True, False),
    "operator": (True, True, True, False),
    "reviewer": (True, False, False, False),
}
ROLE_DESCRIPTIONS = {
    "admin": "Administrator",
    "manager": "Production manager",
    "operator": "Shop floor operator",
    "reviewer": "Read-only reviewer",
}
RESTRICTED_SCREENS = {"users", "roles"}


# PUBLIC_INTERFACE
async def seed_all() -> None:
    """
    Seed the database with minimal reference data. Safe to run repeatedly.
    """
    async with session_scope() as session:
        role_ids = await _seed_security(session)
        uoms = await _seed_uoms(session)
        types = await _seed_raw_material_types(session)
        materials = await _seed_raw_materials(session, types, uoms)
        await _seed_product_and_bom(session, materials, uoms)
        await _seed_admin_user(session, role_ids)


async def _seed_security(session: AsyncSession) -> Dict[str, UUID]:
    """
    Seed built-in roles and their screen permissions.

    Returns:
      dict mapping role name to id
    """
    ids: Dict[str, UUID] = {}
    for name, (view, create, edit, delete) in ROLE_DEFAULTS.items():
        await session.execute(
            text(
                """
                INSERT INTO roles (name, description)
                VALUES (:name, :desc)
                ON CONFLICT ON CONSTRAINT uq_roles_name DO NOTHING
                """
            ),
            {"name": name, "desc": ROLE_DESCRIPTIONS[name]},
        )
        res = await session.execute(text("SELECT id FROM roles WHERE name = :name"), {"name": name})
        role_id = res.scalar_one()
        ids[name] = role_id

        for screen in SCREEN_KEYS:
            restricted = screen in RESTRICTED_SCREENS and name != "admin"
            await session.execute(
                text(
                    """
                    INSERT INTO role_permissions (role_id, screen_key, can_view, can_create, can_edit, can_delete)
                    VALUES (:rid, :screen, :v, :c, :e, :d)
                    ON CONFLICT ON CONSTRAINT uq_role_permissions_role_screen DO NOTHING
                    """
                ),
                {
                    "rid": str(role_id),
                    "screen": screen,
                    "v": view and not restricted,
                    "c": create and not restricted,
                    "e": edit and not restricted,
                    "d": delete and not restricted,
                },
            )
    return ids


async def _upsert_returning_id(session: AsyncSession, select_sql: str, insert_sql: str, params: dict) -> UUID:
    res = await session.execute(text(select_sql), params)
    row = res.first()
    if row:
        return row[0]
    inserted = await session.execute(text(insert_sql), params)
    return inserted.scalar_one()


async def _seed_uoms(session: AsyncSession) -> Dict[str, UUID]:
    """
    Seed units of measure and return a mapping code->id.
    """
    uoms: List[Tuple[str, str]] = [
        ("KG", "Kilogram"),
        ("PCS", "Pieces"),
        ("BOX", "Box"),
        ("ROLL", "Roll"),
        ("CASE", "Case"),
    ]
    ids: Dict[str, UUID] = {}
    for code, name in uoms:
        ids[code] = await _upsert_returning_id(
            session,
            "SELECT id FROM uoms WHERE code = :code",
            "INSERT INTO uoms (code, name) VALUES (:code, :name) RETURNING id",
            {"code": code, "name": name},
        )
    return ids


async def _seed_raw_material_types(session: AsyncSession) -> Dict[str, UUID]:
    """
    Seed one raw material type per conversion method with computed
    conversion_value / usable_units.
    """
    types = [
        {
            "type_code": "RMT-001",
            "type_name": "Preform",
            "conversion_method": "formula-based",
            "base_unit": "Bag",
            "base_unit_weight": 25.0,
            "derived_unit": "Piece",
            "weight_per_derived_unit": 21.0,
            "derived_value_per_base": None,
            "output_type": None,
            "output_units_covered": None,
            "loss_percent": 5.0,
        },
        {
            "type_code": "RMT-002",
            "type_name": "Cap",
            "conversion_method": "direct-value",
            "base_unit": "Box",
            "base_unit_weight": None,
            "derived_unit": "Piece",
            "weight_per_derived_unit": None,
            "derived_value_per_base": 6930.0,
            "output_type": None,
            "output_units_covered": None,
            "loss_percent": 0.0,
        },
        {
            "type_code": "RMT-003",
            "type_name": "Label",
            "conversion_method": "output-coverage",
            "base_unit": "Roll",
            "base_unit_weight": None,
            "derived_unit": None,
            "weight_per_derived_unit": None,
            "derived_value_per_base": None,
            "output_type": "Bottle",
            "output_units_covered": 2500.0,
            "loss_percent": 0.0,
        },
    ]
    ids: Dict[str, UUID] = {}
    for params in types:
        conv = conversion_value(
            TypeConversion(
                conversion_method=params["conversion_method"],
                base_unit_weight=params["base_unit_weight"],
                weight_per_derived_unit=params["weight_per_derived_unit"],
                derived_value_per_base=params["derived_value_per_base"],
                output_units_covered=params["output_units_covered"],
                loss_percent=params["loss_percent"],
            )
        )
        values = dict(params, conversion_value=conv, usable_units=usable_units(conv, params["loss_percent"]))
        ids[params["type_code"]] = await _upsert_returning_id(
            session,
            "SELECT id FROM raw_material_types WHERE type_code = :type_code",
            """
            INSERT INTO raw_material_types (
                type_code, type_name, conversion_method, base_unit, base_unit_weight, derived_unit,
                weight_per_derived_unit, derived_value_per_base, output_type, output_units_covered,
                conversion_value, loss_percent, usable_units
            )
            VALUES (
                :type_code, :type_name, :conversion_method, :base_unit, :base_unit_weight, :derived_unit,
                :weight_per_derived_unit, :derived_value_per_base, :output_type, :output_units_covered,
                :conversion_value, :loss_percent, :usable_units
            )
            RETURNING id
            """,
            values,
        )
    return ids


async def _seed_raw_materials(
    session: AsyncSession, types: Dict[str, UUID], uoms: Dict[str, UUID]
) -> Dict[str, UUID]:
    materials = [
        ("RM-001", "PET Preform 21g", "RMT-001", "KG", 200),
        ("RM-002", "Cap 28mm Blue", "RMT-002", "BOX", 50),
        ("RM-003", "Label 500ml Wrap", "RMT-003", "ROLL", 80),
    ]
    ids: Dict[str, UUID] = {}
    for code, name, type_code, uom_code, stock in materials:
        ids[code] = await _upsert_returning_id(
            session,
            "SELECT id FROM raw_materials WHERE material_code = :code",
            """
            INSERT INTO raw_materials (material_code, material_name, type_id, uom_id, current_stock)
            VALUES (:code, :name, :type_id, :uom_id, :stock)
            RETURNING id
            """,
            {
                "code": code,
                "name": name,
                "type_id": str(types[type_code]),
                "uom_id": str(uoms[uom_code]),
                "stock": stock,
            },
        )
    return ids


async def _seed_product_and_bom(
    session: AsyncSession, materials: Dict[str, UUID], uoms: Dict[str, UUID]
) -> None:
    """
    Seed a 500ml bottle product packed 12 per case, needing one preform,
    one cap and one label per bottle.
    """
    product_id = await _upsert_returning_id(
        session,
        "SELECT id FROM products WHERE product_code = :code",
        """
        INSERT INTO products (
            product_code, product_name, sku_code, base_unit, derived_unit, conversion_method,
            derived_value_per_base, usable_derived_units, uom_id
        )
        VALUES (:code, :name, :sku, 'Case', 'Bottle', 'direct-value', 12, 12, :uom_id)
        RETURNING id
        """,
        {"code": "FG-500ML", "name": "Water 500ml", "sku": "WTR-500", "uom_id": str(uoms["CASE"])},
    )

    res = await session.execute(
        text("SELECT count(*) FROM product_bom WHERE product_id = :pid AND record_status = 1"),
        {"pid": str(product_id)},
    )
    if res.scalar_one() > 0:
        return

    for code, uom_code in (("RM-001", "KG"), ("RM-002", "BOX"), ("RM-003", "ROLL")):
        await session.execute(
            text(
                """
                INSERT INTO product_bom (product_id, raw_material_id, quantity_required, uom_id)
                VALUES (:pid, :rm, 1, :uom)
                """
            ),
            {"pid": str(product_id), "rm": str(materials[code]), "uom": str(uoms[uom_code])},
        )


async def _seed_admin_user(session: AsyncSession, role_ids: Dict[str, UUID]) -> None:
    settings = get_app_settings()
    if not settings.SEED_ADMIN_EMAIL or not settings.SEED_ADMIN_PASSWORD:
        return

    email = settings.SEED_ADMIN_EMAIL.lower()
    res = await session.execute(text("SELECT id FROM users WHERE email = :email"), {"email": email})
    row = res.first()
    if row:
        user_id = row[0]
    else:
        inserted = await session.execute(
            text(
                """
                INSERT INTO users (email, full_name, hashed_password, is_active, is_superadmin)
                VALUES (:email, 'Administrator', :pwd, true, true)
                RETURNING id
                """
            ),
            {"email": email, "pwd": hash_password(settings.SEED_ADMIN_PASSWORD)},
        )
        user_id = inserted.scalar_one()
        logger.info("Seeded admin user %s", email)

    await session.execute(
        text(
            """
            INSERT INTO user_roles (user_id, role_id)
            VALUES (:uid, :rid)
            ON CONFLICT ON CONSTRAINT uq_user_roles_user_role DO NOTHING
            """
        ),
        {"uid": str(user_id), "rid": str(role_ids["admin"])},
    )


# PUBLIC_INTERFACE
def main() -> None:
    """Entrypoint to run the asynchronous seeding."""
    asyncio.run(seed_all())


if __name__ == "__main__":
    main()
