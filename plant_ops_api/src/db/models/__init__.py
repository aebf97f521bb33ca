"""
ORM models for security, master data, inventory movements and production.

Importing this package ensures model classes are registered with the Base
metadata for Alembic and runtime usage.
"""

from .security import (  # noqa: F401
    User,
    Role,
    UserRole,
    RolePermission,
)
from .master_data import (  # noqa: F401
    Uom,
    RawMaterialType,
    RawMaterial,
    Product,
    ProductBom,
)
from .inventory import (  # noqa: F401
    RawMaterialTransaction,
)
from .production import (  # noqa: F401
    RawMaterialIssuance,
    RawMaterialIssuanceItem,
    ProductionEntry,
    ProductionReconciliation,
    ProductionReconciliationItem,
)
