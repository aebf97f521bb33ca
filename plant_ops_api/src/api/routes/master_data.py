from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.deps import get_current_active_user, get_session, require_roles
from src.repositories.inventory import StockRepository
from src.repositories.master_data import (
    ProductRepository,
    RawMaterialRepository,
    RawMaterialTypeRepository,
    UomRepository,
)
from src.schemas.inventory import RawMaterialTransactionRead, StockAdjustmentCreate
from src.schemas.master_data import (
    ProductBomLineRead,
    ProductBomReplace,
    ProductCreate,
    ProductRead,
    ProductUpdate,
    RawMaterialCreate,
    RawMaterialRead,
    RawMaterialTypeCreateRequest,
    RawMaterialTypeRead,
    RawMaterialTypeUpdate,
    RawMaterialUpdate,
    UomCreate,
    UomRead,
    UomUpdate,
)
from src.services.master_data import MasterDataService

router = APIRouter(prefix="/master-data", tags=["Master Data"])

VIEW_ROLES = ("manager", "operator", "reviewer")
MANAGE_ROLES = ("manager",)


# Units of measure

# PUBLIC_INTERFACE
@router.get(
    "/uoms",
    response_model=List[UomRead],
    summary="List units of measure",
    dependencies=[Depends(require_roles(*VIEW_ROLES))],
)
async def list_uoms(
    session: AsyncSession = Depends(get_session),
    search: Optional[str] = Query(None, description="Filter by code or name (substring)"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[UomRead]:
    rows = await UomRepository(session).list_uoms(search=search, limit=limit, offset=offset)
    return [UomRead.model_validate(r) for r in rows]


# PUBLIC_INTERFACE
@router.post(
    "/uoms",
    response_model=UomRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create unit of measure",
    dependencies=[Depends(require_roles(*MANAGE_ROLES))],
)
async def create_uom(payload: UomCreate, session: AsyncSession = Depends(get_session)) -> UomRead:
    return UomRead.model_validate(await MasterDataService(session).create_uom(payload))


# PUBLIC_INTERFACE
@router.patch(
    "/uoms/{uom_id}",
    response_model=UomRead,
    summary="Update unit of measure",
    dependencies=[Depends(require_roles(*MANAGE_ROLES))],
)
async def update_uom(
    payload: UomUpdate,
    uom_id: UUID = Path(...),
    session: AsyncSession = Depends(get_session),
) -> UomRead:
    return UomRead.model_validate(await MasterDataService(session).update_uom(uom_id, payload))


# PUBLIC_INTERFACE
@router.delete(
    "/uoms/{uom_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete unit of measure",
    dependencies=[Depends(require_roles(*MANAGE_ROLES))],
)
async def delete_uom(uom_id: UUID = Path(...), session: AsyncSession = Depends(get_session)) -> None:
    await MasterDataService(session).delete_uom(uom_id)


# Raw material types

# PUBLIC_INTERFACE
@router.get(
    "/raw-material-types",
    response_model=List[RawMaterialTypeRead],
    summary="List raw material types",
    dependencies=[Depends(require_roles(*VIEW_ROLES))],
)
async def list_raw_material_types(
    session: AsyncSession = Depends(get_session),
    search: Optional[str] = Query(None, description="Filter by code or name (substring)"),
    conversion_method: Optional[str] = Query(None, description="formula-based, direct-value or output-coverage"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[RawMaterialTypeRead]:
    rows = await RawMaterialTypeRepository(session).list_types(
        search=search, conversion_method=conversion_method, limit=limit, offset=offset
    )
    return [RawMaterialTypeRead.model_validate(r) for r in rows]


# PUBLIC_INTERFACE
@router.post(
    "/raw-material-types",
    response_model=RawMaterialTypeRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create raw material type",
    description=(
        "Create a type for one conversion method. conversion_value and usable_units "
        "are computed from the method fields and loss_percent."
    ),
    dependencies=[Depends(require_roles(*MANAGE_ROLES))],
)
async def create_raw_material_type(
    payload: RawMaterialTypeCreateRequest,
    session: AsyncSession = Depends(get_session),
) -> RawMaterialTypeRead:
    row = await MasterDataService(session).create_type(payload.root)
    return RawMaterialTypeRead.model_validate(row)


# PUBLIC_INTERFACE
@router.get(
    "/raw-material-types/{type_id}",
    response_model=RawMaterialTypeRead,
    summary="Get raw material type",
    dependencies=[Depends(require_roles(*VIEW_ROLES))],
)
async def get_raw_material_type(
    type_id: UUID = Path(...), session: AsyncSession = Depends(get_session)
) -> RawMaterialTypeRead:
    return RawMaterialTypeRead.model_validate(await MasterDataService(session).get_type(type_id))


# PUBLIC_INTERFACE
@router.patch(
    "/raw-material-types/{type_id}",
    response_model=RawMaterialTypeRead,
    summary="Update raw material type",
    dependencies=[Depends(require_roles(*MANAGE_ROLES))],
)
async def update_raw_material_type(
    payload: RawMaterialTypeUpdate,
    type_id: UUID = Path(...),
    session: AsyncSession = Depends(get_session),
) -> RawMaterialTypeRead:
    return RawMaterialTypeRead.model_validate(await MasterDataService(session).update_type(type_id, payload))


# PUBLIC_INTERFACE
@router.delete(
    "/raw-material-types/{type_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete raw material type",
    dependencies=[Depends(require_roles(*MANAGE_ROLES))],
)
async def delete_raw_material_type(type_id: UUID = Path(...), session: AsyncSession = Depends(get_session)) -> None:
    await MasterDataService(session).delete_type(type_id)


# Raw materials

# PUBLIC_INTERFACE
@router.get(
    "/raw-materials",
    response_model=List[RawMaterialRead],
    summary="List raw materials",
    dependencies=[Depends(require_roles(*VIEW_ROLES))],
)
async def list_raw_materials(
    session: AsyncSession = Depends(get_session),
    search: Optional[str] = Query(None, description="Filter by code or name (substring)"),
    type_id: Optional[UUID] = Query(None, description="Filter by raw material type"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[RawMaterialRead]:
    rows = await RawMaterialRepository(session).list_materials(
        search=search, type_id=type_id, limit=limit, offset=offset
    )
    return [RawMaterialRead.model_validate(r) for r in rows]


# PUBLIC_INTERFACE
@router.post(
    "/raw-materials",
    response_model=RawMaterialRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create raw material",
    description="Create a raw material. material_code is generated (RM-###) when omitted.",
    dependencies=[Depends(require_roles(*MANAGE_ROLES))],
)
async def create_raw_material(
    payload: RawMaterialCreate,
    session: AsyncSession = Depends(get_session),
    user=Depends(get_current_active_user),
) -> RawMaterialRead:
    row = await MasterDataService(session).create_material(payload, user_id=user.id)
    return RawMaterialRead.model_validate(row)


# PUBLIC_INTERFACE
@router.get(
    "/raw-materials/{material_id}",
    response_model=RawMaterialRead,
    summary="Get raw material",
    dependencies=[Depends(require_roles(*VIEW_ROLES))],
)
async def get_raw_material(material_id: UUID = Path(...), session: AsyncSession = Depends(get_session)) -> RawMaterialRead:
    return RawMaterialRead.model_validate(await MasterDataService(session).get_material(material_id))


# PUBLIC_INTERFACE
@router.patch(
    "/raw-materials/{material_id}",
    response_model=RawMaterialRead,
    summary="Update raw material",
    dependencies=[Depends(require_roles(*MANAGE_ROLES))],
)
async def update_raw_material(
    payload: RawMaterialUpdate,
    material_id: UUID = Path(...),
    session: AsyncSession = Depends(get_session),
) -> RawMaterialRead:
    return RawMaterialRead.model_validate(await MasterDataService(session).update_material(material_id, payload))


# PUBLIC_INTERFACE
@router.delete(
    "/raw-materials/{material_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete raw material",
    dependencies=[Depends(require_roles(*MANAGE_ROLES))],
)
async def delete_raw_material(material_id: UUID = Path(...), session: AsyncSession = Depends(get_session)) -> None:
    await MasterDataService(session).delete_material(material_id)


# PUBLIC_INTERFACE
@router.get(
    "/raw-materials/{material_id}/transactions",
    response_model=List[RawMaterialTransactionRead],
    summary="List stock movements of a raw material",
    description="Issues, returns, receipts and adjustments, newest first.",
    dependencies=[Depends(require_roles(*VIEW_ROLES))],
)
async def list_raw_material_transactions(
    material_id: UUID = Path(...),
    session: AsyncSession = Depends(get_session),
    transaction_type: Optional[str] = Query(None, description="issue, return, adjustment or receipt"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[RawMaterialTransactionRead]:
    await MasterDataService(session).get_material(material_id)
    rows = await StockRepository(session).list_transactions(
        raw_material_id=material_id, transaction_type=transaction_type, limit=limit, offset=offset
    )
    return [RawMaterialTransactionRead.model_validate(r) for r in rows]


# PUBLIC_INTERFACE
@router.post(
    "/raw-materials/{material_id}/transactions",
    response_model=RawMaterialTransactionRead,
    status_code=status.HTTP_201_CREATED,
    summary="Book a stock receipt or adjustment",
    dependencies=[Depends(require_roles(*MANAGE_ROLES))],
)
async def create_raw_material_transaction(
    payload: StockAdjustmentCreate,
    material_id: UUID = Path(...),
    session: AsyncSession = Depends(get_session),
    user=Depends(get_current_active_user),
) -> RawMaterialTransactionRead:
    txn = await MasterDataService(session).adjust_stock(material_id, payload, user_id=user.id)
    return RawMaterialTransactionRead.model_validate(txn)


# Products

# PUBLIC_INTERFACE
@router.get(
    "/products",
    response_model=List[ProductRead],
    summary="List products",
    dependencies=[Depends(require_roles(*VIEW_ROLES))],
)
async def list_products(
    session: AsyncSession = Depends(get_session),
    search: Optional[str] = Query(None, description="Filter by code, name or SKU (substring)"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[ProductRead]:
    rows = await ProductRepository(session).list_products(search=search, limit=limit, offset=offset)
    return [ProductRead.model_validate(r) for r in rows]


# PUBLIC_INTERFACE
@router.post(
    "/products",
    response_model=ProductRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create product",
    dependencies=[Depends(require_roles(*MANAGE_ROLES))],
)
async def create_product(payload: ProductCreate, session: AsyncSession = Depends(get_session)) -> ProductRead:
    return ProductRead.model_validate(await MasterDataService(session).create_product(payload))


# PUBLIC_INTERFACE
@router.get(
    "/products/{product_id}",
    response_model=ProductRead,
    summary="Get product",
    dependencies=[Depends(require_roles(*VIEW_ROLES))],
)
async def get_product(product_id: UUID = Path(...), session: AsyncSession = Depends(get_session)) -> ProductRead:
    return ProductRead.model_validate(await MasterDataService(session).get_product(product_id))


# PUBLIC_INTERFACE
@router.patch(
    "/products/{product_id}",
    response_model=ProductRead,
    summary="Update product",
    dependencies=[Depends(require_roles(*MANAGE_ROLES))],
)
async def update_product(
    payload: ProductUpdate,
    product_id: UUID = Path(...),
    session: AsyncSession = Depends(get_session),
) -> ProductRead:
    return ProductRead.model_validate(await MasterDataService(session).update_product(product_id, payload))


# PUBLIC_INTERFACE
@router.delete(
    "/products/{product_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete product",
    dependencies=[Depends(require_roles(*MANAGE_ROLES))],
)
async def delete_product(product_id: UUID = Path(...), session: AsyncSession = Depends(get_session)) -> None:
    await MasterDataService(session).delete_product(product_id)


# PUBLIC_INTERFACE
@router.get(
    "/products/{product_id}/bom",
    response_model=List[ProductBomLineRead],
    summary="List BOM lines of a product",
    dependencies=[Depends(require_roles(*VIEW_ROLES))],
)
async def list_product_bom(
    product_id: UUID = Path(...), session: AsyncSession = Depends(get_session)
) -> List[ProductBomLineRead]:
    await MasterDataService(session).get_product(product_id)
    rows = await ProductRepository(session).list_bom(product_id)
    return [ProductBomLineRead.model_validate(r) for r in rows]


# PUBLIC_INTERFACE
@router.put(
    "/products/{product_id}/bom",
    response_model=List[ProductBomLineRead],
    summary="Replace BOM of a product",
    description="Replace every BOM line of the product with the given lines.",
    dependencies=[Depends(require_roles(*MANAGE_ROLES))],
)
async def replace_product_bom(
    payload: ProductBomReplace,
    product_id: UUID = Path(...),
    session: AsyncSession = Depends(get_session),
) -> List[ProductBomLineRead]:
    rows = await MasterDataService(session).replace_bom(product_id, payload)
    return [ProductBomLineRead.model_validate(r) for r in rows]
