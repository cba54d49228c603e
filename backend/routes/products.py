"""
LIGHT MANAGEMENT - Routes Produits
CRUD + import/export XML (racine <products>)
"""

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pymongo.errors import DuplicateKeyError

from config import db, new_id, now_iso
from models import ProductCreate, ProductUpdate
from routes.xml_transfer import run_import, xml_download
from services.permissions import require_permission

router = APIRouter(prefix="/products", tags=["Products"])


@router.get("")
async def list_products():
    """Catalogue public"""
    return await db.products.find({}, {"_id": 0}).sort("name", 1).to_list(1000)


@router.get("/export")
async def export_products(user: dict = Depends(require_permission("products.transfer"))):
    return await xml_download("products", "products.xml", user)


@router.post("/import", status_code=201)
async def import_products(
    file: UploadFile = File(...),
    user: dict = Depends(require_permission("products.transfer"))
):
    return await run_import("products", file, user)


@router.post("", status_code=201)
async def create_product(
    data: ProductCreate,
    user: dict = Depends(require_permission("products.manage"))
):
    if await db.products.find_one({"name": data.name}):
        raise HTTPException(status_code=400, detail="Product already exists")

    product = data.model_dump()
    product.update({"id": new_id(), "created_at": now_iso(), "updated_at": now_iso()})

    try:
        await db.products.insert_one(product)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="Product already exists")

    product.pop("_id", None)
    return product


@router.put("/{product_id}")
async def update_product(
    product_id: str,
    data: ProductUpdate,
    user: dict = Depends(require_permission("products.manage"))
):
    if not await db.products.find_one({"id": product_id}):
        raise HTTPException(status_code=404, detail="Product not found")

    update_data = data.model_dump(exclude_none=True)
    update_data["updated_at"] = now_iso()

    try:
        await db.products.update_one({"id": product_id}, {"$set": update_data})
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="Product already exists")

    return await db.products.find_one({"id": product_id}, {"_id": 0})


@router.delete("/{product_id}")
async def delete_product(
    product_id: str,
    user: dict = Depends(require_permission("products.manage"))
):
    result = await db.products.delete_one({"id": product_id})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Product not found")
    return {"message": "Product removed", "deleted_id": product_id}
