"""
LIGHT MANAGEMENT - Routes Utilisateurs (admin uniquement)
Les mots de passe ne sortent jamais: ni en liste, ni en export.
"""

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pymongo.errors import DuplicateKeyError
import logging

from config import db, new_id, now_iso
from models import UserCreate, UserUpdate
from routes.auth import SAFE_USER_PROJECTION, require_admin
from routes.xml_transfer import run_import, xml_download
from services.credentials import encode_password

router = APIRouter(prefix="/users", tags=["Users"])
logger = logging.getLogger("users")


@router.get("")
async def list_users(user: dict = Depends(require_admin)):
    return await db.users.find({}, SAFE_USER_PROJECTION).sort("username", 1).to_list(1000)


@router.get("/export")
async def export_users(user: dict = Depends(require_admin)):
    return await xml_download("users", "users.xml", user)


@router.post("/import", status_code=201)
async def import_users(
    file: UploadFile = File(...),
    user: dict = Depends(require_admin)
):
    return await run_import("users", file, user)


@router.post("", status_code=201)
async def create_user(data: UserCreate, user: dict = Depends(require_admin)):
    if await db.users.find_one({"username": data.username}):
        raise HTTPException(status_code=400, detail="User already exists")

    new_user = {
        "id": new_id(),
        "username": data.username,
        "role": data.role,
        "created_at": now_iso(),
        "updated_at": now_iso()
    }
    new_user.update(encode_password(data.password))
    if data.client_id:
        new_user["client_id"] = data.client_id

    try:
        await db.users.insert_one(new_user)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="User already exists")

    logger.info(f"[USERS] {user.get('username')} created {data.username} ({data.role})")
    return await db.users.find_one({"id": new_user["id"]}, SAFE_USER_PROJECTION)


@router.put("/{user_id}")
async def update_user(
    user_id: str,
    data: UserUpdate,
    user: dict = Depends(require_admin)
):
    """
    Mise à jour partielle

    - password fourni = ré-encodé avec le schéma courant
    - client_id "" = détache le compte de son client
    """
    if not await db.users.find_one({"id": user_id}):
        raise HTTPException(status_code=404, detail="User not found")

    update_data = data.model_dump(exclude_none=True)
    unset = {}

    if update_data.get("password"):
        update_data.update(encode_password(update_data.pop("password")))
    else:
        update_data.pop("password", None)

    if update_data.get("client_id") == "":
        update_data.pop("client_id")
        unset["client_id"] = ""

    update_data["updated_at"] = now_iso()
    operation = {"$set": update_data}
    if unset:
        operation["$unset"] = unset

    try:
        await db.users.update_one({"id": user_id}, operation)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="User already exists")

    return await db.users.find_one({"id": user_id}, SAFE_USER_PROJECTION)


@router.delete("/{user_id}")
async def delete_user(user_id: str, user: dict = Depends(require_admin)):
    result = await db.users.delete_one({"id": user_id})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="User not found")
    return {"message": "User removed"}
