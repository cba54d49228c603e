"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  LIGHT MANAGEMENT - Routes Clients                                           ║
║                                                                              ║
║  CRUD + import/export XML (racine <clients>)                                 ║
║  Suppression d'un client = suppression du compte utilisateur rattaché        ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pymongo.errors import DuplicateKeyError
import logging

from config import db, new_id, now_iso
from models import ClientCreate, ClientUpdate
from routes.xml_transfer import run_import, xml_download
from services.event_logger import log_event
from services.permissions import require_permission

router = APIRouter(prefix="/clients", tags=["Clients"])
logger = logging.getLogger("clients")


@router.get("")
async def list_clients(user: dict = Depends(require_permission("clients.view"))):
    return await db.clients.find({}, {"_id": 0}).sort("reference", 1).to_list(1000)


@router.get("/export")
async def export_clients(user: dict = Depends(require_permission("clients.transfer"))):
    return await xml_download("clients", "clients.xml", user)


@router.post("/import", status_code=201)
async def import_clients(
    file: UploadFile = File(...),
    user: dict = Depends(require_permission("clients.transfer"))
):
    return await run_import("clients", file, user)


@router.get("/{client_id}")
async def get_client(
    client_id: str,
    user: dict = Depends(require_permission("clients.view"))
):
    client = await db.clients.find_one({"id": client_id}, {"_id": 0})
    if not client:
        raise HTTPException(status_code=404, detail="Client not found")
    return client


@router.post("", status_code=201)
async def create_client(
    data: ClientCreate,
    user: dict = Depends(require_permission("clients.manage"))
):
    """
    Création d'un client

    RÈGLE: reference unique
    """
    if await db.clients.find_one({"reference": data.reference}):
        raise HTTPException(status_code=400, detail="Client already exists")

    client = data.model_dump(mode="json", exclude_none=True)
    client.update({"id": new_id(), "created_at": now_iso(), "updated_at": now_iso()})

    try:
        await db.clients.insert_one(client)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="Client already exists")

    client.pop("_id", None)
    return client


@router.put("/{client_id}")
async def update_client(
    client_id: str,
    data: ClientUpdate,
    user: dict = Depends(require_permission("clients.manage"))
):
    if not await db.clients.find_one({"id": client_id}):
        raise HTTPException(status_code=404, detail="Client not found")

    update_data = data.model_dump(mode="json", exclude_none=True)
    update_data["updated_at"] = now_iso()

    try:
        await db.clients.update_one({"id": client_id}, {"$set": update_data})
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="Client already exists")

    return await db.clients.find_one({"id": client_id}, {"_id": 0})


@router.delete("/{client_id}")
async def delete_client(
    client_id: str,
    user: dict = Depends(require_permission("clients.manage"))
):
    """Supprime le client et le compte utilisateur qui lui est rattaché"""
    result = await db.clients.delete_one({"id": client_id})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Client not found")

    users_result = await db.users.delete_many({"client_id": client_id})
    logger.info(
        f"[CLIENT] Deleted {client_id} and {users_result.deleted_count} linked user(s)"
    )
    await log_event(
        action="client_delete",
        entity_type="client",
        entity_id=client_id,
        user=user.get("username", "system"),
        details={"users_deleted": users_result.deleted_count}
    )

    return {"message": "Client and associated user account deleted successfully"}
