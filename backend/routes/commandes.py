"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  LIGHT MANAGEMENT - Routes Commandes                                         ║
║                                                                              ║
║  CRUD + import/export XML (racine <commandes>, fichier commandes.xml)        ║
║                                                                              ║
║  Une commande = lignes produit + totaux + conditions                         ║
║  - passage en VALIDE = déduction du stock (tout ou rien)                     ║
║  - sortie de VALIDE  = restitution du stock                                  ║
║  - role client: ne voit que ses propres commandes                            ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pymongo.errors import DuplicateKeyError
import logging

from config import db, new_id, now_iso
from models import CommandeCreate, CommandeUpdate
from routes.xml_transfer import run_import, xml_download
from services.permissions import require_permission
from services.stock_reconciler import (
    ReconcilerError,
    apply_create,
    apply_update,
    resolve_client_reference,
    resolve_opportunity,
    restore_stock,
    revert_update,
)

router = APIRouter(prefix="/orders", tags=["Commandes"])
logger = logging.getLogger("commandes")


def _is_client(user: dict) -> bool:
    return user.get("role") == "client"


def _owns(user: dict, commande: dict) -> bool:
    return bool(user.get("client_id")) and commande.get("client_id") == user.get("client_id")


async def _expand(commande: dict) -> dict:
    """Ajoute le client (raison sociale) et les produits des lignes"""
    if commande.get("client_id"):
        commande["client"] = await db.clients.find_one(
            {"id": commande["client_id"]},
            {"_id": 0, "id": 1, "reference": 1, "raison_sociale": 1}
        )

    for ligne in commande.get("lignes") or []:
        ligne["produit"] = await db.products.find_one(
            {"id": ligne.get("produit_id")},
            {"_id": 0, "id": 1, "name": 1, "price": 1}
        )

    return commande


async def _resolve_references(payload: dict) -> None:
    """client_id (référence ou id) et opportunite_id, en place"""
    if "client_id" in payload:
        payload["client_id"] = await resolve_client_reference(payload["client_id"], strict=True)

    if "opportunite_id" in payload:
        opportunite_id = resolve_opportunity(payload["opportunite_id"])
        if opportunite_id:
            payload["opportunite_id"] = opportunite_id
        else:
            payload.pop("opportunite_id")


# ==================== LISTE / DÉTAIL ====================

@router.get("")
async def list_commandes(user: dict = Depends(require_permission("orders.view"))):
    """
    Liste des commandes

    RÈGLE: un compte client ne voit que les commandes de son client
    """
    query = {}
    if _is_client(user):
        if not user.get("client_id"):
            return []
        query["client_id"] = user["client_id"]

    return await db.commandes.find(query, {"_id": 0}).sort("created_at", -1).to_list(1000)


@router.get("/export")
async def export_commandes(user: dict = Depends(require_permission("orders.transfer"))):
    return await xml_download("commandes", "commandes.xml", user)


@router.post("/import", status_code=201)
async def import_commandes(
    file: UploadFile = File(...),
    user: dict = Depends(require_permission("orders.transfer"))
):
    """Import XML: aucun mouvement de stock, quel que soit le statut"""
    return await run_import("commandes", file, user)


@router.get("/{commande_id}")
async def get_commande(
    commande_id: str,
    user: dict = Depends(require_permission("orders.view"))
):
    commande = await db.commandes.find_one({"id": commande_id}, {"_id": 0})
    if not commande:
        raise HTTPException(status_code=404, detail="Order not found")

    if _is_client(user) and not _owns(user, commande):
        raise HTTPException(status_code=403, detail="Accès refusé à cette commande")

    return await _expand(commande)


# ==================== CRÉATION / MISE À JOUR ====================

@router.post("", status_code=201)
async def create_commande(
    data: CommandeCreate,
    user: dict = Depends(require_permission("orders.manage"))
):
    """
    Crée une commande

    - client_id: identifiant OU référence client (inconnu = 400)
    - statut VALIDE avec lignes: stock déduit avant l'insertion,
      stock insuffisant = 400 et rien n'est créé
    """
    if await db.commandes.find_one({"reference": data.reference}):
        raise HTTPException(status_code=400, detail="Order already exists")

    commande = data.model_dump(mode="json", exclude_none=True)
    try:
        await _resolve_references(commande)
    except ReconcilerError as e:
        raise HTTPException(status_code=400, detail=e.to_dict())

    commande.setdefault("date_creation", now_iso())
    commande.update({"id": new_id(), "created_at": now_iso(), "updated_at": now_iso()})

    username = user.get("username", "system")
    try:
        movement = await apply_create(commande, user=username)
    except ReconcilerError as e:
        logger.info(f"[ORDER] Creation of {data.reference} refused: {e.message}")
        raise HTTPException(status_code=400, detail=e.to_dict())

    try:
        await db.commandes.insert_one(commande)
    except DuplicateKeyError:
        if movement:
            await restore_stock(commande["lignes"])
        raise HTTPException(status_code=400, detail="Order already exists")

    commande.pop("_id", None)
    logger.info(f"[ORDER] Created {commande['reference']} ({commande['statut']}) by {username}")
    return commande


@router.put("/{commande_id}")
async def update_commande(
    commande_id: str,
    data: CommandeUpdate,
    user: dict = Depends(require_permission("orders.manage"))
):
    """
    Mise à jour partielle

    Le mouvement de stock dépend uniquement du franchissement de VALIDE.
    Modifier les lignes d'une commande déjà VALIDE ne touche pas au stock.
    """
    existing = await db.commandes.find_one({"id": commande_id}, {"_id": 0})
    if not existing:
        raise HTTPException(status_code=404, detail="Order not found")

    changes = data.model_dump(mode="json", exclude_none=True)

    if "reference" in changes:
        clash = await db.commandes.find_one(
            {"reference": changes["reference"], "id": {"$ne": commande_id}}
        )
        if clash:
            raise HTTPException(status_code=400, detail="Order already exists")

    username = user.get("username", "system")
    try:
        await _resolve_references(changes)
        movement = await apply_update(existing, changes, user=username)
    except ReconcilerError as e:
        raise HTTPException(status_code=400, detail=e.to_dict())

    changes["updated_at"] = now_iso()
    try:
        await db.commandes.update_one({"id": commande_id}, {"$set": changes})
    except DuplicateKeyError:
        if movement:
            await revert_update(existing, changes, movement, user=username)
        raise HTTPException(status_code=400, detail="Order already exists")

    return await db.commandes.find_one({"id": commande_id}, {"_id": 0})


@router.delete("/{commande_id}")
async def delete_commande(
    commande_id: str,
    user: dict = Depends(require_permission("orders.manage"))
):
    """Supprime la commande (le stock n'est pas recrédité)"""
    result = await db.commandes.delete_one({"id": commande_id})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Order not found")
    return {"message": "Order deleted successfully"}
