"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  LIGHT MANAGEMENT - Réconciliation Commande / Stock                          ║
║                                                                              ║
║  SEUL CE MODULE modifie products.stock                                       ║
║                                                                              ║
║  RÈGLES DE TRANSITION (seul le statut littéral "VALIDE" compte):             ║
║  - création VALIDE avec lignes        -> déduction (tout ou rien)            ║
║  - X != VALIDE  ->  VALIDE            -> déduction (tout ou rien)            ║
║  - VALIDE       ->  X != VALIDE       -> restitution des lignes stockées     ║
║  - VALIDE -> VALIDE, X -> Y           -> aucun mouvement                     ║
║                                                                              ║
║  INVARIANTS:                                                                 ║
║  - stock jamais négatif (décrément conditionnel atomique)                    ║
║  - une seule déduction par passage en VALIDE                                 ║
║  - échec sur une ligne = compensation des lignes déjà déduites               ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
from typing import Any, Dict, List, Optional

from config import db, is_valid_id
from models.commande import CommandeStatut
from services.event_logger import log_event

logger = logging.getLogger("stock_reconciler")

VALIDE = CommandeStatut.VALIDE.value

DEDUCT = "deduct"
RESTORE = "restore"


# ════════════════════════════════════════════════════════════════════════════
# ERREURS MÉTIER
# ════════════════════════════════════════════════════════════════════════════

class ReconcilerError(Exception):
    """Erreur métier remontée telle quelle à l'appelant"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message}


class InsufficientStockError(ReconcilerError):
    def __init__(self, product_name: str, available: int, requested: int, hint: str = ""):
        message = (
            f'Insufficient stock for product "{product_name}". '
            f"Available: {available}, Requested: {requested}."
        )
        if hint:
            message = f"{message} {hint}"
        super().__init__(message)
        self.product_name = product_name
        self.available = available
        self.requested = requested

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "productName": self.product_name,
            "available": self.available,
            "requested": self.requested
        }


class ProductNotFoundError(ReconcilerError):
    def __init__(self, produit_id: str):
        super().__init__(f"Product not found: {produit_id}")
        self.produit_id = produit_id


class ClientNotFoundError(ReconcilerError):
    def __init__(self, reference: str):
        super().__init__(f"Client not found with reference: {reference}")
        self.reference = reference


# ════════════════════════════════════════════════════════════════════════════
# TRANSITIONS
# ════════════════════════════════════════════════════════════════════════════

def stock_transition(previous: Optional[str], new: Optional[str]) -> Optional[str]:
    """
    Mouvement de stock induit par un changement de statut.

    previous=None signifie création.
    Returns: "deduct", "restore" ou None
    """
    was_valide = previous == VALIDE
    will_be_valide = new == VALIDE
    if will_be_valide and not was_valide:
        return DEDUCT
    if was_valide and not will_be_valide:
        return RESTORE
    return None


# ════════════════════════════════════════════════════════════════════════════
# RÉSOLUTION DES RÉFÉRENCES
# ════════════════════════════════════════════════════════════════════════════

async def resolve_client_reference(value: Optional[str], strict: bool = False) -> Optional[str]:
    """
    Référence client -> identifiant client.

    1. un client porte cette référence -> son id
    2. la valeur est déjà un identifiant valide -> acceptée telle quelle
    3. sinon: None (import) ou ClientNotFoundError (strict, API)
    """
    if not value:
        return None

    client = await db.clients.find_one({"reference": value}, {"_id": 0, "id": 1})
    if client:
        return client["id"]

    if is_valid_id(value):
        return value

    if strict:
        raise ClientNotFoundError(value)

    logger.warning(f"[RESOLVE] Client not found for reference: {value}")
    return None


def resolve_opportunity(value: Optional[str]) -> Optional[str]:
    """Une opportunité n'est gardée que si c'est déjà un identifiant valide"""
    return value if is_valid_id(value) else None


# ════════════════════════════════════════════════════════════════════════════
# MOUVEMENTS DE STOCK
# ════════════════════════════════════════════════════════════════════════════

def quantities_by_product(lignes: List[dict]) -> Dict[str, int]:
    """Quantités cumulées par produit, dans l'ordre des lignes"""
    totals: Dict[str, int] = {}
    for ligne in lignes:
        produit_id = ligne["produit_id"]
        totals[produit_id] = totals.get(produit_id, 0) + ligne["quantite"]
    return totals


async def _require_stock(produit_id: str, quantite: int, hint: str) -> dict:
    product = await db.products.find_one(
        {"id": produit_id},
        {"_id": 0, "name": 1, "stock": 1}
    )
    if not product:
        raise ProductNotFoundError(produit_id)
    if product.get("stock", 0) < quantite:
        raise InsufficientStockError(
            product.get("name", ""),
            product.get("stock", 0),
            quantite,
            hint
        )
    return product


async def check_stock(lignes: List[dict], hint: str = "") -> None:
    """
    Vérifie que le stock courant couvre la commande.
    Les lignes d'un même produit sont cumulées. Aucune écriture.

    Raises:
        ProductNotFoundError, InsufficientStockError
    """
    for produit_id, quantite in quantities_by_product(lignes).items():
        await _require_stock(produit_id, quantite, hint)


async def _increment(produit_id: str, quantite: int) -> bool:
    result = await db.products.update_one(
        {"id": produit_id},
        {"$inc": {"stock": quantite}}
    )
    return result.matched_count > 0


async def deduct_stock(lignes: List[dict], hint: str = "") -> None:
    """
    Déduit toutes les lignes, ou aucune.

    Un décrément conditionnel atomique par produit (stock >= quantité cumulée).
    Si un produit échoue (commande concurrente entre temps), les produits
    déjà déduits sont recrédités avant de lever l'erreur.
    """
    await check_stock(lignes, hint)

    applied: Dict[str, int] = {}
    for produit_id, quantite in quantities_by_product(lignes).items():
        result = await db.products.update_one(
            {"id": produit_id, "stock": {"$gte": quantite}},
            {"$inc": {"stock": -quantite}}
        )
        if result.modified_count == 1:
            applied[produit_id] = quantite
            continue

        for done_id, done_quantite in applied.items():
            await _increment(done_id, done_quantite)
        logger.warning(
            f"[STOCK] Concurrent deduction on {produit_id}, "
            f"{len(applied)} product(s) compensated"
        )
        product = await _require_stock(produit_id, quantite, hint)
        # stock recrédité entre temps: la commande reste refusée
        raise InsufficientStockError(
            product.get("name", ""),
            product.get("stock", 0),
            quantite,
            hint
        )


async def restore_stock(lignes: List[dict]) -> int:
    """
    Recrédite les lignes. Un produit supprimé depuis est ignoré.

    Returns: nombre de lignes recréditées
    """
    restored = 0
    for ligne in lignes:
        if await _increment(ligne["produit_id"], ligne["quantite"]):
            restored += 1
        else:
            logger.warning(f"[STOCK] Product {ligne['produit_id']} no longer exists, restore skipped")
    return restored


# ════════════════════════════════════════════════════════════════════════════
# POINTS D'ENTRÉE (création / mise à jour de commande)
# ════════════════════════════════════════════════════════════════════════════

async def apply_create(commande: dict, user: str = "system") -> Optional[str]:
    """
    Applique l'effet stock d'une création de commande.
    À appeler AVANT l'insertion: une erreur annule la création.

    Returns: "deduct" ou None
    """
    lignes = commande.get("lignes") or []
    if stock_transition(None, commande.get("statut")) != DEDUCT or not lignes:
        return None

    await deduct_stock(lignes, hint='Please change the order status to "EN_ATTENTE" instead.')

    logger.info(f"[STOCK] Order {commande.get('reference')} created VALIDE: {len(lignes)} line(s) deducted")
    await log_event(
        action="stock_deduct",
        entity_type="commande",
        entity_id=commande.get("id", ""),
        user=user,
        details={"statut": commande.get("statut"), "lignes": len(lignes)},
        related={"produits": [l["produit_id"] for l in lignes]}
    )
    return DEDUCT


def _moved_lines(existing: dict, changes: dict, movement: Optional[str]) -> List[dict]:
    """Lignes concernées par le mouvement d'une mise à jour"""
    if movement == DEDUCT:
        lignes = changes.get("lignes")
        if lignes is None:
            lignes = existing.get("lignes")
        return lignes or []
    if movement == RESTORE:
        return existing.get("lignes") or []
    return []


async def apply_update(existing: dict, changes: dict, user: str = "system") -> Optional[str]:
    """
    Applique l'effet stock d'une mise à jour.
    À appeler AVANT l'écriture: une erreur annule la mise à jour.

    - statut absent des changements = statut inchangé
    - déduction: lignes mises à jour si fournies, sinon lignes stockées
    - restitution: TOUJOURS les lignes stockées (celles qui ont été déduites)

    Returns: "deduct", "restore" ou None
    """
    previous = existing.get("statut")
    new = changes.get("statut", previous)
    movement = stock_transition(previous, new)
    lignes = _moved_lines(existing, changes, movement)
    if not lignes:
        return None

    if movement == DEDUCT:
        await deduct_stock(lignes, hint='Please keep the order status as "EN_ATTENTE" or "BROUILLON".')
    else:
        await restore_stock(lignes)

    logger.info(
        f"[STOCK] Order {existing.get('reference')} {previous} -> {new}: "
        f"{movement} {len(lignes)} line(s)"
    )
    await log_event(
        action=f"stock_{movement}",
        entity_type="commande",
        entity_id=existing.get("id", ""),
        user=user,
        details={"old_statut": previous, "new_statut": new, "lignes": len(lignes)},
        related={"produits": [l["produit_id"] for l in lignes]}
    )
    return movement


async def revert_update(existing: dict, changes: dict, movement: Optional[str], user: str = "system") -> None:
    """
    Annule le mouvement d'apply_update quand l'écriture de la commande échoue.

    - déduction annulée = lignes recréditées
    - restitution annulée = lignes stockées re-déduites (conditionnel,
      un échec est journalisé et la commande garde son stock restitué)
    """
    lignes = _moved_lines(existing, changes, movement)
    if not lignes:
        return

    if movement == DEDUCT:
        await restore_stock(lignes)
    else:
        try:
            await deduct_stock(lignes)
        except ReconcilerError as e:
            logger.error(f"[STOCK] Order {existing.get('reference')}: restore not reverted: {e.message}")
            await log_event(
                action="stock_revert_failed",
                entity_type="commande",
                entity_id=existing.get("id", ""),
                user=user,
                details={"movement": movement, "error": e.message}
            )
            return

    logger.info(f"[STOCK] Order {existing.get('reference')}: {movement} reverted")
