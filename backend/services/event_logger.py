"""
LIGHT MANAGEMENT - Journal d'audit

Une entrée par action sensible: lot importé, document exporté,
mouvement de stock, suppression en cascade.
"""

from typing import Optional

from config import db, new_id, now_iso


async def log_event(
    action: str,
    entity_type: str,
    entity_id: str = "",
    user: str = "system",
    details: Optional[dict] = None,
    related: Optional[dict] = None
) -> str:
    """
    Ajoute une entrée à event_log.

    Args:
        action: import_batch, export_document, stock_deduct, stock_restore, stock_revert_failed, client_delete
        entity_type: user | client | product | commande (ou nom d'export pour un lot)
        entity_id: "" pour les actions portant sur un lot
        details: compteurs, ancien/nouveau statut...
        related: identifiants liés (produits d'une commande...)

    Returns: id de l'entrée
    """
    event_id = new_id()
    await db.event_log.insert_one({
        "id": event_id,
        "created_at": now_iso(),
        "action": action,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "user": user,
        "details": dict(details or {}),
        "related": dict(related or {}),
    })
    return event_id
