"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  LIGHT MANAGEMENT - Export XML                                               ║
║                                                                              ║
║  Documents stockés -> structure attendue par le codec -> XML validé          ║
║                                                                              ║
║  RÈGLES:                                                                     ║
║  - identifiants en chaîne, dates en ISO-8601                                 ║
║  - collections imbriquées sous un élément singulier                          ║
║    (contacts/contact, contrats/contrat, lignes/ligne)                        ║
║  - champ absent = élément omis (jamais d'élément vide)                       ║
║  - mots de passe JAMAIS exportés                                             ║
║  - document invalide = erreur serveur, rien n'est renvoyé                    ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
from typing import Any, Dict, List, Optional

from config import db, to_iso
from services.event_logger import log_event
from services.xml_codec import encode
from services.xml_validator import validate_xml

logger = logging.getLogger("export_assembler")


class ExportValidationError(Exception):
    def __init__(self, message: str, errors: List[Dict[str, str]]):
        super().__init__(message)
        self.message = message
        self.errors = errors


def _id(value) -> Optional[str]:
    return str(value) if value is not None else None


def _sub(source: Optional[dict], mapping: Dict[str, str], dates=()) -> Optional[Dict[str, Any]]:
    """Sous-objet: {tag XML: valeur} à partir de {champ stocké: tag XML}"""
    if not source:
        return None
    return {
        tag: to_iso(source.get(field)) if field in dates else source.get(field)
        for field, tag in mapping.items()
    }


def _wrap(item_tag: str, items: List[dict]) -> Optional[Dict[str, Any]]:
    """<contacts><contact/>...</contacts>; aucune entrée -> élément omis"""
    return {item_tag: items} if items else None


# ════════════════════════════════════════════════════════════════════════════
# ASSEMBLAGE PAR TYPE
# ════════════════════════════════════════════════════════════════════════════

def assemble_products(products: List[dict]) -> Dict[str, Any]:
    return {
        "product": [
            {
                "_id": _id(p.get("id")),
                "name": p.get("name"),
                "category": p.get("category"),
                "price": p.get("price"),
                "stock": p.get("stock"),
                "description": p.get("description"),
                "createdAt": to_iso(p.get("created_at")),
                "updatedAt": to_iso(p.get("updated_at")),
            }
            for p in products
        ]
    }


def assemble_users(users: List[dict]) -> Dict[str, Any]:
    return {
        "user": [
            {
                "_id": _id(u.get("id")),
                "username": u.get("username"),
                "role": u.get("role"),
                "clientId": _id(u.get("client_id")),
                "createdAt": to_iso(u.get("created_at")),
                "updatedAt": to_iso(u.get("updated_at")),
            }
            for u in users
        ]
    }


CONTACT_FIELDS = {
    "nom": "nom", "prenom": "prenom", "fonction": "fonction",
    "email": "email", "telephone": "telephone", "statut": "statut",
}
CONTRAT_FIELDS = {
    "reference": "reference", "type": "type", "date_debut": "dateDebut",
    "date_fin": "dateFin", "montant": "montant",
}
ADRESSE_FIELDS = {
    "adresse": "adresse", "code_postal": "codePostal", "ville": "ville", "pays": "pays",
}
INFOS_FIELDS = {
    "source": "source", "date_acquisition": "dateAcquisition", "niveau": "niveau",
    "chiffre_affaire_cumule": "chiffreAffaireCumule", "dernier_achat": "dernierAchat",
    "commercial_responsable": "commercialResponsable",
}


def assemble_clients(clients: List[dict]) -> Dict[str, Any]:
    return {
        "client": [
            {
                "reference": c.get("reference"),
                "type": c.get("type"),
                "raisonSociale": c.get("raison_sociale"),
                "siret": c.get("siret"),
                "formeJuridique": c.get("forme_juridique"),
                "effectif": c.get("effectif"),
                "secteurActivite": c.get("secteur_activite"),
                "adresseFacturation": _sub(c.get("adresse_facturation"), ADRESSE_FIELDS),
                "contacts": _wrap("contact", [_sub(x, CONTACT_FIELDS) for x in c.get("contacts") or []]),
                "informationsCommerciales": _sub(
                    c.get("informations_commerciales"), INFOS_FIELDS,
                    dates=("date_acquisition", "dernier_achat")
                ),
                "contrats": _wrap("contrat", [
                    _sub(x, CONTRAT_FIELDS, dates=("date_debut", "date_fin"))
                    for x in c.get("contrats") or []
                ]),
            }
            for c in clients
        ]
    }


LIGNE_FIELDS = {
    "produit_id": "produitId", "quantite": "quantite", "prix_unitaire_ht": "prixUnitaireHT",
    "remise": "remise", "total_ht": "totalHT",
}
TOTAUX_FIELDS = {"total_ht": "totalHT", "total_tva": "totalTVA", "total_ttc": "totalTTC"}
CONDITIONS_FIELDS = {
    "delai_livraison": "delaiLivraison", "modalites_paiement": "modalitesPaiement",
    "validite_devis": "validiteDevis",
}


def assemble_commandes(commandes: List[dict]) -> Dict[str, Any]:
    return {
        "commande": [
            {
                "reference": o.get("reference"),
                "clientId": _id(o.get("client_id")),
                "opportuniteId": _id(o.get("opportunite_id")),
                "type": o.get("type"),
                "statut": o.get("statut"),
                "dateCreation": to_iso(o.get("date_creation")),
                "dateValidation": to_iso(o.get("date_validation")),
                "lignes": _wrap("ligne", [_sub(l, LIGNE_FIELDS) for l in o.get("lignes") or []]),
                "totaux": _sub(o.get("totaux"), TOTAUX_FIELDS),
                "conditions": _sub(o.get("conditions"), CONDITIONS_FIELDS),
            }
            for o in commandes
        ]
    }


# nom d'export -> (collection, assembleur)
EXPORTS = {
    "products": ("products", assemble_products),
    "users": ("users", assemble_users),
    "clients": ("clients", assemble_clients),
    "commandes": ("commandes", assemble_commandes),
}


async def export_document(entity: str, user: str = "system") -> str:
    """
    Construit le document XML d'une collection complète.
    Le nom d'export sert à la fois de racine XML et de nom de schéma.

    Raises:
        ExportValidationError si le contrôle du schéma échoue
    """
    collection, assemble = EXPORTS[entity]
    records = await db[collection].find({}, {"_id": 0, "password": 0}).to_list(None)

    xml = encode(assemble(records), entity)

    validation = validate_xml(xml, entity)
    if not validation["valid"]:
        logger.error(f"[EXPORT] XML validation failed for {entity}: {validation['message']}")
        raise ExportValidationError(validation["message"], validation["errors"])

    logger.info(f"[EXPORT] {entity}: {len(records)} record(s), validation passed")
    await log_event(
        action="export_document",
        entity_type=entity,
        user=user,
        details={"count": len(records), "warnings": len(validation["errors"])}
    )
    return xml
