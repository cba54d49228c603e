"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  LIGHT MANAGEMENT - Import XML par lots                                      ║
║                                                                              ║
║  Pipeline par enregistrement: décodage -> mapping -> validation -> insert    ║
║                                                                              ║
║  RÈGLES:                                                                     ║
║  - Mauvaise racine / document illisible = requête rejetée EN ENTIER          ║
║  - Sinon chaque enregistrement réussit ou échoue SEUL                        ║
║  - Un échec n'annule jamais les enregistrements déjà insérés                 ║
║  - Traitement strictement séquentiel, ordre du document conservé             ║
║  - Un import ne déclenche AUCUN mouvement de stock                           ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Type, Union

from pydantic import BaseModel, ValidationError
from pymongo.errors import DuplicateKeyError

from config import db, is_valid_id, new_id, now_iso
from models import ClientCreate, CommandeImport, ProductCreate, UserImport
from services.credentials import encode_password
from services.event_logger import log_event
from services.stock_reconciler import resolve_client_reference, resolve_opportunity
from services.xml_codec import TEXT_KEY, XmlDecodeError, as_list, decode, first

logger = logging.getLogger("import_engine")

WRONG_ROOT_MESSAGE = "You're trying to import wrong elements to the database."
INVALID_STRUCTURE_MESSAGE = "Invalid XML structure"


class ImportEnvelopeError(Exception):
    """Le document entier est rejeté avant tout traitement d'enregistrement"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ImportRecordError(Exception):
    """Échec d'UN enregistrement (reporté, n'arrête pas le lot)"""
    pass


class MissingFieldError(ImportRecordError):
    def __init__(self, path: str):
        super().__init__(f"Missing required field: {path}")
        self.path = path


# ════════════════════════════════════════════════════════════════════════════
# LECTURE TYPÉE D'UN NOEUD DÉCODÉ
# ════════════════════════════════════════════════════════════════════════════

def _text(value) -> Optional[str]:
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        return value.get(TEXT_KEY)
    return None


class NodeReader:
    """Accès requis/optionnel aux enfants d'un noeud générique"""

    def __init__(self, node: Dict[str, Any], path: str):
        self.node = node if isinstance(node, dict) else {}
        self.path = path

    def optional(self, tag: str) -> Optional[str]:
        return _text(first(self.node, tag))

    def required(self, tag: str) -> str:
        value = self.optional(tag)
        if value is None:
            raise MissingFieldError(f"{self.path}/{tag}")
        return value

    def child(self, tag: str) -> Optional["NodeReader"]:
        value = first(self.node, tag)
        if not isinstance(value, dict):
            return None
        return NodeReader(value, f"{self.path}/{tag}")

    def required_child(self, tag: str) -> "NodeReader":
        reader = self.child(tag)
        if reader is None:
            raise MissingFieldError(f"{self.path}/{tag}")
        return reader

    def items(self, container: str, item: str) -> List["NodeReader"]:
        """<contacts><contact/>...</contacts> -> lecteurs des <contact>; absent -> []"""
        wrapper = self.child(container)
        if wrapper is None:
            return []
        return [
            NodeReader(node, f"{wrapper.path}/{item}[{i}]")
            for i, node in enumerate(as_list(wrapper.node.get(item)))
        ]


def _drop_none(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


# ════════════════════════════════════════════════════════════════════════════
# MAPPING PAR TYPE D'ENREGISTREMENT (XML camelCase -> champs stockés)
# ════════════════════════════════════════════════════════════════════════════

def map_product_node(r: NodeReader) -> Dict[str, Any]:
    return _drop_none({
        "name": r.required("name"),
        "category": r.optional("category"),
        "price": r.required("price"),
        "stock": r.optional("stock"),
        "description": r.optional("description"),
    })


def map_user_node(r: NodeReader) -> Dict[str, Any]:
    return _drop_none({
        "username": r.required("username"),
        "password": r.required("password"),
        "role": r.optional("role"),
        "client_id": r.optional("clientId"),
    })


def map_client_node(r: NodeReader) -> Dict[str, Any]:
    data = {
        "reference": r.required("reference"),
        "type": r.required("type"),
        "raison_sociale": r.required("raisonSociale"),
        "siret": r.optional("siret"),
        "forme_juridique": r.optional("formeJuridique"),
        "effectif": r.optional("effectif"),
        "secteur_activite": r.optional("secteurActivite"),
        "contacts": [
            _drop_none({
                "nom": c.required("nom"),
                "prenom": c.optional("prenom"),
                "fonction": c.required("fonction"),
                "email": c.required("email"),
                "telephone": c.required("telephone"),
                "statut": c.required("statut"),
            })
            for c in r.items("contacts", "contact")
        ],
        "contrats": [
            _drop_none({
                "reference": c.required("reference"),
                "type": c.required("type"),
                "date_debut": c.required("dateDebut"),
                "date_fin": c.required("dateFin"),
                "montant": c.required("montant"),
            })
            for c in r.items("contrats", "contrat")
        ],
    }

    adresse = r.child("adresseFacturation")
    if adresse is not None:
        data["adresse_facturation"] = _drop_none({
            "adresse": adresse.optional("adresse"),
            "code_postal": adresse.optional("codePostal"),
            "ville": adresse.optional("ville"),
            "pays": adresse.optional("pays"),
        })

    infos = r.child("informationsCommerciales")
    if infos is not None:
        data["informations_commerciales"] = _drop_none({
            "source": infos.optional("source"),
            "date_acquisition": infos.optional("dateAcquisition"),
            "niveau": infos.optional("niveau"),
            "commercial_responsable": infos.optional("commercialResponsable"),
            "chiffre_affaire_cumule": infos.optional("chiffreAffaireCumule"),
            "dernier_achat": infos.optional("dernierAchat"),
        })

    return _drop_none(data)


def map_commande_node(r: NodeReader) -> Dict[str, Any]:
    totaux = r.required_child("totaux")
    data = {
        "reference": r.required("reference"),
        "client_id": r.optional("clientId"),
        "opportunite_id": r.optional("opportuniteId"),
        "type": r.optional("type"),
        "statut": r.required("statut"),
        "date_creation": r.optional("dateCreation"),
        "date_validation": r.optional("dateValidation"),
        "lignes": [
            _drop_none({
                "produit_id": l.required("produitId"),
                "quantite": l.required("quantite"),
                "prix_unitaire_ht": l.required("prixUnitaireHT"),
                "remise": l.optional("remise"),
                "total_ht": l.required("totalHT"),
            })
            for l in r.items("lignes", "ligne")
        ],
        "totaux": {
            "total_ht": totaux.required("totalHT"),
            "total_tva": totaux.required("totalTVA"),
            "total_ttc": totaux.required("totalTTC"),
        },
    }

    conditions = r.child("conditions")
    if conditions is not None:
        data["conditions"] = _drop_none({
            "delai_livraison": conditions.optional("delaiLivraison"),
            "modalites_paiement": conditions.optional("modalitesPaiement"),
            "validite_devis": conditions.optional("validiteDevis"),
        })

    return _drop_none(data)


# ════════════════════════════════════════════════════════════════════════════
# FINALISATION (références croisées, secrets) AVANT INSERTION
# ════════════════════════════════════════════════════════════════════════════

async def finalize_product(document: dict) -> dict:
    return document


async def finalize_user(document: dict) -> dict:
    document.update(encode_password(document["password"]))
    client_ref = document.pop("client_id", None)
    if client_ref:
        client_id = await resolve_client_reference(client_ref)
        if client_id:
            document["client_id"] = client_id
    return document


async def finalize_client(document: dict) -> dict:
    infos = document.get("informations_commerciales")
    if infos and infos.get("commercial_responsable"):
        responsable = infos["commercial_responsable"]
        if not is_valid_id(responsable):
            logger.warning(f"[IMPORT] Skipping invalid commercialResponsable id: {responsable}")
            infos.pop("commercial_responsable")
    return document


async def finalize_commande(document: dict) -> dict:
    for ligne in document.get("lignes", []):
        if not is_valid_id(ligne["produit_id"]):
            raise ImportRecordError(f"Invalid product reference: {ligne['produit_id']}")

    # Client non trouvé = commande créée sans lien (non bloquant)
    client_id = await resolve_client_reference(document.pop("client_id", None))
    if client_id:
        document["client_id"] = client_id

    opportunite_id = resolve_opportunity(document.pop("opportunite_id", None))
    if opportunite_id:
        document["opportunite_id"] = opportunite_id

    document.setdefault("date_creation", now_iso())
    return document


# ════════════════════════════════════════════════════════════════════════════
# CIBLES D'IMPORT
# ════════════════════════════════════════════════════════════════════════════

class ImportTarget:
    """Description d'un type importable"""

    def __init__(
        self,
        root: str,
        item: str,
        label: str,
        collection: str,
        key_field: str,
        key_tag: str,
        model: Type[BaseModel],
        mapper: Callable[[NodeReader], Dict[str, Any]],
        finalize: Callable
    ):
        self.root = root
        self.item = item
        self.label = label
        self.collection = collection
        self.key_field = key_field
        self.key_tag = key_tag
        self.model = model
        self.mapper = mapper
        self.finalize = finalize


IMPORT_TARGETS: Dict[str, ImportTarget] = {
    "products": ImportTarget(
        root="products", item="product", label="Product", collection="products",
        key_field="name", key_tag="name",
        model=ProductCreate, mapper=map_product_node, finalize=finalize_product
    ),
    "users": ImportTarget(
        root="users", item="user", label="User", collection="users",
        key_field="username", key_tag="username",
        model=UserImport, mapper=map_user_node, finalize=finalize_user
    ),
    "clients": ImportTarget(
        root="clients", item="client", label="Client", collection="clients",
        key_field="reference", key_tag="reference",
        model=ClientCreate, mapper=map_client_node, finalize=finalize_client
    ),
    "commandes": ImportTarget(
        root="commandes", item="commande", label="Order", collection="commandes",
        key_field="reference", key_tag="reference",
        model=CommandeImport, mapper=map_commande_node, finalize=finalize_commande
    ),
}


def format_validation_error(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in error.errors()
    )


def extract_records(target: ImportTarget, xml_data: Union[bytes, str]) -> List[Dict[str, Any]]:
    """
    Décode le document et renvoie les noeuds d'enregistrement.

    Raises:
        ImportEnvelopeError (document illisible, mauvaise racine, aucun enregistrement)
    """
    try:
        decoded = decode(xml_data)
    except XmlDecodeError as e:
        raise ImportEnvelopeError(f"Invalid XML: {e}") from e

    if target.root not in decoded:
        raise ImportEnvelopeError(WRONG_ROOT_MESSAGE)

    envelope = decoded[target.root]
    records = as_list(envelope.get(target.item)) if isinstance(envelope, dict) else []
    if not records:
        raise ImportEnvelopeError(INVALID_STRUCTURE_MESSAGE)
    return records


async def import_record(target: ImportTarget, node: Dict[str, Any]) -> str:
    """
    Importe UN enregistrement.

    Returns: clé naturelle de l'enregistrement inséré
    Raises: ImportRecordError, ValidationError, DuplicateKeyError
    """
    reader = NodeReader(node, target.item)
    key = reader.required(target.key_tag)

    existing = await db[target.collection].find_one({target.key_field: key}, {"_id": 0, "id": 1})
    if existing:
        raise ImportRecordError(f"{target.label} already exists")

    model = target.model(**target.mapper(reader))
    document = model.model_dump(mode="json", exclude_none=True)
    document = await target.finalize(document)

    now = now_iso()
    document.update({"id": new_id(), "created_at": now, "updated_at": now})
    await db[target.collection].insert_one(document)
    return key


async def import_batch(entity: str, xml_data: Union[bytes, str], user: str = "system") -> Dict[str, Any]:
    """
    Importe un lot d'enregistrements XML.

    Returns:
        {
            "message": "Import completed",
            "summary": {"total": int, "success": int, "failed": int},
            "results": [{"item", "status", "message", "reason"?}]
        }

    Raises:
        ImportEnvelopeError si le document entier est rejeté
    """
    target = IMPORT_TARGETS[entity]
    records = extract_records(target, xml_data)

    results: List[Dict[str, Any]] = []
    success_count = 0
    failure_count = 0

    for node in records:
        key = _text(first(node, target.key_tag))
        try:
            await import_record(target, node)
        except DuplicateKeyError:
            reason = f"{target.label} already exists"
        except ValidationError as e:
            reason = format_validation_error(e)
        except ImportRecordError as e:
            reason = str(e)
        else:
            success_count += 1
            results.append({
                "item": key,
                "status": "success",
                "message": f"{target.label} successfully added"
            })
            continue

        failure_count += 1
        logger.info(f"[IMPORT] {entity} record {key or '?'} rejected: {reason}")
        results.append({
            "item": key or f"Unknown {target.label}",
            "status": "error",
            "message": "Could not be added",
            "reason": reason
        })

    summary = {"total": len(records), "success": success_count, "failed": failure_count}
    logger.info(f"[IMPORT] {entity}: {summary}")
    await log_event(
        action="import_batch",
        entity_type=target.item,
        user=user,
        details=summary
    )

    return {"message": "Import completed", "summary": summary, "results": results}
