"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  LIGHT MANAGEMENT - Modèle Commande                                          ║
║                                                                              ║
║  Une commande = lignes produit + totaux + conditions                         ║
║  - Statut VALIDE = stock déduit (voir services/stock_reconciler.py)          ║
║  - Totaux fournis par l'appelant, JAMAIS recalculés côté serveur             ║
║                                                                              ║
║  RÈGLE: via l'API, statut ∈ {BROUILLON, EN_ATTENTE, VALIDE, ANNULE}          ║
║         via l'import XML, statut libre (stocké tel quel)                     ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator


class CommandeStatut(str, Enum):
    BROUILLON = "BROUILLON"
    EN_ATTENTE = "EN_ATTENTE"
    VALIDE = "VALIDE"
    ANNULE = "ANNULE"


VALID_STATUTS = [s.value for s in CommandeStatut]

TVA_RATE = 0.20


def _check_statut(v):
    if v is not None and v not in VALID_STATUTS:
        raise ValueError(f"Statut invalide: {v}. Valides: {VALID_STATUTS}")
    return v


class LigneCommande(BaseModel):
    produit_id: str
    quantite: int = Field(..., gt=0)
    prix_unitaire_ht: float = Field(..., ge=0)
    remise: float = 0.0
    total_ht: float


class Totaux(BaseModel):
    total_ht: float
    total_tva: float
    total_ttc: float


class Conditions(BaseModel):
    delai_livraison: Optional[int] = None
    modalites_paiement: Optional[str] = None
    validite_devis: Optional[int] = None


class CommandeBase(BaseModel):
    reference: str = Field(..., min_length=1)
    client_id: Optional[str] = None
    opportunite_id: Optional[str] = None
    type: Optional[str] = None
    statut: str = CommandeStatut.BROUILLON.value
    date_creation: Optional[datetime] = None
    date_validation: Optional[datetime] = None
    lignes: List[LigneCommande] = []
    totaux: Totaux
    conditions: Optional[Conditions] = None


class CommandeCreate(CommandeBase):
    """
    Création d'une commande via l'API

    client_id accepte un identifiant OU une référence client ("CLI-2024-001")
    """
    client_id: str

    @field_validator('statut')
    @classmethod
    def validate_statut(cls, v):
        return _check_statut(v)


class CommandeImport(CommandeBase):
    """Commande lue depuis un fichier XML (statut libre, client optionnel)"""
    statut: str


class CommandeUpdate(BaseModel):
    """Mise à jour partielle: les champs absents gardent leur valeur"""
    reference: Optional[str] = None
    client_id: Optional[str] = None
    opportunite_id: Optional[str] = None
    type: Optional[str] = None
    statut: Optional[str] = None
    date_creation: Optional[datetime] = None
    date_validation: Optional[datetime] = None
    lignes: Optional[List[LigneCommande]] = None
    totaux: Optional[Totaux] = None
    conditions: Optional[Conditions] = None

    @field_validator('statut')
    @classmethod
    def validate_statut(cls, v):
        return _check_statut(v)


def compute_totaux(lignes: List[dict]) -> dict:
    """
    Totaux attendus pour un jeu de lignes (HT = somme des lignes, TVA 20%).
    Aide pour les appelants, pas appliqué automatiquement.
    """
    total_ht = round(sum(float(l.get("total_ht", 0)) for l in lignes), 2)
    total_tva = round(total_ht * TVA_RATE, 2)
    return {
        "total_ht": total_ht,
        "total_tva": total_tva,
        "total_ttc": round(total_ht + total_tva, 2)
    }
