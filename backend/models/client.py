"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  LIGHT MANAGEMENT - Modèle Client                                            ║
║                                                                              ║
║  RÈGLE: reference unique (ex: "CLI-2024-001")                                ║
║  Suppression d'un client = suppression du compte utilisateur associé         ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator
import re


def is_valid_email_format(email: str) -> bool:
    """Vérifie le format email basique"""
    if not email:
        return False
    pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    return bool(re.match(pattern, email))


class AdresseFacturation(BaseModel):
    adresse: Optional[str] = None
    code_postal: Optional[str] = None
    ville: Optional[str] = None
    pays: Optional[str] = None


class Contact(BaseModel):
    nom: str
    prenom: Optional[str] = None
    fonction: Optional[str] = None
    email: Optional[str] = None
    telephone: Optional[str] = None
    statut: Optional[str] = None

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        if v is not None and not is_valid_email_format(v):
            raise ValueError(f"Format email invalide: {v}")
        return v


class InformationsCommerciales(BaseModel):
    source: Optional[str] = None
    date_acquisition: Optional[datetime] = None
    niveau: Optional[str] = None
    commercial_responsable: Optional[str] = None  # id utilisateur
    chiffre_affaire_cumule: Optional[float] = None
    dernier_achat: Optional[datetime] = None


class Contrat(BaseModel):
    reference: str
    type: Optional[str] = None
    date_debut: Optional[datetime] = None
    date_fin: Optional[datetime] = None
    montant: Optional[float] = None


class ClientCreate(BaseModel):
    """Création d'un client (API ou import XML)"""
    reference: str = Field(..., min_length=1)
    type: str
    raison_sociale: str
    siret: Optional[str] = None
    forme_juridique: Optional[str] = None
    effectif: Optional[int] = Field(None, ge=0)
    secteur_activite: Optional[str] = None
    adresse_facturation: Optional[AdresseFacturation] = None
    contacts: List[Contact] = []
    informations_commerciales: Optional[InformationsCommerciales] = None
    contrats: List[Contrat] = []


class ClientUpdate(BaseModel):
    """Mise à jour d'un client"""
    reference: Optional[str] = None
    type: Optional[str] = None
    raison_sociale: Optional[str] = None
    siret: Optional[str] = None
    forme_juridique: Optional[str] = None
    effectif: Optional[int] = Field(None, ge=0)
    secteur_activite: Optional[str] = None
    adresse_facturation: Optional[AdresseFacturation] = None
    contacts: Optional[List[Contact]] = None
    informations_commerciales: Optional[InformationsCommerciales] = None
    contrats: Optional[List[Contrat]] = None
