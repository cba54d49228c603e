"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  LIGHT MANAGEMENT - Models Package                                           ║
║                                                                              ║
║  Exports tous les modèles pour import facile                                 ║
║  from models import ClientCreate, CommandeCreate, etc.                       ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

# Auth / Utilisateurs
from .auth import (
    UserRole,
    VALID_ROLES,
    UserLogin,
    UserCreate,
    UserImport,
    UserUpdate,
)

# Client
from .client import (
    AdresseFacturation,
    Contact,
    InformationsCommerciales,
    Contrat,
    ClientCreate,
    ClientUpdate,
)

# Produit
from .product import (
    ProductCreate,
    ProductUpdate,
)

# Commande
from .commande import (
    CommandeStatut,
    VALID_STATUTS,
    LigneCommande,
    Totaux,
    Conditions,
    CommandeCreate,
    CommandeImport,
    CommandeUpdate,
    compute_totaux,
)

__all__ = [
    # Auth
    "UserRole",
    "VALID_ROLES",
    "UserLogin",
    "UserCreate",
    "UserImport",
    "UserUpdate",
    # Client
    "AdresseFacturation",
    "Contact",
    "InformationsCommerciales",
    "Contrat",
    "ClientCreate",
    "ClientUpdate",
    # Produit
    "ProductCreate",
    "ProductUpdate",
    # Commande
    "CommandeStatut",
    "VALID_STATUTS",
    "LigneCommande",
    "Totaux",
    "Conditions",
    "CommandeCreate",
    "CommandeImport",
    "CommandeUpdate",
    "compute_totaux",
]
