"""
LIGHT MANAGEMENT - Modèle Produit
Le stock n'est jamais négatif: seules les commandes VALIDE le font bouger.
"""

from typing import Optional
from pydantic import BaseModel, Field


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1)
    category: Optional[str] = None
    price: float = Field(..., ge=0)
    stock: int = Field(0, ge=0)
    description: Optional[str] = None


class ProductUpdate(BaseModel):
    name: Optional[str] = None
    category: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    stock: Optional[int] = Field(None, ge=0)
    description: Optional[str] = None
