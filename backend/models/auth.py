"""
LIGHT MANAGEMENT - Modeles Auth & Utilisateurs
Trois roles: user, admin, client (client = compte rattaché à un Client).
"""

from enum import Enum
from pydantic import BaseModel, Field, validator
from typing import Optional


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"
    CLIENT = "client"


VALID_ROLES = [r.value for r in UserRole]


class UserLogin(BaseModel):
    username: str
    password: str


class UserCreate(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    role: str = UserRole.USER.value
    client_id: Optional[str] = None

    @validator("role")
    def validate_role(cls, v):
        if v not in VALID_ROLES:
            raise ValueError(f"Role invalide: {v}. Valides: {VALID_ROLES}")
        return v

    @validator("client_id")
    def empty_client_id(cls, v):
        if v is not None and not v.strip():
            return None
        return v


class UserImport(UserCreate):
    """Utilisateur lu depuis un fichier XML (role client par défaut)"""
    role: str = UserRole.CLIENT.value


class UserUpdate(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None
    # "" = détacher le client
    client_id: Optional[str] = None

    @validator("role")
    def validate_role(cls, v):
        if v is not None and v not in VALID_ROLES:
            raise ValueError(f"Role invalide: {v}")
        return v
