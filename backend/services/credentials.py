"""
LIGHT MANAGEMENT - Encodage des mots de passe

Deux schémas, choisis PAR UTILISATEUR (champ password_scheme):
- sha256: empreinte irréversible (défaut)
- fernet: chiffrement réversible, clé APP_ENCRYPTION_KEY (compat. anciens comptes)

Les appelants passent toujours par encode_password() / verify_password(),
jamais par un schéma précis.
"""

import hashlib
import hmac
import logging
from typing import Dict, Optional

from cryptography.fernet import Fernet, InvalidToken

from config import APP_ENCRYPTION_KEY, PASSWORD_SCHEME

logger = logging.getLogger("credentials")


class CredentialConfigError(Exception):
    """Schéma inconnu ou clé de chiffrement absente"""
    pass


class CredentialEncoder:
    """Interface commune des schémas d'encodage"""
    scheme = ""

    def encode(self, password: str) -> str:
        raise NotImplementedError

    def verify(self, stored: str, candidate: str) -> bool:
        raise NotImplementedError

    def decode(self, stored: str) -> Optional[str]:
        return None


class Sha256Encoder(CredentialEncoder):
    scheme = "sha256"

    def encode(self, password: str) -> str:
        return hashlib.sha256(password.encode()).hexdigest()

    def verify(self, stored: str, candidate: str) -> bool:
        return hmac.compare_digest(stored or "", self.encode(candidate))


class FernetEncoder(CredentialEncoder):
    scheme = "fernet"

    def __init__(self, key: str):
        if not key:
            raise CredentialConfigError("APP_ENCRYPTION_KEY requis pour le schéma fernet")
        self._fernet = Fernet(key.encode())

    def encode(self, password: str) -> str:
        return self._fernet.encrypt(password.encode()).decode()

    def decode(self, stored: str) -> Optional[str]:
        try:
            return self._fernet.decrypt(stored.encode()).decode()
        except InvalidToken:
            logger.warning("[CREDENTIALS] Token fernet invalide")
            return None

    def verify(self, stored: str, candidate: str) -> bool:
        clear = self.decode(stored or "")
        return clear is not None and hmac.compare_digest(clear, candidate)


def get_encoder(scheme: Optional[str] = None) -> CredentialEncoder:
    scheme = scheme or PASSWORD_SCHEME
    if scheme == Sha256Encoder.scheme:
        return Sha256Encoder()
    if scheme == FernetEncoder.scheme:
        return FernetEncoder(APP_ENCRYPTION_KEY)
    raise CredentialConfigError(f"Schéma de mot de passe inconnu: {scheme}")


def encode_password(password: str, scheme: Optional[str] = None) -> Dict[str, str]:
    """
    Returns:
        {"password": <valeur encodée>, "password_scheme": <schéma>}
    """
    encoder = get_encoder(scheme)
    return {"password": encoder.encode(password), "password_scheme": encoder.scheme}


def verify_password(user: dict, candidate: str) -> bool:
    """Vérifie un mot de passe avec le schéma stocké sur l'utilisateur"""
    scheme = user.get("password_scheme") or Sha256Encoder.scheme
    try:
        encoder = get_encoder(scheme)
    except CredentialConfigError as e:
        logger.error(f"[CREDENTIALS] user={user.get('username')}: {e}")
        return False
    return encoder.verify(user.get("password", ""), candidate)
