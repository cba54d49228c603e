"""
Configuration et utilitaires partagés
"""

import os
import secrets
import uuid
from datetime import datetime, timezone
from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv
from pathlib import Path

# Charger .env
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# MongoDB
MONGO_URL = os.environ.get('MONGO_URL', 'mongodb://localhost:27017')
DB_NAME = os.environ.get('DB_NAME', 'light_management')

client = AsyncIOMotorClient(MONGO_URL)
db = client[DB_NAME]

# CORS
CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*').split(',')

# Schémas XSD (un fichier <nom>.xsd par type d'export)
XML_SCHEMAS_DIR = Path(os.environ.get('XML_SCHEMAS_DIR', str(ROOT_DIR / 'schemas')))

# Mots de passe: "sha256" (irréversible) ou "fernet" (réversible, clé requise)
PASSWORD_SCHEME = os.environ.get('PASSWORD_SCHEME', 'sha256')
APP_ENCRYPTION_KEY = os.environ.get('APP_ENCRYPTION_KEY', '').strip()

# Durée de validité des sessions
SESSION_DAYS = int(os.environ.get('SESSION_DAYS', '7'))


# ==================== HELPERS ====================

def generate_token() -> str:
    """Génère un token de session sécurisé"""
    return secrets.token_urlsafe(32)

def new_id() -> str:
    """Identifiant opaque d'un document"""
    return str(uuid.uuid4())

def is_valid_id(value) -> bool:
    """True si la valeur a la forme d'un identifiant généré par new_id()"""
    if not isinstance(value, str) or not value:
        return False
    try:
        parsed = uuid.UUID(value)
    except ValueError:
        return False
    return str(parsed) == value.lower()

def now_iso() -> str:
    """Retourne la date/heure actuelle en ISO"""
    return datetime.now(timezone.utc).isoformat()

def to_iso(value):
    """datetime -> chaîne ISO, chaîne inchangée, None inchangé"""
    if isinstance(value, datetime):
        return value.isoformat()
    return value
