"""
LIGHT MANAGEMENT - Routes Auth
Register / Login / Logout / Session.
Session = token opaque en base (collection sessions), durée SESSION_DAYS.
"""

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from datetime import datetime, timezone, timedelta
from typing import Optional
from pymongo.errors import DuplicateKeyError
import logging

from models.auth import UserLogin, UserCreate
from config import db, generate_token, new_id, now_iso, SESSION_DAYS
from services.credentials import encode_password, verify_password
from services.permissions import get_preset_permissions

router = APIRouter(prefix="/auth", tags=["Auth"])
security = HTTPBearer(auto_error=False)
logger = logging.getLogger("auth")

# Jamais de secret dans un utilisateur renvoyé par l'API
SAFE_USER_PROJECTION = {"_id": 0, "password": 0, "password_scheme": 0}


# ==================== SESSIONS ====================

async def _session_user(token: str) -> Optional[dict]:
    """Token non expiré -> utilisateur, sinon None"""
    session = await db.sessions.find_one(
        {"token": token, "expires_at": {"$gt": now_iso()}},
        {"_id": 0, "user_id": 1}
    )
    if not session:
        return None
    return await db.users.find_one({"id": session["user_id"]}, SAFE_USER_PROJECTION)


async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)):
    if not credentials:
        raise HTTPException(status_code=401, detail="Not authorized, no token")

    user = await _session_user(credentials.credentials)
    if not user:
        raise HTTPException(status_code=401, detail="Not authorized, invalid or expired session")
    return user


async def require_admin(user: dict = Depends(get_current_user)):
    if user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Not authorized as an admin")
    return user


async def open_session(user: dict) -> dict:
    """Crée une session et renvoie token + profil (rôle, client, permissions)"""
    role = user.get("role", "user")
    session = {
        "token": generate_token(),
        "user_id": user["id"],
        "created_at": now_iso(),
        "expires_at": (datetime.now(timezone.utc) + timedelta(days=SESSION_DAYS)).isoformat()
    }
    await db.sessions.insert_one(session)

    return {
        "token": session["token"],
        "user": {
            "id": user["id"],
            "username": user["username"],
            "role": role,
            "client_id": user.get("client_id"),
            "permissions": get_preset_permissions(role),
        }
    }


# ==================== REGISTER / LOGIN / LOGOUT ====================

@router.post("/register", status_code=201)
async def register(data: UserCreate):
    if await db.users.find_one({"username": data.username}, {"_id": 0, "id": 1}):
        raise HTTPException(status_code=400, detail="User already exists")

    user = {
        "id": new_id(),
        "username": data.username,
        "role": data.role,
        "created_at": now_iso(),
        "updated_at": now_iso(),
        **encode_password(data.password)
    }
    if data.client_id:
        user["client_id"] = data.client_id

    try:
        await db.users.insert_one(user)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="User already exists")

    logger.info(f"[AUTH] Registered {data.username} ({data.role})")
    return await open_session(user)


@router.post("/login")
async def login(data: UserLogin):
    user = await db.users.find_one({"username": data.username}, {"_id": 0})

    if not user or not verify_password(user, data.password):
        logger.info(f"[AUTH] Failed login for {data.username}")
        raise HTTPException(status_code=401, detail="Invalid username or password")

    return await open_session(user)


@router.post("/logout")
async def logout(credentials: HTTPAuthorizationCredentials = Depends(security)):
    """Ferme la session du token courant"""
    if not credentials:
        raise HTTPException(status_code=401, detail="Not authorized, no token")

    result = await db.sessions.delete_one({"token": credentials.credentials})
    return {"message": "Logged out", "sessions_closed": result.deleted_count}


@router.get("/me")
async def get_me(user: dict = Depends(get_current_user)):
    """Profil connecté + permissions du rôle"""
    return {**user, "permissions": get_preset_permissions(user.get("role", "user"))}
