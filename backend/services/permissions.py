"""
LIGHT MANAGEMENT - Permission System
Permission keys + role presets + FastAPI dependencies.
Roles: admin (everything), user (business records), client (own orders).
"""

import logging
from typing import Dict
from fastapi import Depends, HTTPException

logger = logging.getLogger("permissions")

# ════════════════════════════════════════════════════════════════════════
# ALL PERMISSION KEYS
# ════════════════════════════════════════════════════════════════════════

ALL_PERMISSION_KEYS = [
    "products.view",
    "products.manage",
    "products.transfer",

    "clients.view",
    "clients.manage",
    "clients.transfer",

    "orders.view",
    "orders.manage",
    "orders.transfer",

    "users.manage",
]

# ════════════════════════════════════════════════════════════════════════
# ROLE PRESETS
# ════════════════════════════════════════════════════════════════════════

ROLE_PRESETS: Dict[str, Dict[str, bool]] = {
    "admin": {k: True for k in ALL_PERMISSION_KEYS},

    "user": {
        "products.view": True, "products.manage": True, "products.transfer": True,
        "clients.view": True, "clients.manage": True, "clients.transfer": True,
        "orders.view": True, "orders.manage": True, "orders.transfer": True,
        "users.manage": False,
    },

    "client": {
        "products.view": True, "products.manage": False, "products.transfer": False,
        "clients.view": False, "clients.manage": False, "clients.transfer": False,
        "orders.view": True, "orders.manage": False, "orders.transfer": False,
        "users.manage": False,
    },
}


def get_preset_permissions(role: str) -> Dict[str, bool]:
    """Returns the default permissions for a role."""
    return dict(ROLE_PRESETS.get(role, ROLE_PRESETS["client"]))


def user_has_permission(user: dict, key: str) -> bool:
    """Check if user has a specific permission."""
    if user.get("role") == "admin":
        return True
    return get_preset_permissions(user.get("role", "client")).get(key, False) is True


# ════════════════════════════════════════════════════════════════════════
# FASTAPI DEPENDENCIES
# ════════════════════════════════════════════════════════════════════════

def require_permission(permission_key: str):
    """
    FastAPI dependency factory.
    Usage: user: dict = Depends(require_permission("orders.manage"))
    """
    from routes.auth import get_current_user

    async def _check(user: dict = Depends(get_current_user)):
        if not user_has_permission(user, permission_key):
            logger.warning(
                f"[PERMISSION_DENIED] user={user.get('username')} "
                f"key={permission_key} role={user.get('role')}"
            )
            raise HTTPException(
                status_code=403,
                detail=f"Permission requise: {permission_key}"
            )
        return user

    return _check
