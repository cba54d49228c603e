"""
Light Management - API Backend
Utilisateurs, clients, produits, commandes + import/export XML

Démarre avec:
    uvicorn server:app --host 0.0.0.0 --port 8001 --reload
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from config import CORS_ORIGINS

# Configuration logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("light_management")

# Créer l'app
app = FastAPI(
    title="Light Management",
    description="Gestion clients, produits et commandes avec échange XML",
    version="1.0.0"
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ==================== IMPORT DES ROUTES ====================

from routes import auth, users, clients, products, commandes

# Routes avec préfixe /api
app.include_router(auth.router, prefix="/api")
app.include_router(users.router, prefix="/api")
app.include_router(clients.router, prefix="/api")
app.include_router(products.router, prefix="/api")
app.include_router(commandes.router, prefix="/api")

# ==================== ROUTE RACINE ====================

@app.get("/")
async def root():
    return {
        "name": "Light Management API",
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs"
    }


# ==================== STARTUP / SHUTDOWN ====================

@app.on_event("startup")
async def startup():
    logger.info("Light Management démarré")

    # Créer les index MongoDB
    from config import db

    await db.users.create_index("id", unique=True)
    await db.users.create_index("username", unique=True)
    await db.sessions.create_index("token", unique=True)
    await db.sessions.create_index("expires_at")
    await db.clients.create_index("id", unique=True)
    await db.clients.create_index("reference", unique=True)
    await db.products.create_index("id", unique=True)
    await db.products.create_index("name", unique=True)
    await db.commandes.create_index("id", unique=True)
    await db.commandes.create_index("reference", unique=True)
    await db.commandes.create_index("client_id")
    await db.event_log.create_index("created_at")

    logger.info("Index MongoDB créés")


@app.on_event("shutdown")
async def shutdown():
    from config import client
    client.close()
