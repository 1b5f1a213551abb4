"""
Application FastAPI : point d'entrée
====================================

Rôle
----
- Instancie l'app FastAPI, configure le logging et le CORS pour le front,
- Monte les routeurs (WebSocket joueurs, santé, admin),
- Journalise la sélection des backends LLM au démarrage.

Notes
-----
- ⚠️ Le middleware CORS doit être ajouté AVANT les include_router.
- Lancement dev : `python -m app.main` ou `uvicorn app.main:app --reload`.
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config.settings import settings
from app.routes.admin import router as admin_router
from app.routes.health import router as health_router
from app.routes.websocket import router as ws_router
from app.services.session_store import close_all_sessions

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)

# --- App FastAPI principale  ---
app = FastAPI(title=settings.APP_NAME)

# ===========================
# CORS (dev: permissif)
# ===========================
ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ===========================
# Montage des routers
# ===========================
app.include_router(ws_router)                  # WebSocket endpoints (/ws, /ws/{session_id})
app.include_router(health_router)
app.include_router(admin_router)


# --- Racine utile pour "ping" simple (sans /health) ---
@app.get("/")
async def root():
    """Ping basique : permet de vérifier que l'app tourne (sans dépendance LLM)."""
    return {"ok": True, "service": settings.APP_NAME}


# --- Hook de démarrage ---
@app.on_event("startup")
async def log_backends():
    """Affiche la config des backends (Oracle vs génération du corpus) et la base utilisée."""
    logger.info("Oracle provider (questions, classification): %s", settings.ORACLE_PROVIDER)
    logger.info("Corpus providers (waterfall): %s", ", ".join(settings.corpus_provider_names()))
    logger.info("Words database: %s", settings.words_db_path())


@app.on_event("shutdown")
async def close_sockets():
    """Ferme proprement les sockets de toutes les salles."""
    await close_all_sessions()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host=settings.HOST, port=settings.PORT, reload=True)
