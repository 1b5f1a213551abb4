"""
Module routes/admin.py
Rôle:
- Diagnostic et maintenance du corpus et des salles (protégé par `admin_required`).

Routes:
- GET  /admin/corpus            → nombre de mots en base
- POST /admin/corpus/replenish  → génère un lot immédiatement
- GET  /admin/sessions          → salles actives (joueurs, round, phase)
- GET  /admin/sessions/{id}/peers → connexions WS d'une salle
- DELETE /admin/sessions/{id}   → ferme les sockets de la salle et l'oublie
"""
from fastapi import APIRouter, Depends, HTTPException

from app.deps.auth import admin_required
from app.services.llm_engine import UpstreamProviderError
from app.services.session_store import close_session, find_session, get_corpus, list_sessions

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/corpus")
async def corpus_status(_: bool = Depends(admin_required)):
    return {"ok": True, "count": get_corpus().store.count()}


@router.post("/corpus/replenish")
async def corpus_replenish(_: bool = Depends(admin_required)):
    """Force la génération d'un lot (erreur 502 si tous les providers échouent)."""
    corpus = get_corpus()
    try:
        inserted = await corpus.replenish()
    except UpstreamProviderError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return {"ok": True, "inserted": inserted, "count": corpus.store.count()}


@router.get("/sessions")
async def sessions(_: bool = Depends(admin_required)):
    return {"ok": True, "sessions": list_sessions()}


@router.get("/sessions/{session_id}/peers")
async def session_peers(session_id: str, _: bool = Depends(admin_required)):
    """Carte des connexions WS d'une salle."""
    session = find_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="unknown_session")
    return session.registry.stats()


@router.delete("/sessions/{session_id}")
async def session_close(session_id: str, _: bool = Depends(admin_required)):
    """Ferme les sockets d'une salle ; la prochaine connexion repart d'un état vierge."""
    if not await close_session(session_id):
        raise HTTPException(status_code=404, detail="unknown_session")
    return {"ok": True, "closed": session_id}
