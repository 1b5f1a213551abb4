"""
Module routes/health.py
Rôle:
- Endpoints de santé : service OK, ping d'un backend de complétion.

Intégrations:
- settings: nom d'app + providers Oracle / corpus configurés.
- build_backend + acomplete: un appel court vers le provider choisi (latence, aperçu).
"""
import time
from typing import Optional

from fastapi import APIRouter

from app.config.settings import settings
from app.services.llm_engine import UpstreamProviderError, acomplete, build_backend

router = APIRouter(prefix="/health", tags=["health"])

PING_PROMPT = "Reply: pong."


@router.get("")
async def health():
    return {
        "ok": True,
        "service": settings.APP_NAME,
        "oracle_provider": settings.ORACLE_PROVIDER,
        "corpus_providers": settings.corpus_provider_names(),
    }


@router.get("/llm")
async def health_llm(provider: Optional[str] = None):
    """
    Ping d'un provider (par défaut celui de l'Oracle).
    - `?provider=groq` pour tester un provider de corpus précis.
    - Ne lève jamais : l'échec est rapporté dans le corps (`ok: false`).
    """
    name = provider or settings.ORACLE_PROVIDER
    t0 = time.perf_counter()
    try:
        text = await acomplete(build_backend(name), PING_PROMPT)
    except UpstreamProviderError as e:
        return {"ok": False, "provider": name, "latency_s": round(time.perf_counter() - t0, 3), "error": str(e)}
    return {"ok": True, "provider": name, "latency_s": round(time.perf_counter() - t0, 3), "sample": text[:120]}
