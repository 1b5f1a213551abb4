"""
Service: llm_engine.py
- Centralise les appels HTTP vers les providers de complétion (Groq, OpenAI, Anthropic,
  Gemini, Grok, llama-server local, Ollama).
- Chaque backend expose `complete(prompt, system_prompt=None) -> str` (appel bloquant).
- `WaterfallBackend` essaie plusieurs backends dans l'ordre jusqu'au premier succès.
- `acomplete(backend, ...)` exécute l'appel dans un thread worker (anyio) pour ne pas
  bloquer la boucle événementielle.

Aucun retry automatique : un échec remonte en `UpstreamProviderError` et c'est
l'appelant qui décide quoi en faire.
"""
from __future__ import annotations

import functools
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence
from uuid import uuid4

import anyio
import requests

from app.config.settings import settings

logger = logging.getLogger(__name__)


class UpstreamProviderError(RuntimeError):
    """Échec d'un appel de complétion (réseau, statut HTTP, réponse inexploitable)."""


class LLMClient:
    """
    Client HTTP centralisé pour communiquer avec les providers.
    - Une `requests.Session` partagée (keep-alive).
    - Journalise chaque requête avec un identifiant de corrélation.
    """

    def __init__(
        self,
        *,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.session = session or requests.Session()
        self.timeout = timeout

    def post_json(
        self,
        url: str,
        payload: Dict[str, Any],
        *,
        headers: Optional[Dict[str, str]] = None,
        request_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        request_id = request_id or f"llm-{uuid4().hex}"
        try:
            logger.debug(
                "LLM request start",
                extra={"llm_url": url, "llm_request_id": request_id},
            )
            response = self.session.post(url, json=payload, headers=headers or {}, timeout=self.timeout)
            response.raise_for_status()
        except requests.Timeout as exc:
            logger.warning(
                "LLM request timeout",
                extra={"llm_url": url, "llm_request_id": request_id},
            )
            raise UpstreamProviderError("LLM request timed out") from exc
        except requests.RequestException as exc:
            logger.error(
                "LLM request failed",
                exc_info=True,
                extra={"llm_url": url, "llm_request_id": request_id},
            )
            raise UpstreamProviderError(f"LLM request failed: {exc}") from exc

        try:
            data = response.json()
        except (json.JSONDecodeError, ValueError) as exc:
            logger.error(
                "Invalid JSON payload from LLM",
                exc_info=True,
                extra={"llm_request_id": request_id},
            )
            raise UpstreamProviderError("Invalid JSON payload from LLM") from exc
        if not isinstance(data, dict):
            raise UpstreamProviderError("Unexpected LLM payload shape")
        logger.debug("LLM request success", extra={"llm_request_id": request_id})
        return data


CLIENT = LLMClient(timeout=settings.LLM_TIMEOUT_SECONDS)


class CompletionBackend(Protocol):
    name: str

    def complete(self, prompt: str, *, system_prompt: Optional[str] = None) -> str:
        ...


def _chat_messages(prompt: str, system_prompt: Optional[str]) -> List[Dict[str, str]]:
    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": prompt})
    return messages


def _require_key(name: str, key: Optional[str]) -> str:
    if not key:
        raise UpstreamProviderError(f"Missing API key for provider '{name}'")
    return key


def _extract_openai_content(data: Dict[str, Any]) -> str:
    choices = data.get("choices") or []
    if not choices:
        raise UpstreamProviderError("Provider response did not include choices")
    content = (choices[0].get("message") or {}).get("content")
    if isinstance(content, list):
        # Certains providers renvoient des blocs structurés.
        content = "".join(
            block.get("text", "") if isinstance(block, dict) else str(block)
            for block in content
        )
    if not isinstance(content, str):
        raise UpstreamProviderError("Provider response content was not a string")
    return content.strip()


@dataclass(frozen=True)
class OpenAICompatBackend:
    """API Chat Completions (OpenAI, Groq, Grok, llama-server)."""

    name: str
    url: str
    model: Optional[str] = None
    api_key: Optional[str] = None
    needs_key: bool = True
    temperature: float = 0.7

    def complete(self, prompt: str, *, system_prompt: Optional[str] = None) -> str:
        headers: Dict[str, str] = {}
        if self.needs_key:
            headers["Authorization"] = f"Bearer {_require_key(self.name, self.api_key)}"
        payload: Dict[str, Any] = {
            "messages": _chat_messages(prompt, system_prompt),
            "temperature": self.temperature,
        }
        if self.model:
            payload["model"] = self.model
        data = CLIENT.post_json(self.url, payload, headers=headers, request_id=f"{self.name}-{uuid4().hex}")
        return _extract_openai_content(data)


@dataclass(frozen=True)
class AnthropicBackend:
    """API Anthropic Messages."""

    url: str
    model: str
    api_key: Optional[str] = None
    version: str = "2023-06-01"
    max_tokens: int = 8192
    temperature: float = 0.7
    name: str = "anthropic"

    def complete(self, prompt: str, *, system_prompt: Optional[str] = None) -> str:
        payload: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            payload["system"] = system_prompt
        headers = {
            "x-api-key": _require_key(self.name, self.api_key),
            "anthropic-version": self.version,
        }
        data = CLIENT.post_json(self.url, payload, headers=headers, request_id=f"{self.name}-{uuid4().hex}")
        text = "".join(
            block.get("text", "")
            for block in data.get("content") or []
            if isinstance(block, dict) and block.get("type") == "text"
        ).strip()
        if not text:
            raise UpstreamProviderError("Anthropic response contained no text content")
        return text


@dataclass(frozen=True)
class GeminiBackend:
    """API Gemini generateContent."""

    base_url: str
    model: str
    api_key: Optional[str] = None
    temperature: float = 0.7
    name: str = "gemini"

    def complete(self, prompt: str, *, system_prompt: Optional[str] = None) -> str:
        key = _require_key(self.name, self.api_key)
        payload: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": self.temperature},
        }
        if system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": system_prompt}]}
        url = f"{self.base_url.rstrip('/')}/{self.model}:generateContent"
        data = CLIENT.post_json(
            url,
            payload,
            headers={"x-goog-api-key": key},
            request_id=f"{self.name}-{uuid4().hex}",
        )
        candidates = data.get("candidates") or []
        if not candidates:
            raise UpstreamProviderError("Gemini response did not include candidates")
        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts if isinstance(part, dict)).strip()
        if not text:
            raise UpstreamProviderError("Gemini response contained no text")
        return text


@dataclass(frozen=True)
class OllamaBackend:
    """Ollama local (/api/chat, sans streaming)."""

    endpoint: str
    model: str
    temperature: float = 0.7
    name: str = "ollama"

    def complete(self, prompt: str, *, system_prompt: Optional[str] = None) -> str:
        payload = {
            "model": self.model,
            "messages": _chat_messages(prompt, system_prompt),
            "stream": False,
            "options": {"temperature": self.temperature},
        }
        data = CLIENT.post_json(self.endpoint, payload, request_id=f"{self.name}-{uuid4().hex}")
        # Ollama /api/chat peut renvoyer {"message":{"content":...}} ou {"response":...}
        text = (data.get("message") or {}).get("content") or data.get("response")
        if not isinstance(text, str):
            raise UpstreamProviderError("Ollama response did not include message.content")
        return text.strip()


@dataclass(frozen=True)
class WaterfallBackend:
    """Essaie chaque backend dans l'ordre; lève la dernière erreur si tous échouent."""

    backends: Sequence[CompletionBackend]
    name: str = "waterfall"

    def complete(self, prompt: str, *, system_prompt: Optional[str] = None) -> str:
        if not self.backends:
            raise UpstreamProviderError("No completion backend configured")
        last_error: Optional[Exception] = None
        for backend in self.backends:
            try:
                text = backend.complete(prompt, system_prompt=system_prompt)
            except UpstreamProviderError as exc:
                logger.warning(
                    "Completion provider failed, trying next",
                    extra={"provider": backend.name, "error": str(exc)},
                )
                last_error = exc
                continue
            if text:
                logger.info("Completion served", extra={"provider": backend.name})
                return text
            last_error = UpstreamProviderError(f"Empty completion from '{backend.name}'")
        raise UpstreamProviderError(f"All completion providers failed: {last_error}") from last_error


def build_backend(name: str) -> CompletionBackend:
    """Construit un backend à partir de son nom et des settings."""
    provider = (name or "").strip().lower()
    temperature = settings.LLM_TEMPERATURE
    if provider == "groq":
        return OpenAICompatBackend(
            name="groq",
            url=settings.GROQ_API_URL,
            model=settings.GROQ_MODEL,
            api_key=settings.GROQ_API_KEY,
            temperature=temperature,
        )
    if provider == "openai":
        return OpenAICompatBackend(
            name="openai",
            url=settings.OPENAI_API_URL,
            model=settings.OPENAI_MODEL,
            api_key=settings.OPENAI_API_KEY,
            temperature=temperature,
        )
    if provider == "grok":
        return OpenAICompatBackend(
            name="grok",
            url=settings.GROK_API_URL,
            model=settings.GROK_MODEL,
            api_key=settings.GROK_API_KEY,
            temperature=temperature,
        )
    if provider == "local":
        return OpenAICompatBackend(
            name="local",
            url=settings.LOCAL_MODEL_URL,
            needs_key=False,
            temperature=temperature,
        )
    if provider == "anthropic":
        return AnthropicBackend(
            url=settings.ANTHROPIC_API_URL,
            model=settings.ANTHROPIC_MODEL,
            api_key=settings.ANTHROPIC_API_KEY,
            version=settings.ANTHROPIC_VERSION,
            temperature=temperature,
        )
    if provider == "gemini":
        return GeminiBackend(
            base_url=settings.GEMINI_API_URL,
            model=settings.GEMINI_MODEL,
            api_key=settings.GEMINI_API_KEY,
            temperature=temperature,
        )
    if provider == "ollama":
        return OllamaBackend(
            endpoint=settings.OLLAMA_ENDPOINT,
            model=settings.OLLAMA_MODEL,
            temperature=temperature,
        )
    raise UpstreamProviderError(f"Unknown completion provider '{name}'")


def build_corpus_backend() -> CompletionBackend:
    """Backend de génération du corpus (waterfall si plusieurs providers)."""
    names = settings.corpus_provider_names()
    if len(names) == 1:
        return build_backend(names[0])
    return WaterfallBackend(backends=[build_backend(n) for n in names])


async def acomplete(backend: CompletionBackend, prompt: str, system_prompt: Optional[str] = None) -> str:
    """Exécute `backend.complete` dans un thread worker (point de suspension)."""
    call = functools.partial(backend.complete, prompt, system_prompt=system_prompt)
    return await anyio.to_thread.run_sync(call)
