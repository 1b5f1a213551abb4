"""
Configuration de l'application (Settings)
=========================================

Rôle
----
- Centraliser les paramètres de l'app (nom, host/port, chemins, session, LLM…).
- Les valeurs par défaut conviennent pour un environnement de dev local.
- Les variables peuvent être surchargées via un fichier `.env` ou l'environnement.

Intégrations
------------
- `pydantic-settings` charge automatiquement les variables d'env et `.env`.
- Les services/routers importent `from app.config.settings import settings`.

Backends LLM
------------
- `ORACLE_PROVIDER` : backend qui répond aux questions et classe les messages.
- `CORPUS_PROVIDERS` : liste ordonnée (séparée par des virgules) essayée tour à
  tour pour générer les lots de mots (stratégie "waterfall").
- Providers connus : groq, openai, anthropic, gemini, grok, local, ollama.

Exemples de `.env`
------------------
PORT=3000
ORACLE_PROVIDER="groq"
CORPUS_PROVIDERS="groq,openai,anthropic"
GROQ_API_KEY="..."
WORDS_DB_PATH="/var/opt/word-oracle/words.db"
"""
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional
import os


class Settings(BaseSettings):
    # Nom du service (apparaît dans /health)
    APP_NAME: str = "Word Oracle Backend"
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    LOG_LEVEL: str = "INFO"

    # Jeton des routes /admin (⚠️ remplacez en production via .env)
    ADMIN_TOKEN: str = "changeme-super-secret"

    # Répertoire des fichiers persistés (base SQLite du corpus)
    DATA_DIR: str = os.path.join(os.path.dirname(os.path.dirname(__file__)), "data")
    # vide = <DATA_DIR>/words.db
    WORDS_DB_PATH: Optional[str] = None

    # Session
    MAX_PLAYERS: int = 8
    ROUND_GRACE_SECONDS: float = 3.0   # délai de lecture après une bonne réponse
    CORPUS_MIN_WORDS: int = 5          # en dessous, un lot est généré à l'initialisation
    CORPUS_BATCH_SIZE: int = 10

    # Sélection des backends
    ORACLE_PROVIDER: str = "local"
    CORPUS_PROVIDERS: str = "groq"

    LLM_TEMPERATURE: float = 0.7
    # None = pas de timeout (un provider bloqué ne fige que le joueur concerné)
    LLM_TIMEOUT_SECONDS: Optional[float] = None

    GROQ_API_URL: str = "https://api.groq.com/openai/v1/chat/completions"
    GROQ_API_KEY: Optional[str] = None
    GROQ_MODEL: str = "llama-3.3-70b-versatile"

    # llama-server (API compatible OpenAI, sans clé)
    LOCAL_MODEL_URL: str = "http://localhost:8080/v1/chat/completions"

    OPENAI_API_URL: str = "https://api.openai.com/v1/chat/completions"
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_MODEL: str = "gpt-4o"

    ANTHROPIC_API_URL: str = "https://api.anthropic.com/v1/messages"
    ANTHROPIC_API_KEY: Optional[str] = None
    ANTHROPIC_MODEL: str = "claude-3-5-sonnet-20241022"
    ANTHROPIC_VERSION: str = "2023-06-01"

    GEMINI_API_URL: str = "https://generativelanguage.googleapis.com/v1beta/models"
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-2.0-flash"

    GROK_API_URL: str = "https://api.x.ai/v1/chat/completions"
    GROK_API_KEY: Optional[str] = Field(default=None, validation_alias=AliasChoices("GROK_API_KEY", "XAI_API_KEY"))
    GROK_MODEL: str = "grok-beta"

    OLLAMA_ENDPOINT: str = "http://localhost:11434/api/chat"
    OLLAMA_MODEL: str = "llama3.1"

    # Paramétrage pydantic-settings :
    # - lit le fichier .env (UTF-8) si présent
    # - ignore les clés supplémentaires pour éviter les erreurs
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    def corpus_provider_names(self) -> List[str]:
        """Liste ordonnée des providers de génération de corpus."""
        return [name.strip().lower() for name in self.CORPUS_PROVIDERS.split(",") if name.strip()]

    def words_db_path(self) -> str:
        """Chemin de la base du corpus (`WORDS_DB_PATH`, sinon dans `DATA_DIR`)."""
        return self.WORDS_DB_PATH or os.path.join(self.DATA_DIR, "words.db")


# Instance unique importable partout : `settings`
settings = Settings()
