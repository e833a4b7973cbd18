"""Application settings read from the environment (and a local .env file)."""
import os
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

load_dotenv()  # Searches for .env in current dir and parent dirs


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    storage_backend: str = "local"
    local_store_path: str = ".data/storage.json"
    mongodb_uri: Optional[str] = None
    db_name: str = "finance_db"

    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    extractor_engine: str = "remote"

    # None means ambiguous direction is reported as "could not classify"
    heuristic_default_type: Optional[str] = "expense"
    heuristic_require_keyword: bool = False

    remote_default_category: str = "Shopping"
    remote_category_fallback: bool = True

    extract_rate_limit: str = "15/minute"
    max_message_size: int = 16 * 1024
    log_level: str = "INFO"


def settings_from_env() -> Settings:
    default_type = os.getenv("HEURISTIC_DEFAULT_TYPE", "expense").strip().lower()
    if default_type not in ("expense", "income", "none"):
        logger.warning(f"Unknown HEURISTIC_DEFAULT_TYPE '{default_type}', using 'expense'.")
        default_type = "expense"

    backend = os.getenv("STORAGE_BACKEND", "local").strip().lower()
    if backend not in ("local", "mongo"):
        raise ValueError(f"STORAGE_BACKEND must be 'local' or 'mongo', got '{backend}'.")

    engine = os.getenv("EXTRACTOR_ENGINE", "remote").strip().lower()
    if engine not in ("local", "remote"):
        raise ValueError(f"EXTRACTOR_ENGINE must be 'local' or 'remote', got '{engine}'.")

    return Settings(
        storage_backend=backend,
        local_store_path=os.getenv("LOCAL_STORE_PATH", ".data/storage.json"),
        mongodb_uri=os.getenv("MONGODB_URI") or None,
        db_name=os.getenv("DB_NAME", "finance_db"),
        openai_api_key=os.getenv("OPENAI_API_KEY") or None,
        openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        extractor_engine=engine,
        heuristic_default_type=None if default_type == "none" else default_type,
        heuristic_require_keyword=_env_bool("HEURISTIC_REQUIRE_KEYWORD", False),
        remote_default_category=os.getenv("REMOTE_DEFAULT_CATEGORY", "Shopping"),
        remote_category_fallback=_env_bool("REMOTE_CATEGORY_FALLBACK", True),
        extract_rate_limit=os.getenv("EXTRACT_RATE_LIMIT", "15/minute"),
        max_message_size=int(os.getenv("MAX_MESSAGE_SIZE", str(16 * 1024))),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


@lru_cache
def get_settings() -> Settings:
    return settings_from_env()
