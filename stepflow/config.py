"""
Engine configuration management.

Handles loading and validation of engine configuration from environment variables.
"""

import logging
import os
import threading
from typing import List, Optional

logger = logging.getLogger(__name__)

DEFAULT_LLM_API_URL = "https://api.anthropic.com/v1/messages"


def _int_env(name: str, default: int) -> int:
    """Read a positive integer from the environment, falling back to default."""
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
        if value <= 0:
            raise ValueError(f"{name} must be positive")
        return value
    except (ValueError, TypeError) as e:
        logger.warning(f"Invalid {name}, using default {default}: {e}")
        return default


class EngineConfig:
    """Engine configuration.

    Loads configuration from environment variables with sensible defaults.
    Keyword arguments override the environment, which is how tests build
    isolated configurations.

    Timeouts are milliseconds, matching the unit used inside workflow documents.
    """

    def __init__(
        self,
        sandbox_memory_mb: Optional[int] = None,
        sandbox_timeout_ms: Optional[int] = None,
        http_timeout_ms: Optional[int] = None,
        history_limit: Optional[int] = None,
        llm_api_key: Optional[str] = None,
        llm_api_url: Optional[str] = None,
    ):
        """Load configuration from environment."""
        self.sandbox_memory_mb: int = sandbox_memory_mb or _int_env(
            "STEPFLOW_SANDBOX_MEMORY_MB", 256
        )
        self.sandbox_timeout_ms: int = sandbox_timeout_ms or _int_env(
            "STEPFLOW_SANDBOX_TIMEOUT_MS", 30000
        )
        self.http_timeout_ms: int = http_timeout_ms or _int_env("STEPFLOW_HTTP_TIMEOUT_MS", 30000)
        self.history_limit: int = history_limit or _int_env("STEPFLOW_HISTORY_LIMIT", 100)

        # Text-generation collaborator; absent key means fallback mode
        self.llm_api_key: Optional[str] = llm_api_key or self._load_llm_api_key()
        self.llm_api_url: str = llm_api_url or os.getenv("STEPFLOW_LLM_API_URL", DEFAULT_LLM_API_URL)

        self.cors_origins: List[str] = self._load_cors_origins()

    def _load_llm_api_key(self) -> Optional[str]:
        """Load the text-generation API key.

        Supports:
        - STEPFLOW_LLM_API_KEY: Preferred variable
        - ANTHROPIC_API_KEY: Used when the preferred one is unset

        Returns:
            The key, or None when no usable key is configured.
        """
        for name in ("STEPFLOW_LLM_API_KEY", "ANTHROPIC_API_KEY"):
            value = os.getenv(name, "").strip()
            if value and value != "your_api_key_here":
                return value
        return None

    def _load_cors_origins(self) -> List[str]:
        """Load allowed CORS origins (comma-separated)."""
        raw = os.getenv("STEPFLOW_CORS_ORIGINS", "")
        if not raw:
            return [
                "http://localhost",
                "http://localhost:3000",
                "http://localhost:8000",
                "http://127.0.0.1",
                "http://127.0.0.1:8000",
            ]
        return [origin.strip() for origin in raw.split(",") if origin.strip()]


# Global config instance
_config: Optional[EngineConfig] = None
_config_lock = threading.Lock()


def get_config() -> EngineConfig:
    """Get global engine config instance.

    Thread-safe singleton initialization using double-checked locking.

    Returns:
        EngineConfig instance.
    """
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:
                _config = EngineConfig()
    return _config


def reset_config() -> None:
    """Drop the cached config so the next get_config() re-reads the environment."""
    global _config
    with _config_lock:
        _config = None
