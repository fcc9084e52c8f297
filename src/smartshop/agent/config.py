"""
Runtime settings for the SmartShop assistant.

Settings are read once at process start from the environment (a
``.env`` file is loaded first when present) and passed explicitly to
the factories in ``factory.py``.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

LLM_PROVIDERS = ("openai", "gemini")
EMBEDDING_PROVIDERS = ("gemini", "openai")
TOOL_MODES = ("local", "remote")


def configure_logging(level: str = "INFO") -> None:
    """Configure process-wide logging. Call once from entry points."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    value = env.get(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    value = env.get(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}")


def _choice(env: Mapping[str, str], name: str, default: str, allowed: tuple) -> str:
    value = (env.get(name) or default).lower()
    if value not in allowed:
        raise ValueError(f"{name} must be one of {', '.join(allowed)}, got {value!r}")
    return value


@dataclass
class AgentSettings:
    """Settings collected from environment variables.

    Attributes:
        llm_provider: 'openai' or 'gemini'
        embedding_provider: 'gemini' or 'openai'
        tool_mode: 'local' (in-process registry) or 'remote' (tool servers)
        database_url: asyncpg DSN for the commerce store and vector table
        vector_table: Table holding product embeddings
        rag_min_score: Minimum cosine similarity kept by retrieval
        chat_history_limit: Messages kept per conversation
        max_tool_iterations: LLM calls allowed per user turn
    """

    llm_provider: str = "openai"
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.5-flash"
    embedding_provider: str = "gemini"
    embedding_model: Optional[str] = None
    embedding_dimensions: int = 768
    tool_mode: str = "local"
    database_url: Optional[str] = None
    vector_table: str = "embeddings"
    rag_min_score: float = 0.5
    chat_history_limit: int = 20
    max_tool_iterations: int = 5
    log_level: str = "INFO"

    @classmethod
    def from_env(
        cls,
        env: Optional[Mapping[str, str]] = None,
        dotenv: bool = True,
    ) -> AgentSettings:
        """Build settings from the environment.

        Args:
            env: Mapping to read instead of os.environ
            dotenv: Load a .env file into os.environ first

        Raises:
            ValueError: If a value is malformed
        """
        if env is None:
            if dotenv:
                load_dotenv()
            env = os.environ

        return cls(
            llm_provider=_choice(env, "LLM_PROVIDER", "openai", LLM_PROVIDERS),
            openai_api_key=env.get("OPENAI_API_KEY") or None,
            openai_model=env.get("OPENAI_MODEL") or "gpt-4o-mini",
            gemini_api_key=(
                env.get("GEMINI_API_KEY") or env.get("GOOGLE_AI_API_KEY") or None
            ),
            gemini_model=env.get("GEMINI_MODEL") or "gemini-2.5-flash",
            embedding_provider=_choice(
                env, "EMBEDDING_PROVIDER", "gemini", EMBEDDING_PROVIDERS
            ),
            embedding_model=env.get("EMBEDDING_MODEL") or None,
            embedding_dimensions=_int(env, "EMBEDDING_DIMENSIONS", 768),
            tool_mode=_choice(env, "TOOL_MODE", "local", TOOL_MODES),
            database_url=env.get("DATABASE_URL") or None,
            vector_table=env.get("VECTOR_TABLE") or "embeddings",
            rag_min_score=_float(env, "RAG_MIN_SCORE", 0.5),
            chat_history_limit=_int(env, "CHAT_HISTORY_LIMIT", 20),
            max_tool_iterations=_int(env, "MAX_TOOL_ITERATIONS", 5),
            log_level=env.get("LOG_LEVEL") or "INFO",
        )
