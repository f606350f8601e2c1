"""Configuration models for the legal research assistant."""

from __future__ import annotations

import os

from pydantic import BaseModel, Field


class AgentConfig(BaseModel):
    """Configures the dialogue loop and answer streaming."""

    max_iterations: int = Field(default=6, ge=1)
    max_law_text_chars: int = Field(default=40_000, ge=1)
    stream_chunk_size: int = Field(default=5, ge=1)
    stream_delay_seconds: float = Field(default=0.01, ge=0.0)
    chat_model: str = "gpt-4o-mini"
    temperature: float = Field(default=0.0, ge=0.0, le=2.0)


class SearchConfig(BaseModel):
    """Configures query normalization, assistant retrieval and the law library."""

    query_model: str = "gpt-4o-mini"
    assistant_id: str = ""
    assistant_poll_interval_seconds: float = Field(default=0.1, ge=0.0)
    assistant_max_polls: int = Field(default=60, ge=1)
    law_library_dir: str = "law_txt_files"
    document_suffix: str = ".txt"


class StoreConfig(BaseModel):
    """Configures tool-call persistence."""

    sqlite_path: str = "legal_agent.db"


class Settings(BaseModel):
    """Process-wide settings assembled by the entry point."""

    openai_api_key: str | None = None
    log_level: str = "INFO"
    agent: AgentConfig = Field(default_factory=AgentConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)

    @classmethod
    def from_env(cls) -> "Settings":
        chat_model = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            log_level=os.getenv("LEGAL_AGENT_LOG_LEVEL", "INFO"),
            agent=AgentConfig(
                chat_model=chat_model,
                max_iterations=int(os.getenv("LEGAL_AGENT_MAX_ITERATIONS", "6")),
            ),
            search=SearchConfig(
                query_model=os.getenv("OPENAI_QUERY_MODEL", chat_model),
                assistant_id=os.getenv("OPENAI_ASSISTANT_ID", ""),
                law_library_dir=os.getenv("LAW_LIBRARY_DIR", "law_txt_files"),
            ),
            store=StoreConfig(sqlite_path=os.getenv("LEGAL_AGENT_DB", "legal_agent.db")),
        )
