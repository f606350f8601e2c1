"""Legal research assistant package."""

from .config import AgentConfig, SearchConfig, Settings, StoreConfig

__all__ = ["AgentConfig", "SearchConfig", "Settings", "StoreConfig"]
