"""
Configuration for wallet-enrich.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

PLUGIN_NAME = "datasette-wallet-os"

DEFAULT_TIMEOUT_SECONDS = 8.0
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)


@dataclass
class LLMConfig:
    """Language model (OpenAI-compatible chat completions) configuration."""

    api_key: str | None = None
    api_key_env: str | None = "OPENAI_API_KEY"
    base_url: str | None = None  # falls back to OPENAI_API_BASE
    model: str | None = None  # falls back to OPENAI_MODEL
    timeout_seconds: float = 30.0

    def get_api_key(self) -> str | None:
        """Get API key from config or environment."""
        if self.api_key:
            return self.api_key
        if self.api_key_env:
            return os.environ.get(self.api_key_env) or None
        return None

    def get_base_url(self) -> str:
        base = self.base_url or os.environ.get("OPENAI_API_BASE") or "https://api.openai.com/v1"
        return base.rstrip("/")

    def get_model(self) -> str:
        return self.model or os.environ.get("OPENAI_MODEL") or "gpt-3.5-turbo"


@dataclass
class SearchConfig:
    """Domain search provider configuration."""

    api_url: str = "https://api.duckduckgo.com/"
    html_url: str = "https://html.duckduckgo.com/html/"
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    user_agent: str = DEFAULT_USER_AGENT


@dataclass
class IconConfig:
    """Favicon provider and disk cache configuration."""

    cache_dir: Path = field(default_factory=lambda: Path("static/icons"))
    favicon_url: str = "https://www.google.com/s2/favicons"
    default_size: int = 64
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS


def _db_path_from_env() -> Path | None:
    """Read DATABASE_URL (optionally prefixed with 'sqlite:')."""
    url = os.environ.get("DATABASE_URL")
    if not url:
        return None
    return Path(url.removeprefix("sqlite:"))


@dataclass
class EnrichConfig:
    """Complete wallet-enrich configuration."""

    db_path: Path = field(default_factory=lambda: _db_path_from_env() or Path("wallet-os.db"))
    prompts_path: Path = field(default_factory=lambda: Path("static/prompts.json"))
    notifier_buffer: int = 100

    search: SearchConfig = field(default_factory=SearchConfig)
    icons: IconConfig = field(default_factory=IconConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EnrichConfig":
        """Create config from a dictionary (e.g., from YAML)."""
        config = cls()

        if "db_path" in data:
            config.db_path = Path(data["db_path"])
        if "prompts_path" in data:
            config.prompts_path = Path(data["prompts_path"])
        if "notifier_buffer" in data:
            config.notifier_buffer = int(data["notifier_buffer"])

        if "search" in data:
            search = data["search"] or {}
            config.search = SearchConfig(
                api_url=search.get("api_url", config.search.api_url),
                html_url=search.get("html_url", config.search.html_url),
                timeout_seconds=search.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS),
                user_agent=search.get("user_agent", DEFAULT_USER_AGENT),
            )

        if "icons" in data:
            icons = data["icons"] or {}
            config.icons = IconConfig(
                cache_dir=Path(icons.get("cache_dir", "static/icons")),
                favicon_url=icons.get("favicon_url", config.icons.favicon_url),
                default_size=icons.get("default_size", 64),
                timeout_seconds=icons.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS),
            )

        if "llm" in data:
            llm = data["llm"] or {}
            config.llm = LLMConfig(
                api_key=llm.get("api_key"),
                api_key_env=llm.get("api_key_env", "OPENAI_API_KEY"),
                base_url=llm.get("base_url"),
                model=llm.get("model"),
                timeout_seconds=llm.get("timeout_seconds", 30.0),
            )

        return config

    @classmethod
    def from_yaml(cls, path: Path) -> "EnrichConfig":
        """Load config from a YAML file (datasette.yaml format)."""
        if not path.exists():
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        plugin_config = (data.get("plugins") or {}).get(PLUGIN_NAME) or {}
        return cls.from_dict(plugin_config)

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary for JSON serialization (no secrets)."""
        return {
            "db_path": str(self.db_path),
            "prompts_path": str(self.prompts_path),
            "notifier_buffer": self.notifier_buffer,
            "search": {
                "api_url": self.search.api_url,
                "html_url": self.search.html_url,
                "timeout_seconds": self.search.timeout_seconds,
            },
            "icons": {
                "cache_dir": str(self.icons.cache_dir),
                "favicon_url": self.icons.favicon_url,
                "default_size": self.icons.default_size,
                "timeout_seconds": self.icons.timeout_seconds,
            },
            "llm": {
                "base_url": self.llm.get_base_url(),
                "model": self.llm.get_model(),
                "configured": self.llm.get_api_key() is not None,
            },
        }
