"""
Configuration Management for Mnemo

Loads configuration from ~/.mnemo/config.json and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import List

logger = logging.getLogger("mnemo.config")

# Default config paths
CONFIG_DIR = Path.home() / ".mnemo"
CONFIG_PATH = CONFIG_DIR / "config.json"

DEFAULT_STATE_FILES = ["today.md", "inbox.md", "commitments.md", "ambient-tasks.md"]
DEFAULT_EMBEDDING_MODEL = "sentence-transformers/all-MiniLM-L6-v2"


@dataclass
class PathsConfig:
    """Where memory lives on disk"""
    state_path: str = field(default_factory=lambda: str(Path.cwd() / "state"))
    logs_path: str = field(default_factory=lambda: str(Path.cwd() / "logs"))
    index_path: str = ""  # defaults to <state_path>/.memory-index
    state_files: List[str] = field(default_factory=lambda: list(DEFAULT_STATE_FILES))

    @property
    def state_dir(self) -> Path:
        return Path(self.state_path).expanduser()

    @property
    def logs_dir(self) -> Path:
        return Path(self.logs_path).expanduser()

    @property
    def index_dir(self) -> Path:
        if self.index_path:
            return Path(self.index_path).expanduser()
        return self.state_dir / ".memory-index"

    @property
    def journal_path(self) -> Path:
        return self.logs_dir / "journal.jsonl"

    @property
    def summaries_dir(self) -> Path:
        return self.logs_dir / "summaries"


@dataclass
class EmbeddingConfig:
    """Embedding model configuration"""
    model: str = DEFAULT_EMBEDDING_MODEL
    cache_dir: str = ""


@dataclass
class SearchConfig:
    """Search and relatedness tuning"""
    default_limit: int = 5
    related_fanout: int = 8
    related_limit: int = 3
    related_min_score: float = 0.4
    snippet_length: int = 80


@dataclass
class MnemoConfig:
    """Main Mnemo configuration"""
    paths: PathsConfig = field(default_factory=PathsConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    log_level: str = "INFO"


def _parse_paths_config(data: dict) -> PathsConfig:
    """Parse paths section from config dict"""
    paths_data = data.get("paths", {})
    defaults = PathsConfig()
    return PathsConfig(
        state_path=paths_data.get("state_path", defaults.state_path),
        logs_path=paths_data.get("logs_path", defaults.logs_path),
        index_path=paths_data.get("index_path", ""),
        state_files=paths_data.get("state_files", list(DEFAULT_STATE_FILES)),
    )


def _parse_embedding_config(data: dict) -> EmbeddingConfig:
    """Parse embedding section from config dict"""
    embedding_data = data.get("embedding", {})
    return EmbeddingConfig(
        model=embedding_data.get("model", DEFAULT_EMBEDDING_MODEL),
        cache_dir=embedding_data.get("cache_dir", ""),
    )


def _parse_search_config(data: dict) -> SearchConfig:
    """Parse search section from config dict"""
    search_data = data.get("search", {})
    return SearchConfig(
        default_limit=search_data.get("default_limit", 5),
        related_fanout=search_data.get("related_fanout", 8),
        related_limit=search_data.get("related_limit", 3),
        related_min_score=search_data.get("related_min_score", 0.4),
        snippet_length=search_data.get("snippet_length", 80),
    )


def load_config() -> MnemoConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (~/.mnemo/config.json)
    3. Default values

    MEMORY_DIR sets both state and logs roots (<dir>/state, <dir>/logs);
    the more specific MNEMO_STATE_PATH / MNEMO_LOGS_PATH win over it.
    """
    config = MnemoConfig()

    # Load from config file if exists
    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.paths = _parse_paths_config(data)
            config.embedding = _parse_embedding_config(data)
            config.search = _parse_search_config(data)
            config.log_level = data.get("log_level", "INFO")
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Failed to load config file %s: %s", CONFIG_PATH, e)

    # Environment variable overrides
    memory_dir = os.getenv("MEMORY_DIR")
    if memory_dir:
        config.paths.state_path = str(Path(memory_dir) / "state")
        config.paths.logs_path = str(Path(memory_dir) / "logs")
    if os.getenv("MNEMO_STATE_PATH"):
        config.paths.state_path = os.getenv("MNEMO_STATE_PATH")
    if os.getenv("MNEMO_LOGS_PATH"):
        config.paths.logs_path = os.getenv("MNEMO_LOGS_PATH")
    if os.getenv("MNEMO_INDEX_PATH"):
        config.paths.index_path = os.getenv("MNEMO_INDEX_PATH")

    if os.getenv("EMBEDDING_MODEL"):
        config.embedding.model = os.getenv("EMBEDDING_MODEL")
    if os.getenv("EMBEDDING_CACHE_DIR"):
        config.embedding.cache_dir = os.getenv("EMBEDDING_CACHE_DIR")

    if os.getenv("MNEMO_LOG_LEVEL"):
        config.log_level = os.getenv("MNEMO_LOG_LEVEL")

    return config


def save_config(config: MnemoConfig) -> None:
    """Save configuration to file."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    data = {
        "paths": {
            "state_path": config.paths.state_path,
            "logs_path": config.paths.logs_path,
            "index_path": config.paths.index_path,
            "state_files": config.paths.state_files,
        },
        "embedding": {
            "model": config.embedding.model,
            "cache_dir": config.embedding.cache_dir,
        },
        "search": {
            "default_limit": config.search.default_limit,
            "related_fanout": config.search.related_fanout,
            "related_limit": config.search.related_limit,
            "related_min_score": config.search.related_min_score,
            "snippet_length": config.search.snippet_length,
        },
        "log_level": config.log_level,
    }

    with open(CONFIG_PATH, "w") as f:
        json.dump(data, f, indent=2)

    CONFIG_PATH.chmod(0o600)


def ensure_directories(config: MnemoConfig) -> None:
    """Ensure required directories exist"""
    config.paths.state_dir.mkdir(parents=True, exist_ok=True)
    config.paths.logs_dir.mkdir(parents=True, exist_ok=True)
    config.paths.index_dir.mkdir(parents=True, exist_ok=True)
