"""
Configuration management for reviewctx.

Provides default configuration and loading from .reviewctx/config.toml.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Optional
try:
    import tomllib  # Python 3.11+
except ImportError:
    import tomli as tomllib  # Fallback for older Python versions

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_DIR = ".reviewctx"

DEFAULT_CONFIG = {
    "indexer": {
        "extensions": [
            ".ts", ".js", ".tsx", ".jsx", ".py", ".java",
            ".cpp", ".c", ".go", ".rs", ".rb", ".php", ".md",
        ],
        "exclude_dirs": ["node_modules", ".git", "dist", "build", ".next", "coverage"],
        "exclude": ["*.min.js", "__pycache__", ".venv", "venv", CONFIG_DIR],
        "max_file_size": 50000,     # bytes
        "max_files": 0,             # 0 = no cap
        "batch_size": 5,            # files fetched concurrently per wave
        "batch_delay": 0.2,         # seconds between waves
        "file_delay": 0.1,          # seconds between incremental updates
    },
    "embeddings": {
        "provider": "sentence-transformers",  # or "gemini"
        "model": "all-MiniLM-L6-v2",
        "api_key_env": "GEMINI_API_KEY",
        "request_delay": 0.05,      # seconds between provider calls
        "timeout": 30.0,
    },
    "store": {
        "backend": "memory",        # "memory", "lance" or "pgvector"
        "path": f"{CONFIG_DIR}/vector-store.json",
        "lance_path": f"{CONFIG_DIR}/data.lance",
        "table_name": "code_embeddings",
        "database_url": None,
    },
    "search": {
        "max_results": 20,
        "min_similarity": 0.3,
        "hybrid_min_similarity": 0.2,
        "semantic_weight": 0.7,
        "keyword_weight": 0.3,
        "candidate_multiplier": 3,
        "file_context_boost": 1.5,
        "type_boost": 1.2,
        "recency_boost": 1.1,
        "recency_days": 7,
    },
    "context": {
        "direct": {"max_results": 15, "min_similarity": 0.4},
        "related": {"max_results": 10, "min_similarity": 0.3},
        "test": {"max_results": 8, "min_similarity": 0.25},
        "documentation": {"max_results": 5, "min_similarity": 0.2},
        # (label, min chunks, min tokens), checked in order
        "quality_levels": [
            ["EXCELLENT", 30, 50000],
            ["VERY GOOD", 20, 30000],
            ["GOOD", 10, 15000],
            ["FAIR", 5, 5000],
        ],
    },
    "logging": {
        "level": "INFO",
        "file": None,
        "json": False,
    },
}


class Config:
    """
    Configuration manager for reviewctx.

    Loads configuration from .reviewctx/config.toml if it exists,
    otherwise uses defaults.
    """

    def __init__(self, project_root: Optional[Path] = None):
        """
        Initialize configuration.

        Args:
            project_root: Root directory of the project (defaults to current directory)
        """
        self.project_root = Path(project_root) if project_root else Path.cwd()
        self.config_path = self.project_root / CONFIG_DIR / "config.toml"
        self._config = self._load_config()

    def _load_config(self) -> dict[str, Any]:
        """Load configuration from file or use defaults."""
        if not self.config_path.exists():
            logger.debug("No config file found, using defaults")
            return copy.deepcopy(DEFAULT_CONFIG)

        try:
            with open(self.config_path, "rb") as f:
                user_config = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.warning(f"Failed to load config from {self.config_path}: {e}")
            logger.warning("Using default configuration")
            return copy.deepcopy(DEFAULT_CONFIG)

        logger.info(f"Loaded config from {self.config_path}")
        return self._merge_configs(DEFAULT_CONFIG, user_config)

    def _merge_configs(self, default: dict, user: dict) -> dict:
        """
        Recursively merge user config with defaults.

        User values take precedence, but missing keys use defaults.
        """
        merged = copy.deepcopy(default)
        for key, value in user.items():
            if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
                merged[key] = self._merge_configs(merged[key], value)
            else:
                merged[key] = value
        return merged

    def get(self, *keys: str, default: Any = None) -> Any:
        """
        Get a configuration value by nested keys.

        Examples:
            config.get("indexer", "max_file_size")
            config.get("context", "direct", "min_similarity")

        Args:
            *keys: Nested keys to traverse
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        value = self._config
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value

    def set(self, *keys: str, value: Any) -> None:
        """
        Set a configuration value by nested keys.

        Args:
            *keys: Nested keys to traverse
            value: Value to set
        """
        if not keys:
            return

        current = self._config
        for key in keys[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]

        current[keys[-1]] = value

    def resolve_path(self, *keys: str) -> Optional[Path]:
        """Resolve a configured path relative to the project root."""
        raw = self.get(*keys)
        if not raw:
            return None
        path = Path(raw)
        return path if path.is_absolute() else self.project_root / path

    def embedding_api_key(self) -> Optional[str]:
        """Read the embedding provider credential from the configured environment variable."""
        env_name = self.get("embeddings", "api_key_env", default="GEMINI_API_KEY")
        return os.environ.get(env_name) or self.get("embeddings", "api_key")

    def database_url(self) -> str:
        """Connection URL for the pgvector backend."""
        url = self.get("store", "database_url") or os.environ.get("REVIEWCTX_DATABASE_URL")
        if not url:
            raise ConfigurationError(
                "store.database_url (or REVIEWCTX_DATABASE_URL) is required for the pgvector backend"
            )
        return url

    @property
    def indexer(self) -> dict[str, Any]:
        """Get indexer configuration."""
        return self._config.get("indexer", {})

    @property
    def embeddings(self) -> dict[str, Any]:
        """Get embeddings configuration."""
        return self._config.get("embeddings", {})

    @property
    def store(self) -> dict[str, Any]:
        """Get store configuration."""
        return self._config.get("store", {})

    @property
    def search(self) -> dict[str, Any]:
        """Get search configuration."""
        return self._config.get("search", {})

    def __repr__(self) -> str:
        return f"Config(project_root={self.project_root})"
