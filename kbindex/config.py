"""
Configuration management for knowledge-base stores.

The configuration is stored as a TOML file in the store directory.
It specifies which embedding provider and backend to use, plus the
capacity limits, chunking parameters and backfill cooldown.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import tomli_w


CONFIG_FILENAME = "kbindex.toml"
CONFIG_VERSION = 1

DEFAULT_STORE_DIR = Path.home() / ".kbindex"

# Workers AI bge-base-en-v1.5 produces 768-dimensional vectors
DEFAULT_REMOTE_MODEL = "@cf/baai/bge-base-en-v1.5"
DEFAULT_REMOTE_DIMENSION = 768
DEFAULT_LOCAL_MODEL = "BAAI/bge-base-en-v1.5"


@dataclass
class ProviderConfig:
    """Configuration for a single provider."""
    name: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class Limits:
    """Capacity limits, in characters."""
    max_doc_size: int = 50_000
    max_total_size: int = 200_000
    max_title_length: int = 100
    default_page_size: int = 10
    max_page_size: int = 50


@dataclass
class ChunkSettings:
    size: int = 1000
    overlap: int = 200
    min_size: int = 100

    def validate(self) -> None:
        """Raise ValueError if the settings cannot produce bounded chunks."""
        if self.size <= 0:
            raise ValueError(f"chunk size must be positive (got {self.size})")
        if not 0 <= self.overlap < self.size:
            raise ValueError(
                f"chunk overlap must be in [0, size) (got {self.overlap}, size {self.size})"
            )
        if not 0 < self.min_size <= self.size:
            raise ValueError(
                f"min chunk size must be in (0, size] (got {self.min_size}, size {self.size})"
            )


@dataclass
class InitiativeLimits:
    max_name_length: int = 100
    max_description_length: int = 5000
    max_initiatives: int = 100


@dataclass
class VectorConfig:
    collection: str = "documents"
    dimension: int | None = None


@dataclass
class StoreConfig:
    """Complete store configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    backend: str = "local"

    embedding: ProviderConfig = field(
        default_factory=lambda: ProviderConfig("sentence-transformers")
    )
    vector: VectorConfig = field(default_factory=VectorConfig)
    limits: Limits = field(default_factory=Limits)
    chunking: ChunkSettings = field(default_factory=ChunkSettings)
    initiatives: InitiativeLimits = field(default_factory=InitiativeLimits)
    backfill_interval_hours: float = 24.0

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    @property
    def backfill_interval_seconds(self) -> float:
        return self.backfill_interval_hours * 3600

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def get_store_path(store_path: Path | str | None = None) -> Path:
    """
    Resolve the store directory.

    Priority: explicit argument, KBINDEX_STORE_PATH, ~/.kbindex.
    """
    if store_path is not None:
        return Path(store_path).expanduser()
    env_path = os.environ.get("KBINDEX_STORE_PATH")
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_STORE_DIR


def detect_default_embedding() -> ProviderConfig:
    """
    Pick the embedding provider for a new store.

    Workers AI when Cloudflare credentials are present in the environment,
    otherwise a local sentence-transformers model.
    """
    if os.environ.get("CLOUDFLARE_ACCOUNT_ID") and os.environ.get("CLOUDFLARE_API_TOKEN"):
        return ProviderConfig("workers-ai", {"model": DEFAULT_REMOTE_MODEL})
    return ProviderConfig("sentence-transformers", {"model": DEFAULT_LOCAL_MODEL})


def create_default_config(store_path: Path) -> StoreConfig:
    """Create a new config with auto-detected defaults."""
    return StoreConfig(path=store_path, embedding=detect_default_embedding())


def _section(data: dict, name: str) -> dict:
    value = data.get(name, {})
    if not isinstance(value, dict):
        raise ValueError(f"[{name}] must be a table")
    return value


def load_config(store_path: Path) -> StoreConfig:
    """
    Load configuration from a store directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = store_path / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    store = _section(data, "store")
    version = store.get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    embedding = _section(data, "embedding") or {"name": "sentence-transformers"}
    vector = _section(data, "vector")
    limits = _section(data, "limits")
    chunking = _section(data, "chunking")
    initiatives = _section(data, "initiatives")
    backfill = _section(data, "backfill")

    try:
        config = StoreConfig(
            path=store_path,
            version=version,
            created=store.get("created", ""),
            backend=store.get("backend", "local"),
            embedding=ProviderConfig(
                name=embedding.get("name", ""),
                params={k: v for k, v in embedding.items() if k != "name"},
            ),
            vector=VectorConfig(**vector),
            limits=Limits(**limits),
            chunking=ChunkSettings(**chunking),
            initiatives=InitiativeLimits(**initiatives),
            backfill_interval_hours=float(backfill.get("interval_hours", 24.0)),
        )
    except TypeError as e:
        raise ValueError(f"Invalid config {config_path}: {e}") from e

    config.chunking.validate()
    return config


def save_config(config: StoreConfig) -> None:
    """
    Save configuration to the store directory.

    Creates the directory if it doesn't exist.
    """
    config.path.mkdir(parents=True, exist_ok=True)

    embedding = {"name": config.embedding.name}
    embedding.update(config.embedding.params)

    vector: dict[str, Any] = {"collection": config.vector.collection}
    if config.vector.dimension is not None:
        vector["dimension"] = config.vector.dimension

    data = {
        "store": {
            "version": config.version,
            "created": config.created,
            "backend": config.backend,
        },
        "embedding": embedding,
        "vector": vector,
        "limits": vars(config.limits).copy(),
        "chunking": vars(config.chunking).copy(),
        "initiatives": vars(config.initiatives).copy(),
        "backfill": {"interval_hours": config.backfill_interval_hours},
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(store_path: Path) -> StoreConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    config_path = store_path / CONFIG_FILENAME

    if config_path.exists():
        return load_config(store_path)
    config = create_default_config(store_path)
    save_config(config)
    return config
