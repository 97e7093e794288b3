"""codecontext configuration.

Two entry points build the same ``ContextConfig``:

* ``config_from_request()``: the ``config`` object every RPC call carries
  (``{apiKeys: {voyage, pinecone}, vectordb: {indexName, cloud, region}}``).
* ``load_config()``: CLI / server use. Priority (high → low):
    1. Environment variables (PINECONE_API_KEY, VOYAGE_API_KEY, CODECONTEXT_*)
    2. Per-project codecontext.yaml
    3. Global ~/.codecontext/config.yaml  (no API keys allowed)
    4. Hardcoded defaults

All YAML reads use yaml.safe_load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from codecontext.errors import ConfigurationError

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".codecontext"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "codecontext.yaml"

# Matches api_key, apikey, api-key, api_secret, *_token, token, *_secret,
# secret, password, passwd, credential(s).
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["vectordb", "embedding", "generation", "plans"]
)


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class ApiKeysCfg:
    """Provider credentials. Only ever sourced from requests or env vars."""

    pinecone: str = ""
    voyage: str = ""
    anthropic: str = ""
    openai: str = ""


@dataclass
class VectorDbCfg:
    """Pinecone index location (codecontext.yaml: vectordb:)."""

    index_name: str = ""
    cloud: str = "aws"
    region: str = "us-east-1"


@dataclass
class EmbeddingCfg:
    """Embedding model (codecontext.yaml: embedding:)."""

    model: str = "voyage/voyage-code-2"
    dimensions: int = 1536


@dataclass
class GenerationCfg:
    """Chat completion model (codecontext.yaml: generation:)."""

    model: str = "anthropic/claude-3-5-sonnet-20241022"
    max_tokens: int = 4000


@dataclass
class PlansCfg:
    """Plan persistence polling (codecontext.yaml: plans:).

    Attributes:
        poll_attempts: Reads attempted before a plan write is given up on.
        poll_initial_delay: First backoff delay in seconds; doubles per attempt.
    """

    poll_attempts: int = 3
    poll_initial_delay: float = 1.0


@dataclass
class ContextConfig:
    """Root configuration object."""

    api_keys: ApiKeysCfg = field(default_factory=ApiKeysCfg)
    vectordb: VectorDbCfg = field(default_factory=VectorDbCfg)
    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    plans: PlansCfg = field(default_factory=PlansCfg)

    def require_vector_store(self) -> None:
        """Raise ConfigurationError unless the Pinecone key and index name are set."""
        if not self.api_keys.pinecone or not self.vectordb.index_name:
            raise ConfigurationError("Missing required configuration")

    def to_request(self) -> dict[str, Any]:
        """Serialize back into the RPC ``config`` shape."""
        return {
            "apiKeys": {
                "pinecone": self.api_keys.pinecone,
                "voyage": self.api_keys.voyage,
            },
            "vectordb": {
                "indexName": self.vectordb.index_name,
                "cloud": self.vectordb.cloud,
                "region": self.vectordb.region,
            },
        }


# ---------------------------------------------------------------------------
# RPC config
# ---------------------------------------------------------------------------


def config_from_request(raw: dict[str, Any] | None) -> ContextConfig:
    """Build a ContextConfig from the RPC ``config`` object.

    Raises:
        ConfigurationError: If the Pinecone key or index name is missing.
    """
    raw = raw or {}
    keys = raw.get("apiKeys") or {}
    vdb = raw.get("vectordb") or {}

    cfg = ContextConfig(
        api_keys=ApiKeysCfg(
            pinecone=str(keys.get("pinecone") or ""),
            voyage=str(keys.get("voyage") or ""),
            anthropic=str(keys.get("anthropic") or ""),
            openai=str(keys.get("openai") or ""),
        ),
        vectordb=VectorDbCfg(
            index_name=str(vdb.get("indexName") or ""),
            cloud=str(vdb.get("cloud") or "aws"),
            region=str(vdb.get("region") or "us-east-1"),
        ),
    )
    cfg.require_vector_store()
    return cfg


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigurationError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigurationError(
                        f"Config file '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}'; ignored.",
                UserWarning,
                stacklevel=4,
            )


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any]) -> ContextConfig:
    cfg = ContextConfig()

    if "vectordb" in data:
        v = data["vectordb"]
        cfg.vectordb = VectorDbCfg(
            index_name=str(v.get("index_name", cfg.vectordb.index_name)),
            cloud=str(v.get("cloud", cfg.vectordb.cloud)),
            region=str(v.get("region", cfg.vectordb.region)),
        )

    if "embedding" in data:
        e = data["embedding"]
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model)),
            dimensions=int(e.get("dimensions", cfg.embedding.dimensions)),
        )

    if "generation" in data:
        g = data["generation"]
        cfg.generation = GenerationCfg(
            model=str(g.get("model", cfg.generation.model)),
            max_tokens=int(g.get("max_tokens", cfg.generation.max_tokens)),
        )

    if "plans" in data:
        p = data["plans"]
        cfg.plans = PlansCfg(
            poll_attempts=int(p.get("poll_attempts", cfg.plans.poll_attempts)),
            poll_initial_delay=float(
                p.get("poll_initial_delay", cfg.plans.poll_initial_delay)
            ),
        )

    return cfg


def _apply_env_overrides(cfg: ContextConfig) -> ContextConfig:
    """Credentials and CODECONTEXT_* overrides from the environment."""
    cfg.api_keys.pinecone = os.environ.get("PINECONE_API_KEY", cfg.api_keys.pinecone)
    cfg.api_keys.voyage = os.environ.get("VOYAGE_API_KEY", cfg.api_keys.voyage)
    cfg.api_keys.anthropic = os.environ.get("ANTHROPIC_API_KEY", cfg.api_keys.anthropic)
    cfg.api_keys.openai = os.environ.get("OPENAI_API_KEY", cfg.api_keys.openai)
    if index_name := os.environ.get("CODECONTEXT_INDEX_NAME"):
        cfg.vectordb.index_name = index_name
    if model := os.environ.get("CODECONTEXT_GENERATION_MODEL"):
        cfg.generation.model = model
    if model := os.environ.get("CODECONTEXT_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> ContextConfig:
    """Load and return a merged *ContextConfig*.

    Applies layers in order: global → per-project → env vars.

    Raises:
        ConfigurationError: If the global config contains API-key-like fields.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_project, project_cfg_path)
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)
    return _apply_env_overrides(cfg)
