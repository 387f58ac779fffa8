"""Application configuration handling."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator

ENV_PREFIX = "RAGLINE_"
DEFAULT_CONFIG_PATH = Path("~/.config/ragline/config.yaml")

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("storage", "db_path"): "db_path",
    ("embeddings", "provider"): "embedding_provider",
    ("embeddings", "model"): "embedding_model",
    ("embeddings", "dim"): "embedding_dim",
    ("embeddings", "api_url"): "embedding_api_url",
    ("embeddings", "api_key"): "embedding_api_key",
    ("embeddings", "batch_size"): "embedding_batch_size",
    ("embeddings", "max_attempts"): "embedding_max_attempts",
    ("embeddings", "backoff_base"): "embedding_backoff_base",
    ("embeddings", "backoff_max"): "embedding_backoff_max",
    ("embeddings", "max_in_flight"): "embedding_max_in_flight",
    ("embeddings", "timeout"): "embedding_timeout",
    ("llm", "provider"): "llm_provider",
    ("llm", "api_url"): "llm_api_url",
    ("llm", "api_key"): "llm_api_key",
    ("llm", "default_model"): "llm_default_model",
    ("llm", "timeout"): "llm_timeout",
    ("chunking", "max_size"): "chunk_max_size",
    ("chunking", "overlap"): "chunk_overlap",
    ("ingest", "workers"): "ingest_workers",
    ("retrieval", "fan_out"): "search_fan_out",
    ("retrieval", "chunk_preview"): "search_chunk_preview",
    ("retrieval", "min_similarity"): "search_min_similarity",
    ("answer", "max_results"): "answer_max_results",
    ("answer", "excerpt_chars"): "answer_excerpt_chars",
    ("answer", "similarity_weight"): "confidence_similarity_weight",
    ("answer", "corroboration_threshold"): "corroboration_threshold",
    ("answer", "corroboration_target"): "corroboration_target",
}


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    db_path: Path = Field(default=Path.home() / ".ragline" / "ragline.db")

    embedding_provider: Literal["hashed", "http"] = "hashed"
    embedding_model: str = "text-embedding-3-small"
    embedding_dim: int = Field(default=384, gt=0)
    embedding_api_url: str = "http://127.0.0.1:8080/v1/embeddings"
    embedding_api_key: str | None = None
    embedding_batch_size: int = Field(default=16, gt=0)
    embedding_max_attempts: int = Field(default=4, gt=0)
    embedding_backoff_base: float = Field(default=0.5, ge=0)
    embedding_backoff_max: float = Field(default=8.0, ge=0)
    embedding_max_in_flight: int = Field(default=4, gt=0)
    embedding_timeout: float = Field(default=30.0, gt=0)

    llm_provider: Literal["extractive", "http"] = "extractive"
    llm_api_url: str = "http://127.0.0.1:8080/v1/chat/completions"
    llm_api_key: str | None = None
    llm_default_model: str = "gpt-4o-mini"
    llm_timeout: float = Field(default=60.0, gt=0)

    chunk_max_size: int = 1000
    chunk_overlap: int = 200
    ingest_workers: int = Field(default=4, gt=0)

    search_fan_out: int = Field(default=5, gt=0)
    search_chunk_preview: int = Field(default=3, gt=0)
    search_min_similarity: float = 0.0

    answer_max_results: int = Field(default=5, gt=0)
    answer_excerpt_chars: int = Field(default=200, gt=0)
    confidence_similarity_weight: float = Field(default=0.7, ge=0, le=1)
    corroboration_threshold: float = 0.2
    corroboration_target: int = Field(default=3, gt=0)

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("db_path", mode="before")
    @classmethod
    def _expand_db_path(cls, value: Any) -> Path:
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            return Path(value).expanduser()
        raise TypeError("db_path must be a path or string")

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "Settings":
        """Load YAML config and overlay env vars; fall back to defaults."""
        config_path = cls._resolve_config_path(path)
        data: dict[str, Any] = {}
        if config_path and config_path.exists():
            with config_path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
            data.update(_flatten_yaml(raw))
        data.update(_load_env_overrides())
        return cls(**data)

    @staticmethod
    def _resolve_config_path(path: Path | None) -> Path | None:
        if path is not None:
            return path.expanduser()
        env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
        if env_path:
            return Path(env_path).expanduser()
        resolved_default = DEFAULT_CONFIG_PATH.expanduser()
        return resolved_default if resolved_default.exists() else None


def _flatten_yaml(raw: Mapping[str, Any], prefix: tuple[str, ...] = ()) -> dict[str, Any]:
    """Flatten nested YAML configuration to Settings field names."""
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        next_prefix = prefix + (key,)
        if isinstance(value, Mapping):
            flat.update(_flatten_yaml(value, prefix=next_prefix))
        else:
            mapped_key = _YAML_KEY_MAP.get(next_prefix)
            if mapped_key:
                flat[mapped_key] = value
            elif key in Settings.model_fields:
                flat[key] = value
    return flat


def _load_env_overrides() -> dict[str, Any]:
    """Map environment variables with RAGLINE_ prefix into Settings fields."""
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Settings.model_fields:
            overrides[field_name] = value
    return overrides


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings accessor for dependency injection."""
    return Settings.from_yaml()


__all__ = ["Settings", "get_settings"]
