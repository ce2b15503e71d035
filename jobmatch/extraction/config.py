from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

from jobmatch.core.config import settings

_EXTRACTION_CONFIG_CACHE: dict[str, Any] | None = None
_DEFAULT_EXTRACTION_CONFIG_PATH = Path(__file__).resolve().parents[2] / "config" / "extraction.yaml"


@dataclass(frozen=True)
class PipelineConfig:
    """Tunables for the background-extraction pipeline.

    chunk_prompt_threshold: a single-shot prompt longer than this many
        characters is split into per-source chunks.
    max_repository_links_single_call: more repository links than this
        forces chunking.
    repo_part_chars: repository content above this size is pre-split into
        ``[Part i/N]`` sources.
    chunk_part_chars: when chunking, any other source above this size is
        split into ``[Part i/N]`` chunks.
    resolve_batch_size: documents and repository links are resolved this
        many at a time.
    rate_limit_retries / backoff_base_s: retries after a rate-limit
        response, waiting base, 2*base, 4*base seconds.
    max_evidence_words: evidence quotes are clipped to this many words.
    max_important_files / max_file_bytes: bounds for repository listings.
    final_assembly_enabled: run the normalization pass after merging.
    temperature: sampling temperature for every completion request.
    """

    chunk_prompt_threshold: int = 30_000
    max_repository_links_single_call: int = 2
    repo_part_chars: int = 25_000
    chunk_part_chars: int = 25_000
    resolve_batch_size: int = 3
    rate_limit_retries: int = 3
    backoff_base_s: float = 2.0
    max_evidence_words: int = 20
    max_important_files: int = 10
    max_file_bytes: int = 100_000
    final_assembly_enabled: bool = True
    temperature: float = 0.1

    def __post_init__(self) -> None:
        if self.chunk_prompt_threshold <= 0:
            raise ValueError("chunk_prompt_threshold must be positive")
        if self.repo_part_chars <= 0:
            raise ValueError("repo_part_chars must be positive")
        if self.chunk_part_chars <= 0:
            raise ValueError("chunk_part_chars must be positive")
        if self.resolve_batch_size <= 0:
            raise ValueError("resolve_batch_size must be positive")
        if self.rate_limit_retries < 0:
            raise ValueError("rate_limit_retries must not be negative")
        if self.max_evidence_words <= 0:
            raise ValueError("max_evidence_words must be positive")


def _config_path() -> Path:
    if settings.extraction_config_path:
        return Path(settings.extraction_config_path)
    return _DEFAULT_EXTRACTION_CONFIG_PATH


def get_extraction_config() -> dict[str, Any]:
    """Load repo-level config/extraction.yaml and cache it. A missing file means defaults."""
    global _EXTRACTION_CONFIG_CACHE

    if _EXTRACTION_CONFIG_CACHE is not None:
        return _EXTRACTION_CONFIG_CACHE

    path = _config_path()
    if not path.exists():
        _EXTRACTION_CONFIG_CACHE = {}
        return _EXTRACTION_CONFIG_CACHE

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise RuntimeError(f"Failed to read extraction config '{path}': {exc}") from exc

    try:
        parsed = yaml.safe_load(raw) or {}
    except yaml.YAMLError as exc:
        raise RuntimeError(f"Invalid YAML in extraction config '{path}': {exc}") from exc

    if not isinstance(parsed, dict):
        raise RuntimeError(f"Invalid extraction config '{path}': expected a top-level mapping.")

    _EXTRACTION_CONFIG_CACHE = parsed
    return _EXTRACTION_CONFIG_CACHE


def get_extraction_value(path: str, default: Any = None) -> Any:
    """Nested lookup by dot path, e.g. 'pipeline.chunk_prompt_threshold'."""
    if not path:
        return default

    current: Any = get_extraction_config()
    for key in path.split("."):
        if not isinstance(current, dict) or key not in current:
            return default
        current = current[key]
    return current


def pipeline_config_from_mapping(values: dict[str, Any], base: PipelineConfig | None = None) -> PipelineConfig:
    known = {f.name for f in fields(PipelineConfig)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise RuntimeError(f"Unknown pipeline config keys: {', '.join(unknown)}")
    return replace(base or PipelineConfig(), **values)


def load_pipeline_config() -> PipelineConfig:
    section = get_extraction_value("pipeline") or {}
    if not isinstance(section, dict):
        raise RuntimeError("Invalid extraction config: 'pipeline' must be a mapping.")
    return pipeline_config_from_mapping(section)
