"""Configuration and prompt loading helpers."""
from __future__ import annotations

import json
import os
import pathlib
from functools import lru_cache
from typing import Any, Optional

import yaml

from errors import ConfigurationMissing

PROVIDER_NAMES = ("anthropic", "openai", "gemini")

# Allow-list for Anthropic model names; anything else fails the candidate.
DEFAULT_ANTHROPIC_MODEL_PATTERN = (
    r"^(claude-3-(opus|sonnet|haiku)-\d{8}"
    r"|claude-3-[57]-(sonnet|haiku)-\d{8}"
    r"|claude-(opus|sonnet|haiku)-4(-\d)?-\d{8})$"
)

_DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-7-sonnet-20250219",
    "gemini": "gemini-2.5-pro",
}

_prompts_cache: dict[str, Any] | None = None
_prompts_mtime: float = 0


def _config_path() -> pathlib.Path:
    return pathlib.Path(os.environ.get("INDEXER_CONFIG", "config/config.yaml"))


@lru_cache(maxsize=4)
def _load_config_cached(config_path: str, config_mtime: float) -> dict[str, Any]:
    config = yaml.safe_load(pathlib.Path(config_path).read_text(encoding="utf-8")) or {}
    return config


def _load_config() -> dict[str, Any]:
    """Load config.yaml; a missing file means "use defaults and environment"."""
    config_path = _config_path()
    if not config_path.exists():
        return {}
    mtime = config_path.stat().st_mtime
    return _load_config_cached(str(config_path), mtime)


def _load_prompts() -> dict[str, Any]:
    """Load prompts from JSON file with caching based on file modification time."""
    global _prompts_cache, _prompts_mtime

    prompts_path = pathlib.Path(__file__).parent / "prompts" / "prompts.json"
    if not prompts_path.exists():
        raise ConfigurationMissing("Prompts file not found: prompts/prompts.json")

    current_mtime = prompts_path.stat().st_mtime
    if _prompts_cache is None or current_mtime > _prompts_mtime:
        _prompts_cache = json.loads(prompts_path.read_text(encoding="utf-8"))
        _prompts_mtime = current_mtime

    return _prompts_cache


def get_prompt(prompt_id: str, **kwargs: Any) -> str:
    """Get a prompt by ID and format it with the provided variables."""
    prompts = _load_prompts()
    if prompt_id not in prompts:
        raise ConfigurationMissing(f"Prompt not found: {prompt_id}")

    template = prompts[prompt_id]["template"]
    return template.format(**kwargs)


def _first_env(*names: str) -> str:
    for name in names:
        value = os.environ.get(name)
        if value:
            return value
    return ""


def _get_storage_config() -> dict[str, Any]:
    """Object storage settings. Raises ConfigurationMissing without credentials."""
    config = _load_config()
    storage = config.get("storage", {})

    base_url = _first_env("PROJECT_URL", "SUPABASE_URL", "SB_URL") or storage.get("base_url", "")
    service_key = _first_env("SERVICE_ROLE_KEY", "SUPABASE_SERVICE_ROLE_KEY", "SB_SERVICE_ROLE_KEY")
    if not base_url or not service_key:
        raise ConfigurationMissing(
            "Missing storage secrets: set SERVICE_ROLE_KEY and PROJECT_URL (or SUPABASE_URL)"
        )

    return {
        "base_url": base_url.rstrip("/"),
        "service_key": service_key,
        "bucket": storage.get("bucket", "papers"),
        "conditional_upload": bool(storage.get("conditional_upload", False)),
    }


def _get_provider_config(model_overrides: Optional[dict[str, Optional[str]]] = None) -> dict[str, Any]:
    """Credentials, models and priority for the generation backends.

    Per-request overrides beat environment variables, which beat config.yaml.
    """
    config = _load_config()
    providers = config.get("providers", {})
    overrides = model_overrides or {}

    priority = [name for name in providers.get("priority", PROVIDER_NAMES) if name in PROVIDER_NAMES]

    result: dict[str, Any] = {
        "priority": priority,
        "temperature": float(providers.get("temperature", 0.2)),
        "max_output_tokens": int(providers.get("max_output_tokens", 4096)),
        "max_inline_pdf_bytes": int(providers.get("max_inline_pdf_bytes", 20 * 1024 * 1024)),
        "anthropic_model_pattern": providers.get("anthropic_model_pattern", DEFAULT_ANTHROPIC_MODEL_PATTERN),
    }
    for name in PROVIDER_NAMES:
        section = providers.get(name, {}) or {}
        result[name] = {
            "api_key": os.environ.get(f"{name.upper()}_API_KEY", ""),
            "model": (
                overrides.get(name)
                or os.environ.get(f"{name.upper()}_MODEL")
                or section.get("model")
                or _DEFAULT_MODELS[name]
            ),
        }
    return result


def _get_indexing_config() -> dict[str, Any]:
    """Deadlines and arXiv endpoints for the indexing pipeline."""
    config = _load_config()
    indexing = config.get("indexing", {})
    return {
        "deadline_seconds": float(indexing.get("deadline_seconds", 300)),
        "request_timeout_seconds": float(indexing.get("request_timeout_seconds", 120)),
        "arxiv_pdf_base_url": indexing.get("arxiv_pdf_base_url", "https://arxiv.org/pdf"),
        "arxiv_num_retries": int(indexing.get("arxiv_num_retries", 3)),
    }
