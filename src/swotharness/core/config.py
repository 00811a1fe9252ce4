"""Configuration loading (TOML, env vars, .env)."""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from swotharness.types.config import HarnessConfig

logger = logging.getLogger(__name__)

# Load .env from current directory (and parents), won't override existing env vars
load_dotenv()

CONFIG_DIR = ".swot-harness"

ENV_MAP = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
}

_INT_KEYS = ("thinking_budget", "max_tokens", "approval_timeout_ms")
_STR_KEYS = ("provider", "model", "base_url", "workspace", "system_prompt")


def load_env_config() -> dict[str, Any]:
    """Load configuration from environment variables."""
    config: dict[str, Any] = {}

    if provider := os.environ.get("SWOT_HARNESS_PROVIDER"):
        config["provider"] = provider
    if model := os.environ.get("SWOT_HARNESS_MODEL"):
        config["model"] = model

    return config


def load_toml_config(cwd: str | Path | None = None) -> dict[str, Any]:
    """Load the ``[agent]`` table of the first ``.swot-harness/config.toml`` found.

    Looks in ``cwd`` (or the current directory) and then in the home
    directory. A file that fails to parse is logged and skipped.
    """
    search_dirs = [Path(cwd) if cwd else Path.cwd(), Path.home()]
    for d in search_dirs:
        toml_path = d / CONFIG_DIR / "config.toml"
        if not toml_path.is_file():
            continue
        try:
            with open(toml_path, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as exc:
            logger.warning("Ignoring unreadable config %s: %s", toml_path, exc)
            continue
        agent = data.get("agent", {})
        return agent if isinstance(agent, dict) else {}
    return {}


def resolve_api_key(provider: str, explicit_key: str | None = None) -> str | None:
    """Resolve an API key from an explicit value, then the provider's env var."""
    if explicit_key:
        return explicit_key
    env_var = ENV_MAP.get(provider)
    if env_var:
        return os.environ.get(env_var) or None
    return None


def load_config(cwd: str | Path | None = None, **overrides: Any) -> HarnessConfig:
    """Build a :class:`HarnessConfig`.

    Precedence, lowest first: defaults, ``config.toml``, environment,
    explicit ``overrides`` (``None`` values are ignored).
    """
    merged: dict[str, Any] = {}
    merged.update(_clean(load_toml_config(cwd)))
    merged.update(load_env_config())
    merged.update({k: v for k, v in overrides.items() if v is not None})

    extra = {
        k: merged.pop(k)
        for k in list(merged)
        if k not in _INT_KEYS and k not in _STR_KEYS and k != "api_key"
    }
    config = HarnessConfig(**merged, extra=extra)
    config.api_key = resolve_api_key(config.provider, config.api_key)
    return config


def _clean(raw: dict[str, Any]) -> dict[str, Any]:
    """Drop TOML values with the wrong type instead of failing later."""
    cleaned: dict[str, Any] = {}
    for key, value in raw.items():
        if key in _INT_KEYS and not (isinstance(value, int) and not isinstance(value, bool)):
            logger.warning("Config key %s must be an integer, got %r", key, value)
            continue
        if key in _STR_KEYS and not isinstance(value, str):
            logger.warning("Config key %s must be a string, got %r", key, value)
            continue
        if key == "api_key":
            logger.warning("Ignoring api_key in config.toml; use the environment instead")
            continue
        cleaned[key] = value
    return cleaned
