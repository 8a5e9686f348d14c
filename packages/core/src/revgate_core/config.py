import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from revgate_core.errors import ConfigError

_DEFAULT_MODELS = {
    "openai": "gpt-4o",
    "anthropic": "claude-sonnet-4-20250514",
}

_API_KEY_FALLBACKS = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
}

BUILTIN_PROMPTS_DIR = Path(__file__).parent / "prompts"
_BUILTIN_SYSTEM_PROMPT = BUILTIN_PROMPTS_DIR / "system-prompt.md"


@dataclass
class ReviewConfig:
    """Configuration resolved once at process start and passed to every component.

    Nothing below the CLI reads the environment directly; the worker process
    rebuilds the same struct from the same sources when it starts.
    """

    provider: str = "openai"
    model: str | None = None
    api_key: str | None = None
    base_url: str | None = None
    extra_params: dict[str, Any] = field(default_factory=dict)
    max_context_bytes: int = 200_000
    manifest_threshold_bytes: int = 0  # 0 disables the tracked-file manifest
    manifest_fraction: float = 0.5
    max_diff_bytes: int = 800_000
    project_context: list[str] = field(default_factory=list)
    store: str = "file"  # "file" | "sqlite"
    store_path: str | None = None
    system_prompt: str | None = None  # None = <data dir>/system-prompt.md, then built-in
    attach_timeout: float | None = None
    poll_interval: float = 1.0
    queued_exit_code: int = 3
    default_branch: str = "main"

    @property
    def resolved_model(self) -> str:
        return self.model or _DEFAULT_MODELS.get(self.provider, "")


_FIELD_NAMES = {f.name for f in fields(ReviewConfig)}


def _parse_int(raw: Optional[str], default: int) -> int:
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


def _parse_fraction(raw: Optional[str], default: float) -> float:
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return default
    return value if 0 < value <= 1 else default


def _parse_extra_params(raw: str) -> dict:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Failed to parse REVGATE_EXTRA_PARAMS: {e}") from e
    if not isinstance(parsed, dict):
        raise ConfigError("REVGATE_EXTRA_PARAMS must be a JSON object")
    return parsed


def load_config(
    config_path: str = ".revgate.yml",
    cli_overrides: Optional[dict] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ReviewConfig:
    """
    Build a ReviewConfig by merging (in order of precedence):
      1. Built-in defaults
      2. .revgate.yml in the current directory
      3. REVGATE_* environment variables
      4. CLI argument overrides
    """
    env = os.environ if environ is None else environ
    values: dict[str, Any] = {}

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        if not isinstance(file_config, dict):
            raise ConfigError(f"{config_path} must contain a mapping")
        unknown = set(file_config) - _FIELD_NAMES
        if unknown:
            raise ConfigError(f"Unknown keys in {config_path}: {', '.join(sorted(unknown))}")
        values.update(file_config)

    defaults = ReviewConfig()
    if env.get("REVGATE_PROVIDER"):
        values["provider"] = env["REVGATE_PROVIDER"]
    if env.get("REVGATE_MODEL"):
        values["model"] = env["REVGATE_MODEL"]
    if env.get("REVGATE_BASE_URL"):
        values["base_url"] = env["REVGATE_BASE_URL"]
    if env.get("REVGATE_EXTRA_PARAMS"):
        values["extra_params"] = _parse_extra_params(env["REVGATE_EXTRA_PARAMS"])
    if "REVGATE_MAX_CONTEXT_BYTES" in env:
        values["max_context_bytes"] = _parse_int(env["REVGATE_MAX_CONTEXT_BYTES"], defaults.max_context_bytes)
    if "REVGATE_MANIFEST_THRESHOLD" in env:
        values["manifest_threshold_bytes"] = _parse_int(
            env["REVGATE_MANIFEST_THRESHOLD"], defaults.manifest_threshold_bytes
        )
    if "REVGATE_MANIFEST_FRACTION" in env:
        values["manifest_fraction"] = _parse_fraction(env["REVGATE_MANIFEST_FRACTION"], defaults.manifest_fraction)
    if "REVGATE_MAX_DIFF_BYTES" in env:
        values["max_diff_bytes"] = _parse_int(env["REVGATE_MAX_DIFF_BYTES"], defaults.max_diff_bytes)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                values[key] = value

    config = ReviewConfig(**values)
    if config.provider not in _DEFAULT_MODELS:
        raise ConfigError(f"Unknown model provider: {config.provider!r}. Choose 'openai' or 'anthropic'.")

    # Credentials come from the environment only, never from the YAML file.
    config.api_key = env.get("REVGATE_API_KEY") or env.get(_API_KEY_FALLBACKS[config.provider])
    return config


def load_system_prompt(config: ReviewConfig, data_dir: Optional[str] = None) -> str:
    """
    Load the reviewer base prompt.

    An explicitly configured path must exist. Otherwise the repository's
    ``<data dir>/system-prompt.md`` wins over the built-in default.
    """
    if config.system_prompt:
        p = Path(config.system_prompt)
        if not p.exists():
            raise ConfigError(f"System prompt file not found: {config.system_prompt}")
        return p.read_text(encoding="utf-8")

    if data_dir:
        repo_prompt = Path(data_dir) / "system-prompt.md"
        if repo_prompt.exists():
            return repo_prompt.read_text(encoding="utf-8")

    if _BUILTIN_SYSTEM_PROMPT.exists():
        return _BUILTIN_SYSTEM_PROMPT.read_text(encoding="utf-8")

    raise ConfigError("No system prompt configured and built-in default is missing.")
