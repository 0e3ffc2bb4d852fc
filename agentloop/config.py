"""
Typed configuration model with precedence-based loader.

Precedence (lowest to highest):
    defaults < config file (YAML) < profile overlay < env vars < CLI flags
    < per-session overrides
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, asdict
from pathlib import Path
from typing import Any

import yaml

from agentloop.errors import ConfigError


# ---------------------------------------------------------------------------
# Section dataclasses
# ---------------------------------------------------------------------------

@dataclass
class LLMProviderConfig:
    name: str = "openai"
    model: str = "gpt-4o"
    api_base: str = ""
    api_key_env: str = "OPENAI_API_KEY"
    timeout_seconds: int = 120
    max_retries: int = 2


@dataclass
class LoopConfig:
    max_turns: int = 50
    tool_timeout_seconds: float = 60.0
    system_prompt: str = ""


@dataclass
class ToolsConfig:
    enabled: list[str] = field(default_factory=list)
    disabled: list[str] = field(default_factory=list)
    root: str = ""


@dataclass
class BatchConfig:
    max_workers: int = 0
    max_depth: int = 2


@dataclass
class PluginsConfig:
    enabled: bool = False
    allow_distributions: list[str] = field(default_factory=list)
    allow_tools: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------

@dataclass
class AgentLoopConfig:
    llm: LLMProviderConfig = field(default_factory=LLMProviderConfig)
    loop: LoopConfig = field(default_factory=LoopConfig)
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)
    plugins: PluginsConfig = field(default_factory=PluginsConfig)
    profiles: dict[str, dict[str, Any]] = field(default_factory=dict)
    profile: str | None = None

    # ----- per-session overrides (applied last) ----
    _overrides: dict[str, Any] = field(default_factory=dict, repr=False)

    def set_override(self, dotpath: str, value: Any) -> None:
        """Set a per-session override using dot notation (e.g. 'llm.model')."""
        self._overrides[dotpath] = value
        _apply_dotpath(self, dotpath, value)

    def get_override(self, dotpath: str) -> Any | None:
        return self._overrides.get(dotpath)

    def to_dict(self) -> dict:
        d = asdict(self)
        d.pop("_overrides", None)
        return d

    def validate(self) -> None:
        """Raise ``ConfigError`` for values the loop cannot run with."""
        if self.loop.max_turns < 1:
            raise ConfigError(f"loop.max_turns must be >= 1, got {self.loop.max_turns}")
        if self.loop.tool_timeout_seconds <= 0:
            raise ConfigError("loop.tool_timeout_seconds must be positive")
        if self.batch.max_workers < 0:
            raise ConfigError("batch.max_workers must be >= 0")
        if self.batch.max_depth < 0:
            raise ConfigError("batch.max_depth must be >= 0")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _apply_dotpath(obj: Any, dotpath: str, value: Any) -> None:
    """Walk obj via dotpath and set the final attribute."""
    parts = dotpath.split(".")
    for part in parts[:-1]:
        if not hasattr(obj, part):
            raise ConfigError(f"Unknown config key: {dotpath}")
        obj = getattr(obj, part)
    if not hasattr(obj, parts[-1]):
        raise ConfigError(f"Unknown config key: {dotpath}")
    setattr(obj, parts[-1], value)


def _deep_merge(base: dict, overlay: dict) -> dict:
    """Recursively merge overlay into base, returning a new dict."""
    merged = dict(base)
    for k, v in overlay.items():
        if k in merged and isinstance(merged[k], dict) and isinstance(v, dict):
            merged[k] = _deep_merge(merged[k], v)
        else:
            merged[k] = v
    return merged


def _coerce(value: str, target_type: type) -> Any:
    """Coerce a string env value to the target type."""
    if target_type is bool:
        return value.lower() in ("1", "true", "yes", "on")
    if target_type is int:
        return int(value)
    if target_type is float:
        return float(value)
    if target_type is list:
        return [s.strip() for s in value.split(",") if s.strip()]
    return value


def _build_section(cls: type, raw: dict) -> Any:
    """Build a dataclass section from a raw dict, ignoring unknown keys."""
    if not isinstance(raw, dict):
        raise ConfigError(f"Config section for {cls.__name__} must be a mapping")
    valid_fields = {f.name for f in fields(cls)}
    filtered = {k: v for k, v in raw.items() if k in valid_fields}
    return cls(**filtered)


# ---------------------------------------------------------------------------
# ENV var mapping
# ---------------------------------------------------------------------------

_ENV_MAP: dict[str, tuple[str, type]] = {
    "AGENTLOOP_LLM_NAME":            ("llm.name", str),
    "AGENTLOOP_LLM_MODEL":           ("llm.model", str),
    "AGENTLOOP_LLM_API_BASE":        ("llm.api_base", str),
    "AGENTLOOP_LLM_API_KEY_ENV":     ("llm.api_key_env", str),
    "AGENTLOOP_LLM_TIMEOUT":         ("llm.timeout_seconds", int),
    "AGENTLOOP_LLM_MAX_RETRIES":     ("llm.max_retries", int),
    "AGENTLOOP_LOOP_MAX_TURNS":      ("loop.max_turns", int),
    "AGENTLOOP_LOOP_TOOL_TIMEOUT":   ("loop.tool_timeout_seconds", float),
    "AGENTLOOP_TOOLS_ENABLED":       ("tools.enabled", list),
    "AGENTLOOP_TOOLS_DISABLED":      ("tools.disabled", list),
    "AGENTLOOP_TOOLS_ROOT":          ("tools.root", str),
    "AGENTLOOP_BATCH_MAX_WORKERS":   ("batch.max_workers", int),
    "AGENTLOOP_BATCH_MAX_DEPTH":     ("batch.max_depth", int),
    "AGENTLOOP_PLUGINS_ENABLED":     ("plugins.enabled", bool),
}


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> AgentLoopConfig:
    """
    Build an AgentLoopConfig by layering sources in precedence order:

        defaults  <  config file  <  profile  <  env vars  <  CLI flags

    Parameters
    ----------
    config_path : path to YAML config file (optional)
    profile : name of a profile to apply from the config file
    cli_overrides : dict of dotpath -> value CLI flag overrides
    """
    raw: dict[str, Any] = {}

    # --- 1. Config file ---
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.is_file():
            with p.open("r", encoding="utf-8") as f:
                try:
                    file_data = yaml.safe_load(f) or {}
                except yaml.YAMLError as e:
                    raise ConfigError(f"Invalid YAML in {p}: {e}") from e
            if not isinstance(file_data, dict):
                raise ConfigError(f"Top level of {p} must be a mapping")
            raw = _deep_merge(raw, file_data)

    # --- 2. Profile overlay ---
    if profile:
        profile_data = raw.get("profiles", {}).get(profile)
        if profile_data is None:
            raise ConfigError(f"Unknown profile: {profile}")
        raw = _deep_merge(raw, profile_data)

    # --- Build sections from raw ---
    cfg = AgentLoopConfig(
        llm=_build_section(LLMProviderConfig, raw.get("llm", {})),
        loop=_build_section(LoopConfig, raw.get("loop", {})),
        tools=_build_section(ToolsConfig, raw.get("tools", {})),
        batch=_build_section(BatchConfig, raw.get("batch", {})),
        plugins=_build_section(PluginsConfig, raw.get("plugins", {})),
        profiles=raw.get("profiles", {}),
        profile=profile,
    )

    # --- 3. Env var overrides ---
    for env_var, (dotpath, target_type) in _ENV_MAP.items():
        val = os.environ.get(env_var)
        if val is not None:
            try:
                _apply_dotpath(cfg, dotpath, _coerce(val, target_type))
            except ValueError as e:
                raise ConfigError(f"Bad value for {env_var}: {val!r}") from e

    # --- 4. CLI flag overrides ---
    if cli_overrides:
        for dotpath, value in cli_overrides.items():
            _apply_dotpath(cfg, dotpath, value)

    cfg.validate()
    return cfg
