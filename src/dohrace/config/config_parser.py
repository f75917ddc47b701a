"""Configuration parsing and normalization helpers for dohrace.

Brief:
  This module contains the configuration-parsing utilities used by the CLI
  entrypoint. It centralizes:
    - reading the optional YAML config file
    - JSON Schema validation (validate_config)
    - environment overrides (DOH_UPSTREAMS and friends)
    - normalization of the upstream list with its hardcoded fallback

Inputs:
  - YAML config paths and environment mappings

Outputs:
  - ProxyConfig instances
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Mapping, Optional

import yaml

from .config_schema import DEFAULT_UPSTREAMS, ProxyConfig, validate_config

logger = logging.getLogger("dohrace.config.config_parser")

# Environment variable -> (section, key, converter)
_ENV_OVERRIDES = {
    "DOH_TOP_K": ("race", "top_k", int),
    "DOH_ATTEMPT_TIMEOUT_MS": ("race", "attempt_timeout_ms", int),
    "DOH_RACE_DEADLINE_MS": ("race", "deadline_ms", int),
    "DOH_CACHE_TTL": ("cache", "ttl", int),
    "DOH_LOG_LEVEL": ("logging", "level", str),
}


def configured_upstreams(value: Any) -> List[str]:
    """Brief: Normalize an upstream setting to an ordered list of URLs.

    Inputs:
      - value: None, a comma separated string, or a list of strings.

    Outputs:
      - list[str]: stripped, non-empty URLs; DEFAULT_UPSTREAMS when the value
        is unset, empty or cannot be interpreted.

    Example:
      >>> configured_upstreams(" https://a/dns-query , ,https://b/dns-query")
      ['https://a/dns-query', 'https://b/dns-query']
      >>> len(configured_upstreams(None))
      4
    """

    if value is None:
        return list(DEFAULT_UPSTREAMS)
    if isinstance(value, str):
        items: List[Any] = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = list(value)
    else:
        logger.error("Failed to parse upstreams %r; using defaults", value)
        return list(DEFAULT_UPSTREAMS)

    urls = [str(u).strip() for u in items if u is not None and str(u).strip()]
    if not urls:
        logger.warning("Upstream list is empty; using defaults")
        return list(DEFAULT_UPSTREAMS)
    return urls


def parse_config_file(config_path: str) -> Dict[str, Any]:
    """Brief: Read and schema-validate a YAML config file.

    Inputs:
      - config_path: Path to the YAML configuration file.

    Outputs:
      - dict: Parsed configuration mapping ({} for an empty file).

    Raises:
      - ValueError: When the root is not a mapping or validation fails.
      - OSError: When the file cannot be read.
    """

    with open(config_path, "r") as f:
        cfg = yaml.safe_load(f) or {}

    if not isinstance(cfg, dict):
        raise ValueError("Configuration root must be a mapping")

    validate_config(cfg, config_path=config_path)
    return cfg


def apply_env_overrides(
    cfg: Dict[str, Any], environ: Optional[Mapping[str, str]] = None
) -> Dict[str, Any]:
    """Brief: Overlay DOH_* environment variables onto a config mapping.

    Inputs:
      - cfg: Parsed configuration mapping (mutated in-place).
      - environ: Optional environment mapping (defaults to os.environ).

    Outputs:
      - dict: The same mapping with overrides applied.

    Notes:
      - DOH_UPSTREAMS replaces the configured upstream list when non-empty.
      - Malformed numeric overrides are logged and ignored.
    """

    env = os.environ if environ is None else environ

    raw_upstreams = env.get("DOH_UPSTREAMS")
    if raw_upstreams is not None and raw_upstreams.strip():
        cfg["upstreams"] = raw_upstreams

    for var, (section, key, conv) in _ENV_OVERRIDES.items():
        raw = env.get(var)
        if raw is None or not str(raw).strip():
            continue
        try:
            value = conv(str(raw).strip())
        except (TypeError, ValueError):
            logger.error("Ignoring invalid %s=%r", var, raw)
            continue
        sub = cfg.get(section)
        if not isinstance(sub, dict):
            sub = {}
            cfg[section] = sub
        sub[key] = value
    return cfg


def load_config(
    config_path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ProxyConfig:
    """Brief: Build the effective ProxyConfig from file, environment and defaults.

    Inputs:
      - config_path: Optional YAML path; a missing file is an error only when
        the path was given explicitly.
      - environ: Optional environment mapping (defaults to os.environ).

    Outputs:
      - ProxyConfig.

    Raises:
      - ValueError: For schema or model validation failures.
    """

    cfg: Dict[str, Any] = {}
    if config_path:
        cfg = parse_config_file(config_path)

    apply_env_overrides(cfg, environ)
    cfg["upstreams"] = configured_upstreams(cfg.get("upstreams"))

    try:
        return ProxyConfig(**cfg)
    except Exception as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc
