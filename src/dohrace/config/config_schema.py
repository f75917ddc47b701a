"""JSON Schema validation and typed models for the dohrace YAML configuration.

Brief:
  ``validate_config`` checks the raw YAML mapping against CONFIG_SCHEMA using
  jsonschema. ``ProxyConfig`` and its sections are the pydantic models the rest
  of the process consumes once defaults and environment overrides are applied.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from jsonschema import Draft202012Validator
from pydantic import BaseModel, Field

logger = logging.getLogger("dohrace.config.config_schema")

DEFAULT_UPSTREAMS = [
    "https://cloudflare-dns.com/dns-query",
    "https://dns.google/dns-query",
    "https://dns.quad9.net/dns-query",
    "https://doh.opendns.com/dns-query",
]

_URL_LIST = {"type": "array", "items": {"type": "string", "minLength": 1}}

CONFIG_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "dohrace configuration",
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "upstreams": {
            "oneOf": [_URL_LIST, {"type": "string"}],
            "description": "Global DoH upstream URLs (list or comma separated).",
        },
        "server": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "host": {"type": "string"},
                "port": {"type": "integer", "minimum": 1, "maximum": 65535},
                "path": {"type": "string", "pattern": "^/"},
                "stats_endpoint": {"type": "boolean"},
                "cert_file": {"type": ["string", "null"]},
                "key_file": {"type": ["string", "null"]},
            },
        },
        "race": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "top_k": {"type": "integer", "minimum": 1},
                "attempt_timeout_ms": {"type": "integer", "minimum": 1},
                "deadline_ms": {"type": "integer", "minimum": 1},
                "window": {"type": "integer", "minimum": 1},
            },
        },
        "cache": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "ttl": {"type": "integer", "minimum": 0},
                "maxsize": {"type": "integer", "minimum": 1},
            },
        },
        "geo": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "country_header": {"type": "string", "minLength": 1},
                "default_country": {"type": "string", "minLength": 2},
                "regional_upstreams": {
                    "type": "object",
                    "additionalProperties": _URL_LIST,
                },
            },
        },
        "logging": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "level": {"type": "string"},
                "stderr": {"type": "boolean"},
                "file": {"type": ["string", "null"]},
                "syslog": {"type": ["boolean", "string"]},
                "access_log": {"type": "boolean"},
            },
        },
    },
}


def validate_config(cfg: Dict[str, Any], *, config_path: Optional[str] = None) -> None:
    """Brief: Validate a parsed YAML mapping against CONFIG_SCHEMA.

    Inputs:
      - cfg: Parsed configuration mapping.
      - config_path: Optional path used in error messages.

    Outputs:
      - None.

    Raises:
      - ValueError: listing every schema violation, one per line.
    """

    validator = Draft202012Validator(CONFIG_SCHEMA)
    errors = sorted(validator.iter_errors(cfg), key=lambda e: list(e.path))
    if not errors:
        return
    where = f" ({config_path})" if config_path else ""
    lines = []
    for err in errors:
        loc = "/".join(str(p) for p in err.path) or "<root>"
        lines.append(f"  - {loc}: {err.message}")
    raise ValueError(f"Invalid configuration{where}:\n" + "\n".join(lines))


class ServerConfig(BaseModel):
    """Brief: Listener settings for the DoH HTTP front end."""

    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8053, ge=1, le=65535)
    path: str = Field(default="/dns-query")
    stats_endpoint: bool = Field(default=True)
    cert_file: Optional[str] = None
    key_file: Optional[str] = None


class RaceConfig(BaseModel):
    """Brief: Racing policy.

    Inputs:
      - top_k: number of best-scoring upstreams raced first.
      - attempt_timeout_ms: per-attempt timeout.
      - deadline_ms: overall race ceiling; defaults to attempt timeout + 1s.
      - window: latency samples kept per upstream.
    """

    top_k: int = Field(default=3, ge=1)
    attempt_timeout_ms: int = Field(default=5000, ge=1)
    deadline_ms: Optional[int] = Field(default=None, ge=1)
    window: int = Field(default=100, ge=1)

    @property
    def attempt_timeout(self) -> float:
        return self.attempt_timeout_ms / 1000.0

    @property
    def deadline(self) -> float:
        ms = self.deadline_ms or (self.attempt_timeout_ms + 1000)
        return ms / 1000.0


class CacheConfig(BaseModel):
    ttl: int = Field(default=300, ge=0)
    maxsize: int = Field(default=10000, ge=1)


class GeoConfig(BaseModel):
    country_header: str = Field(default="CF-IPCountry")
    default_country: str = Field(default="US")
    regional_upstreams: Optional[Dict[str, List[str]]] = None


class ProxyConfig(BaseModel):
    """Brief: Fully-resolved process configuration.

    Inputs:
      - upstreams: global upstream pool (already defaulted).
      - server/race/cache/geo: section models.
      - logging: mapping handed to init_logging().

    Outputs:
      - ProxyConfig instance.
    """

    upstreams: List[str] = Field(default_factory=lambda: list(DEFAULT_UPSTREAMS))
    server: ServerConfig = Field(default_factory=ServerConfig)
    race: RaceConfig = Field(default_factory=RaceConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    geo: GeoConfig = Field(default_factory=GeoConfig)
    logging: Dict[str, Any] = Field(default_factory=dict)
