"""Brief: Unit tests for dohrace.config.config_parser helpers.

Inputs:
  - None

Outputs:
  - None
"""

from __future__ import annotations

from typing import Any, Dict

import pytest

from dohrace.config import config_parser as cp
from dohrace.config.config_schema import DEFAULT_UPSTREAMS


def test_configured_upstreams_accepts_string_and_list() -> None:
    """Brief: configured_upstreams normalizes comma strings and lists.

    Inputs:
      - None.

    Outputs:
      - None; asserts stripping and blank removal.
    """

    assert cp.configured_upstreams(" https://a/dns-query , ,https://b/dns-query") == [
        "https://a/dns-query",
        "https://b/dns-query",
    ]
    assert cp.configured_upstreams(["https://c/dns-query", "", None]) == [
        "https://c/dns-query"
    ]


def test_configured_upstreams_falls_back_to_defaults(caplog) -> None:
    assert cp.configured_upstreams(None) == DEFAULT_UPSTREAMS
    assert cp.configured_upstreams("") == DEFAULT_UPSTREAMS
    assert cp.configured_upstreams(" , ") == DEFAULT_UPSTREAMS
    assert cp.configured_upstreams(42) == DEFAULT_UPSTREAMS
    assert "Failed to parse upstreams" in caplog.text
    # Callers get a copy, never the module-level list.
    assert cp.configured_upstreams(None) is not DEFAULT_UPSTREAMS


def test_apply_env_overrides_sets_sections() -> None:
    """Brief: DOH_* variables land in their config sections.

    Inputs:
      - None.

    Outputs:
      - None; asserts converted values and upstream override.
    """

    cfg: Dict[str, Any] = {"race": {"top_k": 5}}
    env = {
        "DOH_UPSTREAMS": "https://x/dns-query,https://y/dns-query",
        "DOH_TOP_K": "2",
        "DOH_ATTEMPT_TIMEOUT_MS": " 1500 ",
        "DOH_CACHE_TTL": "0",
        "DOH_LOG_LEVEL": "debug",
    }
    out = cp.apply_env_overrides(cfg, env)
    assert out is cfg
    assert cfg["upstreams"] == "https://x/dns-query,https://y/dns-query"
    assert cfg["race"] == {"top_k": 2, "attempt_timeout_ms": 1500}
    assert cfg["cache"] == {"ttl": 0}
    assert cfg["logging"] == {"level": "debug"}


def test_apply_env_overrides_ignores_invalid_and_blank(caplog) -> None:
    cfg: Dict[str, Any] = {"upstreams": ["https://keep/dns-query"]}
    cp.apply_env_overrides(cfg, {"DOH_TOP_K": "three", "DOH_UPSTREAMS": "  "})
    assert cfg == {"upstreams": ["https://keep/dns-query"]}
    assert "Ignoring invalid DOH_TOP_K" in caplog.text


def test_load_config_defaults_without_file() -> None:
    cfg = cp.load_config(None, environ={})
    assert cfg.upstreams == DEFAULT_UPSTREAMS
    assert cfg.race.top_k == 3
    assert cfg.race.attempt_timeout == 5.0
    assert cfg.race.deadline == 6.0
    assert cfg.cache.ttl == 300
    assert cfg.server.host == "127.0.0.1"
    assert cfg.server.port == 8053
    assert cfg.server.path == "/dns-query"
    assert cfg.geo.country_header == "CF-IPCountry"
    assert cfg.geo.default_country == "US"


def test_load_config_from_yaml_with_env(tmp_path) -> None:
    """Brief: load_config merges YAML file and environment overrides.

    Inputs:
      - tmp_path: pytest temporary directory.

    Outputs:
      - None; asserts file values and env precedence.
    """

    path = tmp_path / "config.yaml"
    path.write_text(
        "upstreams:\n"
        "  - https://one/dns-query\n"
        "  - https://two/dns-query\n"
        "server:\n"
        "  port: 9443\n"
        "race:\n"
        "  top_k: 1\n"
        "  attempt_timeout_ms: 800\n"
        "geo:\n"
        "  regional_upstreams:\n"
        "    EU: [https://eu/dns-query]\n"
    )
    cfg = cp.load_config(str(path), environ={"DOH_RACE_DEADLINE_MS": "900"})
    assert cfg.upstreams == ["https://one/dns-query", "https://two/dns-query"]
    assert cfg.server.port == 9443
    assert cfg.race.top_k == 1
    assert cfg.race.attempt_timeout == 0.8
    assert cfg.race.deadline == 0.9
    assert cfg.geo.regional_upstreams == {"EU": ["https://eu/dns-query"]}


def test_load_config_schema_error_lists_location(tmp_path) -> None:
    path = tmp_path / "bad.yaml"
    path.write_text("race:\n  top_k: 0\nbogus: 1\n")
    with pytest.raises(ValueError) as excinfo:
        cp.load_config(str(path), environ={})
    msg = str(excinfo.value)
    assert str(path) in msg
    assert "race/top_k" in msg
    assert "bogus" in msg


def test_parse_config_file_rejects_non_mapping(tmp_path) -> None:
    path = tmp_path / "list.yaml"
    path.write_text("- a\n- b\n")
    with pytest.raises(ValueError, match="must be a mapping"):
        cp.parse_config_file(str(path))


def test_parse_config_file_empty_is_empty_mapping(tmp_path) -> None:
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert cp.parse_config_file(str(path)) == {}


def test_load_config_missing_file_raises_oserror(tmp_path) -> None:
    with pytest.raises(OSError):
        cp.load_config(str(tmp_path / "missing.yaml"), environ={})


def test_load_config_invalid_env_value_is_model_error() -> None:
    with pytest.raises(ValueError, match="Invalid configuration"):
        cp.load_config(None, environ={"DOH_TOP_K": "0"})
