from __future__ import annotations

import argparse
import logging
import os
from typing import Any, List, Optional

from .cache import ResponseCache
from .config.config_parser import load_config
from .config.config_schema import ProxyConfig
from .config.logging_config import init_logging, resolve_level
from .flow import QueryFlow
from .geo import regional_upstreams
from .servers.doh_api import build_server, create_doh_app
from .upstreams.candidates import CandidateSetBuilder
from .upstreams.performance import PerformanceTracker
from .upstreams.race import RaceCoordinator

logger = logging.getLogger("dohrace.main")


def build_app(cfg: ProxyConfig, *, transport=None) -> Any:
    """
    Brief: Wire the engine for one process and return the FastAPI app.

    Inputs:
      - cfg: effective ProxyConfig
      - transport: optional RaceCoordinator transport override

    Outputs:
      - FastAPI application with ``state.tracker`` and ``state.flow`` set.

    Notes:
      - The PerformanceTracker is created here exactly once and shared by the
        candidate builder and race coordinator for the process lifetime.
    """
    tracker = PerformanceTracker(window=cfg.race.window)
    builder = CandidateSetBuilder(tracker)
    coordinator = RaceCoordinator(tracker, transport=transport)
    cache = ResponseCache(ttl=cfg.cache.ttl, maxsize=cfg.cache.maxsize)

    regional_table = cfg.geo.regional_upstreams
    if regional_table:
        table = {str(k).upper(): list(v) for k, v in regional_table.items()}

        def regional_lookup(region: str) -> List[str]:
            return list(table.get(str(region).upper(), []))

    else:
        regional_lookup = regional_upstreams

    flow = QueryFlow(
        builder,
        coordinator,
        cfg.upstreams,
        cache=cache,
        top_k=cfg.race.top_k,
        attempt_timeout=cfg.race.attempt_timeout,
        deadline=cfg.race.deadline,
        regional_lookup=regional_lookup,
    )
    app = create_doh_app(
        flow,
        path=cfg.server.path,
        cache_ttl=cfg.cache.ttl,
        country_header=cfg.geo.country_header,
        default_country=cfg.geo.default_country,
        tracker=tracker,
        stats_path="/stats" if cfg.server.stats_endpoint else None,
    )
    app.state.tracker = tracker
    app.state.flow = flow
    return app


def main(argv: Optional[List[str]] = None) -> int:
    """
    Brief: CLI entrypoint; load config, set up logging and serve DoH.

    Inputs:
      - argv: optional argument list (defaults to sys.argv[1:])

    Outputs:
      - int exit code: 0 on clean shutdown, 1 on configuration errors.
    """
    parser = argparse.ArgumentParser(
        description="Adaptive multi-upstream DNS-over-HTTPS proxy"
    )
    parser.add_argument(
        "--config",
        default=os.environ.get("DOHRACE_CONFIG"),
        help="Path to YAML config (optional)",
    )
    parser.add_argument("--host", default=None, help="Listen address override")
    parser.add_argument("--port", type=int, default=None, help="Listen port override")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level override (debug, info, warn, error, crit)",
    )
    args = parser.parse_args(argv)

    try:
        cfg = load_config(args.config)
    except (OSError, ValueError) as exc:
        init_logging({"level": "error"})
        logger.error("Failed to load configuration: %s", exc)
        return 1

    if args.host:
        cfg.server.host = args.host
    if args.port:
        cfg.server.port = args.port
    log_cfg = dict(cfg.logging)
    if args.log_level:
        log_cfg["level"] = args.log_level
    init_logging(log_cfg)

    logger.info(
        "Upstreams: %s (top_k=%d, attempt_timeout=%.1fs, deadline=%.1fs)",
        ", ".join(cfg.upstreams),
        cfg.race.top_k,
        cfg.race.attempt_timeout,
        cfg.race.deadline,
    )

    app = build_app(cfg)
    server = build_server(
        app,
        cfg.server.host,
        cfg.server.port,
        cert_file=cfg.server.cert_file,
        key_file=cfg.server.key_file,
        log_level=logging.getLevelName(resolve_level(log_cfg.get("level"))).lower(),
        access_log=bool(log_cfg.get("access_log", False)),
    )
    logger.info(
        "Serving DoH on %s:%d%s", cfg.server.host, cfg.server.port, cfg.server.path
    )
    server.run()
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
