"""CLI entry point: ``python -m tesla_agent [gather|catch|login] [options]``."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

import structlog

from tesla_agent.config import AgentSettings
from tesla_agent.exceptions import AgentError


def _configure_logging(level: str, fmt: str) -> None:
    """Set up structlog with console or JSON rendering."""
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper(), logging.INFO),
        stream=sys.stderr,
    )

    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if fmt == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tesla-agent",
        description="Log Tesla vehicle data to SQLite and MQTT",
    )
    parser.add_argument(
        "mode",
        nargs="?",
        choices=("gather", "catch", "login"),
        default="gather",
        help="gather: poll the API (default); catch: persist from MQTT; "
        "login: store a new API token",
    )
    parser.add_argument("--dbpath", dest="db_path", help="SQLite database path")
    parser.add_argument("--vname", dest="vehicle_name", help="Name of vehicle to watch")
    parser.add_argument(
        "--disable-mqtt",
        dest="mqtt_enabled",
        action="store_false",
        default=None,
        help="Disable MQTT republishing",
    )
    parser.add_argument("--mqtt-uri", dest="mqtt_uri", help="MQTT broker URI")
    parser.add_argument("--mqtt-topic", dest="mqtt_topic", help="MQTT topic")
    parser.add_argument(
        "--session-expiry",
        dest="mqtt_session_expiry_seconds",
        type=int,
        help="MQTT session expiry for catch mode (seconds)",
    )
    parser.add_argument(
        "--clean-session",
        dest="mqtt_clean_session",
        action="store_true",
        default=None,
        help="Start catch mode with a clean MQTT session",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Enable debug logging",
    )
    return parser


def load_settings(args: argparse.Namespace) -> AgentSettings:
    """Load settings from env / .env, then override with explicit CLI flags."""
    overrides = {
        field: value
        for field, value in vars(args).items()
        if field in AgentSettings.model_fields and value is not None
    }
    if args.verbose:
        overrides["log_level"] = "DEBUG"
    return AgentSettings(**overrides)


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    settings = load_settings(args)

    _configure_logging(settings.log_level, settings.log_format)

    logger = structlog.get_logger("tesla_agent")
    logger.info(
        "agent_starting",
        version=__import__("tesla_agent").__version__,
        mode=args.mode,
        db_path=settings.db_path,
        vehicle_name=settings.vehicle_name,
        mqtt_enabled=settings.mqtt_enabled,
    )

    from tesla_agent.supervisor import (
        install_signal_handlers,
        run_catcher,
        run_gatherer,
        run_login,
    )

    async def _run() -> None:
        if args.mode == "login":
            await run_login(settings)
            return
        shutdown = asyncio.Event()
        install_signal_handlers(shutdown)
        if args.mode == "catch":
            await run_catcher(settings, shutdown=shutdown)
        else:
            await run_gatherer(settings, shutdown=shutdown)

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        logger.info("agent_interrupted")
        sys.exit(0)
    except AgentError as exc:
        logger.critical(
            "agent_fatal",
            error_type=type(exc).__name__,
            error=str(exc),
            exit_code=exc.exit_code,
        )
        sys.exit(exc.exit_code)
    except Exception:
        logger.exception("agent_crashed")
        sys.exit(1)


if __name__ == "__main__":
    main()
