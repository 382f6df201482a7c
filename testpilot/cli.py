"""CLI entry point for the test dashboard server."""

import argparse
import json
import logging
import sys
from pathlib import Path

from aiohttp import web
from pydantic import ValidationError

from testpilot.config import RunnerConfig, ServerConfig
from testpilot.server import create_app


def parse_runner_config(runner_config_json: str) -> RunnerConfig:
    """Parse the JSON runner configuration given on the command line."""
    if not runner_config_json.strip():
        return RunnerConfig()
    config_dict = json.loads(runner_config_json)
    if not isinstance(config_dict, dict):
        raise ValueError("Runner configuration must be a JSON object")
    return RunnerConfig(**config_dict)


def build_config(args: argparse.Namespace) -> ServerConfig:
    """Build the server configuration from parsed arguments."""
    return ServerConfig(
        host=args.host,
        port=args.port,
        reports_dir=args.reports_dir,
        registry_path=args.registry,
        runner=parse_runner_config(args.runner_config),
    )


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Run browser end-to-end tests from a local dashboard"
    )
    parser.add_argument("--host", default="127.0.0.1", help="Interface to bind")
    parser.add_argument("--port", type=int, default=3001, help="Port to listen on")
    parser.add_argument(
        "--reports-dir",
        type=Path,
        default=Path("reports"),
        help="Directory where run reports are archived",
    )
    parser.add_argument(
        "--registry",
        type=Path,
        default=None,
        help="YAML file describing the available tests (default: built-in)",
    )
    parser.add_argument(
        "--runner-config",
        default="",
        help='JSON configuration for the test runner, e.g. {"project": "firefox"}',
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
    log = logging.getLogger("testpilot")

    try:
        config = build_config(args)
        app = create_app(config)
    except (ValueError, ValidationError, FileNotFoundError) as e:
        log.error("Invalid configuration: %s", e)
        sys.exit(2)

    log.info("Dashboard API on http://%s:%d/api/tests", config.host, config.port)
    log.info("Reports archived under %s", config.reports_dir.resolve())

    web.run_app(
        app,
        host=config.host,
        port=config.port,
        handler_cancellation=True,
        print=None,
    )


if __name__ == "__main__":  # pragma: no cover
    main()
