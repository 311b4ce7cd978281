"""
Alert Intelligence - Main Entry Point

Serves the HTTP API with the scheduler running in the background, or runs
a single cycle and exits (--once).
"""

import argparse
import asyncio
import json
import logging
import sys

import uvicorn
from pydantic import ValidationError

from alert_intelligence.api.server import create_app
from alert_intelligence.bootstrap import build_system
from alert_intelligence.config import get_config
from alert_intelligence.utils.structured_logging import setup_logging


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Alert generation scheduler")
    parser.add_argument("--once", action="store_true", help="Run one cycle, print its summary and exit")
    parser.add_argument("--host", default=None, help="Override API_HOST")
    parser.add_argument("--port", type=int, default=None, help="Override API_PORT")
    return parser.parse_args(argv)


async def run_once(config) -> int:
    logger = logging.getLogger(__name__)
    system = build_system(config)
    await system.initialize()
    try:
        summary = await system.scheduler.run_cycle()
    finally:
        await system.shutdown()
    print(json.dumps(summary.model_dump(mode="json"), indent=2))
    logger.info(f"Cycle {summary.cycle_id} finished with {summary.alerts_emitted} alert(s)")
    return 0


async def serve(config, host: str, port: int) -> None:
    logger = logging.getLogger(__name__)
    app = create_app(build_system(config))
    logger.info(f"Alert Intelligence starting on {host}:{port} ({config.environment})")
    server = uvicorn.Server(uvicorn.Config(
        app=app,
        host=host,
        port=port,
        log_level=config.api.log_level.lower(),
        access_log=False,
    ))
    await server.serve()


def main(argv=None) -> int:
    args = parse_args(argv)
    try:
        config = get_config()
    except (ValidationError, ValueError) as e:
        print(f"FATAL: Configuration error: {e}", file=sys.stderr)
        return 1

    setup_logging(config.api.log_level)
    if args.once:
        return asyncio.run(run_once(config))
    asyncio.run(serve(config, args.host or config.api.host, args.port or config.api.port))
    return 0


if __name__ == "__main__":
    sys.exit(main())
