"""
Host process entrypoint.

Resolves configuration, initialises logging, loads the bundled and
configured programs, and serves the WebSocket API with uvicorn.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from . import HostConfig
from .api.server import create_app
from .errors import HostError, InitError
from .registry import InstanceRegistry
from .sync import SyncLoop
from .utils.logging import configure_logging
from .utils.programs import discover_programs, read_libraries

LOG = logging.getLogger(__name__)


def bootstrap(config: HostConfig) -> InstanceRegistry:
    """
    Build a registry holding every discovered program and the configured
    startup instances.
    """

    registry = InstanceRegistry(libraries=read_libraries(config.library_dir))
    for name, source in discover_programs(config.programs_dir).items():
        registry.register(name, source)
    LOG.info("Registered %d program(s): %s", len(registry.programs()), ", ".join(registry.programs()))

    for entry in config.startup:
        try:
            instance_id = registry.instantiate(entry.program, auto_init=True)
        except InitError as exc:
            LOG.error("Startup instance of %r failed to initialise: %s", entry.program, exc)
            continue
        except HostError as exc:
            LOG.error("Failed to start %r: %s", entry.program, exc)
            continue
        if entry.tag is not None:
            registry.bind(entry.tag, instance_id)
    return registry


@asynccontextmanager
async def lifespan(registry: InstanceRegistry) -> AsyncIterator[None]:
    LOG.info("Host lifespan starting with %d instance(s)", len(registry))
    try:
        yield
    finally:
        LOG.info("Host lifespan shutting down")


async def serve(config: HostConfig) -> None:
    """
    Run the API inside an asyncio loop until a shutdown signal arrives.
    """

    import uvicorn

    configure_logging(config.log_level)
    registry = bootstrap(config)
    sync_loop = SyncLoop(registry, tick_interval=config.tick_interval)

    @asynccontextmanager
    async def app_lifespan(_app) -> AsyncIterator[None]:
        async with lifespan(registry):
            yield

    app = create_app(registry=registry, config=config, sync_loop=sync_loop, lifespan=app_lifespan)
    server_config = uvicorn.Config(
        app=app,
        host=config.host,
        port=config.port,
        log_config=None,
        log_level=config.log_level.lower(),
        reload=False,
    )
    server = uvicorn.Server(config=server_config)

    def _handle_signal(signum: int, frame: Optional[object]) -> None:
        LOG.info("Received signal %s, shutting down server...", signum)
        server.should_exit = True

    for signame in ("SIGINT", "SIGTERM"):
        signal.signal(getattr(signal, signame), _handle_signal)

    LOG.info("Serving AR scenes at %s:%d", config.host, config.port)
    await server.serve()


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="AR program host")
    parser.add_argument("--config", default=None, help="path to a YAML config file")
    parser.add_argument("--host", default=None, help="bind host for the API server")
    parser.add_argument("--port", type=int, default=None, help="bind port for the API server")
    parser.add_argument("--log-level", default=None, help="logging level (DEBUG, INFO, ...)")
    return parser.parse_args(argv)


def load_config(args: argparse.Namespace) -> HostConfig:
    config = HostConfig.load(args.config)
    if args.host is not None:
        config.host = args.host
    if args.port is not None:
        config.port = int(args.port)
    if args.log_level is not None:
        config.log_level = str(args.log_level).upper()
    return config


def run(argv: Optional[list[str]] = None) -> None:
    args = parse_args(argv)
    config = load_config(args)

    try:
        asyncio.run(serve(config))
    except KeyboardInterrupt:
        LOG.info("Host interrupted by user.")


if __name__ == "__main__":
    run()
