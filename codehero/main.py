"""CodeHero agent entry point.

Components are built eagerly (constructors do no I/O) and started inside
the Starlette lifespan, so background tasks and HTTP pools live on
uvicorn's event loop:

  EventBus, AnthropicClient, bridge client -> ConversationEngine
  -> ConversationSession -> ErrorCollector -> CompilationMonitor
  -> ErrorFixCycle -> FixCycleFeed (polled by the editor)
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import httpx
import uvicorn
from starlette.applications import Starlette

from codehero.api.catalog import editor_tools
from codehero.api.client import AnthropicClient
from codehero.api.engine import ConversationEngine
from codehero.api.rest import create_app
from codehero.api.session import ConversationSession
from codehero.api.tools import HostToolExecutor
from codehero.config import Settings, resolve_api_key
from codehero.events import EventBus
from codehero.handlers import CompilationMonitor, ErrorCollector, ErrorFixCycle, FixCycleFeed
from codehero.prompts import build_system_prompt

logger = logging.getLogger(__name__)


@dataclass
class Components:
    bus: EventBus
    client: AnthropicClient
    bridge_http: httpx.AsyncClient
    session: ConversationSession
    collector: ErrorCollector
    monitor: CompilationMonitor
    fix_cycle: ErrorFixCycle
    feed: FixCycleFeed


def build_components(settings: Settings) -> Components:
    bus = EventBus()
    client = AnthropicClient(settings, api_key=resolve_api_key(settings))

    # no auth headers on the bridge; it only listens on localhost
    bridge_http = httpx.AsyncClient(
        timeout=httpx.Timeout(connect=5, read=settings.host_bridge_timeout, write=10, pool=10),
    )
    engine = ConversationEngine(
        client,
        HostToolExecutor(bridge_http, settings.host_bridge_url),
        tools=editor_tools(),
        system_prompt=build_system_prompt(settings.project_name, settings.assets_path),
        max_iterations=settings.max_iterations,
    )
    session = ConversationSession(engine)

    collector = ErrorCollector(bus, settings)
    monitor = CompilationMonitor(collector, bus)
    feed = FixCycleFeed(bus)
    fix_cycle = ErrorFixCycle(
        session,
        monitor,
        bus,
        settings,
        callbacks=feed.callbacks(),
        on_message=feed.message,
    )
    return Components(bus, client, bridge_http, session, collector, monitor, fix_cycle, feed)


async def start_components(components: Components) -> None:
    await components.client.start()
    await components.bus.start()
    await components.fix_cycle.start()


async def stop_components(components: Components) -> None:
    """Stop in reverse start order; the bus drains before clients close."""
    logger.info("Shutting down CodeHero...")
    await components.fix_cycle.stop()
    await components.collector.stop()
    await components.bus.stop()
    await components.bridge_http.aclose()
    await components.client.close()
    logger.info("CodeHero shutdown complete.")


def build_app(settings: Settings) -> Starlette:
    components = build_components(settings)

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        await start_components(components)
        app.state.components = components
        logger.info(
            "CodeHero started: model=%s, max_iterations=%d, auto_fix=%s",
            settings.model,
            settings.max_iterations,
            settings.auto_fix_enabled,
        )
        try:
            yield
        finally:
            await stop_components(components)

    return create_app(
        components.session,
        components.collector,
        components.monitor,
        components.fix_cycle,
        settings,
        feed=components.feed,
        lifespan=lifespan,
    )


def main() -> None:
    settings = Settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    logger.info("Starting CodeHero for %s (bridge %s)", settings.project_name, settings.host_bridge_url)

    uvicorn.run(build_app(settings), host=settings.host, port=settings.port, log_level=settings.log_level)


if __name__ == "__main__":
    main()
