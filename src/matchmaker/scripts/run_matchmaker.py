"""
Script para ejecutar el matchmaker.

Levanta la API HTTP y, en paralelo, el consumidor de eventos de perfil.

Uso:
    python -m matchmaker.scripts.run_matchmaker
"""

import asyncio
import sys

import structlog
from aiohttp import web

from matchmaker.api import create_app
from matchmaker.config import Settings, get_settings
from matchmaker.events import build_pipeline, create_event_log
from matchmaker.log import configure_logging
from matchmaker.service import MatchmakerService

logger = structlog.get_logger()


async def run_matchmaker(settings: Settings):
    service = MatchmakerService.from_settings(settings)
    event_log = create_event_log(settings)
    pipeline = build_pipeline(event_log, service.profile_repo, service.generator, settings)

    app = create_app(service)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host=settings.api_host, port=settings.api_port)

    consumer_task = asyncio.create_task(pipeline.run())
    try:
        await site.start()
        logger.info(
            "Matchmaker activo",
            listen=settings.api_host,
            port=settings.api_port,
            health_path="/health",
            topic=settings.profile_updates_stream,
        )
        await consumer_task
    finally:
        pipeline.stop()
        if not consumer_task.done():
            await consumer_task
        await runner.cleanup()
        await event_log.close()


def main():
    """Entry point del matchmaker."""
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info("Iniciando matchmaker...")

    try:
        asyncio.run(run_matchmaker(settings))
    except KeyboardInterrupt:
        logger.info("Matchmaker detenido por usuario")
        sys.exit(0)
    except Exception as e:
        logger.error("Error fatal en matchmaker", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
