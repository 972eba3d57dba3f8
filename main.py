#!/usr/bin/env python3
import asyncio, logging, sys
from config.logging_config import configure
from config.app_config import settings
from multiclick.orchestration import Supervisor, EXIT_CONFIG_ERROR, EXIT_OK
from multiclick.protocols import BusClientConfig
from multiclick.services import ConfigSource, ConfigWatcher, ConnectionManager


def build_supervisor() -> Supervisor:
    source = ConfigSource(
        settings.CONFIG_PATH,
        defaults={
            "home_assistant_url": settings.HA_URL,
            "long_lived_token": settings.HA_TOKEN,
            "verbose": settings.VERBOSE or None,
        },
    )
    watcher = ConfigWatcher(source, debounce=settings.RELOAD_DEBOUNCE)

    def manager_factory(cfg):
        return ConnectionManager(
            BusClientConfig.from_settings(cfg.home_assistant_url, cfg.long_lived_token, settings)
        )

    return Supervisor(watcher, manager_factory, retry_delay=settings.CONNECT_RETRY_DELAY)


async def async_main() -> int:
    configure()
    log = logging.getLogger("main")
    if not settings.HA_TOKEN:
        log.error("HA_TOKEN is not set; put a long-lived access token in the environment or .env")
        return EXIT_CONFIG_ERROR
    log.info(f"Using configuration {settings.CONFIG_PATH}")
    return await build_supervisor().run()


def run():
    try:
        sys.exit(asyncio.run(async_main()))
    except KeyboardInterrupt:
        sys.exit(EXIT_OK)


if __name__ == "__main__":
    run()
