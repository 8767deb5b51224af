#!/usr/bin/env python3

import argparse
import asyncio
import configparser
import logging
import signal

from log import ColorLogHandler
from location_agent import LocationAgent

APP_NAME = "location-agent"

config = configparser.ConfigParser()
logger = logging.getLogger()


async def main():
    logger.info(f"Starting {APP_NAME}")

    agent = LocationAgent(config)

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()
    for signum in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(signum, stop_event.set)

    await agent.start()
    status_task = asyncio.create_task(agent.report_status())

    try:
        await stop_event.wait()
    except asyncio.CancelledError:
        pass
    finally:
        status_task.cancel()
        agent.stop()
        logger.info("Agent is gracefully shutting down")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Serve the current GPS location over HTTP"
    )
    parser.add_argument(
        "-l",
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level",
    )
    parser.add_argument(
        "--log-systemd",
        action="store_true",
        help="Enable logging to systemd journal",
    )
    parser.add_argument(
        "-c",
        "--config",
        default="config.ini",
        help="Specify the configuration file to use",
    )
    args = parser.parse_args()

    log_level = logging.getLevelName(args.log_level.upper())
    logger.setLevel(log_level)

    if args.log_systemd:
        from systemd import journal

        logger.addHandler(journal.JournaldLogHandler(identifier=APP_NAME))
    else:
        logger.addHandler(ColorLogHandler(show_name=log_level == logging.DEBUG))

    config.read(args.config)

    asyncio.run(main())
