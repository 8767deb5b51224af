#!/usr/bin/env python3

import argparse
import asyncio
import logging
import os
import sys

from log import ColorLogHandler
from location_agent.client import (
    BASE_URL,
    MAX_RETRY_ATTEMPTS,
    RETRY_DELAY,
    LocationClient,
)

AGENT_SCRIPT = os.path.join(os.path.dirname(os.path.abspath(__file__)), "agent.py")

logger = logging.getLogger()


async def spawn_agent(config: str) -> asyncio.subprocess.Process:
    logger.info(f"Starting location agent at: {AGENT_SCRIPT}")
    process = await asyncio.create_subprocess_exec(
        sys.executable, AGENT_SCRIPT, "--config", config
    )
    logger.info(f"Location agent started with pid {process.pid}")
    return process


async def terminate_agent(process: asyncio.subprocess.Process):
    if process.returncode is not None:
        return

    logger.info(f"Terminating location agent (pid {process.pid})")
    process.terminate()
    try:
        await asyncio.wait_for(process.wait(), timeout=5)
    except asyncio.TimeoutError:
        logger.warning(f"Location agent did not exit, killing pid {process.pid}")
        process.kill()
        await process.wait()


async def main(args) -> int:
    process = None

    try:
        if args.spawn:
            process = await spawn_agent(args.config)

        async with LocationClient(args.url) as client:
            if args.command in ("wait", "get"):
                try:
                    await client.wait_ready(args.attempts, args.interval)
                except ConnectionError as e:
                    logger.error(e)
                    return 1

            if args.command == "wait":
                return 0

            result = await client.current_location()
            print(result.text)
            return 1 if result.is_error else 0

    finally:
        if process is not None:
            await terminate_agent(process)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Query a running location agent")
    parser.add_argument(
        "command",
        choices=["get", "wait", "query"],
        help="get: wait for the agent and print the location, "
        "wait: only wait for the agent, query: print the location without waiting",
    )
    parser.add_argument(
        "-u",
        "--url",
        default=BASE_URL,
        help="Specify the location agent URL",
    )
    parser.add_argument(
        "--spawn",
        action="store_true",
        help="Start the location agent and terminate it when done",
    )
    parser.add_argument(
        "-c",
        "--config",
        default="config.ini",
        help="Configuration file passed to a spawned agent",
    )
    parser.add_argument(
        "--attempts",
        type=int,
        default=MAX_RETRY_ATTEMPTS,
        help="Number of readiness checks",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=RETRY_DELAY,
        help="Seconds between readiness checks",
    )
    parser.add_argument(
        "-l",
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level",
    )
    args = parser.parse_args()

    logger.setLevel(logging.getLevelName(args.log_level.upper()))
    logger.addHandler(ColorLogHandler())

    sys.exit(asyncio.run(main(args)))
