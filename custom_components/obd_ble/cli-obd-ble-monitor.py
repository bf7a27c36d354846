#!/usr/bin/env python3
"""
BLE OBD2 monitor for ELM327-compatible adapters.

This script runs the same tick-driven engine the Home Assistant integration
uses, outside of Home Assistant: it scans for the adapter, initializes the
interpreter and then polls the eight supported channels round-robin, logging a
status line every couple of seconds.

Usage: python3 cli-obd-ble-monitor.py [--name ...] [--timeout 2.0] [--debug] [--verbose] [--no-reconnect]
"""

import argparse
import asyncio
import logging

import voluptuous as vol

from elm327 import (
    CHANNEL_DEFINITIONS,
    BleakTransport,
    Engine,
    EngineConfig,
)

TICK_INTERVAL = 0.05
STATUS_INTERVAL = 2.0

LOGGER = logging.getLogger("obd_ble.monitor")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Poll OBD2 telemetry over BLE")
    parser.add_argument(
        "--name",
        dest="target_identifier",
        type=str,
        default=EngineConfig.target_identifier,
        help=f"Adapter name or address (default: {EngineConfig.target_identifier})",
    )
    parser.add_argument(
        "--timeout",
        dest="request_timeout",
        type=float,
        default=EngineConfig.request_timeout,
        help="Seconds to wait for each response",
    )
    parser.add_argument("--debug", dest="debug_logging", action="store_true", help="Log requests and responses")
    parser.add_argument("--verbose", dest="verbose_logging", action="store_true", help="Log raw BLE traffic")
    parser.add_argument(
        "--no-reconnect",
        dest="auto_reconnect",
        action="store_false",
        help="Do not rescan after the link drops",
    )
    return parser.parse_args()


def format_status(engine: Engine) -> str:
    """Return a one-line summary of the engine state and telemetry."""
    snapshot = engine.get_snapshot()
    stats = engine.get_statistics()
    values = []
    for channel, definition in CHANNEL_DEFINITIONS.items():
        value = snapshot.value(channel)
        values.append(f"{definition.name}={'-' if value is None else f'{value:.1f}'}{definition.unit}")
    return (
        f"[{engine.get_connection_state().name}] "
        + " ".join(values)
        + f" | ok {stats.successes}/{stats.total_requests} ({stats.success_rate:.1f}%)"
        + f" avg {stats.average_response_time * 1000:.0f}ms"
    )


async def run_monitor(config: EngineConfig) -> None:
    """Drive the engine tick until cancelled."""
    transport = BleakTransport()
    engine = Engine(transport, config)
    engine.start()
    loop = asyncio.get_running_loop()
    next_status = loop.time() + STATUS_INTERVAL
    try:
        while True:
            engine.tick()
            if loop.time() >= next_status:
                LOGGER.info(format_status(engine))
                next_status = loop.time() + STATUS_INTERVAL
            await asyncio.sleep(TICK_INTERVAL)
    finally:
        await transport.async_close()


def configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


if __name__ == "__main__":
    cli_args = parse_args()
    configure_logging(cli_args.debug_logging or cli_args.verbose_logging)
    try:
        engine_config = EngineConfig.from_mapping(vars(cli_args))
        asyncio.run(run_monitor(engine_config))
    except vol.Invalid as exc:
        LOGGER.error("Invalid options: %s", exc)
    except (KeyboardInterrupt, asyncio.CancelledError):
        LOGGER.info("Caught Ctrl+C, stopping monitor")
