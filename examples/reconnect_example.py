"""
Example of a long-running mug monitor that reconnects after every drop.

It reuses one `MugManager` for the whole run:
- The first `start_scanning()` finds the mug and remembers it
- After a disconnect, `start_scanning()` reconnects to the remembered mug without scanning
- State changes are logged as they arrive

Pass `--mock` to run against the in-process simulated mug, which is made to
walk out of range every few seconds.
"""

import argparse
import asyncio
import logging

from embermug.interfaces.ble import BleakAdapter, ErrorKind, MugManager
from embermug.interfaces.simulator import SimulatedMug, SimulatorConfig

# Retry delay in seconds when connection fails
RETRY_DELAY_SECONDS = 5

logger = logging.getLogger(__name__)


async def run(adapter, drop_every=None):
    """
    Keep a connection to the mug alive until cancelled.

    Parameters:
        adapter: The adapter binding to drive.
        drop_every (float | None): With a simulated mug, drop the link after this many seconds.
    """
    manager = MugManager(adapter)
    link_down = asyncio.Event()

    def on_connected():
        logger.info("Connected to %s", manager.get_state().device_name)

    def on_disconnected():
        logger.info("Disconnected")
        link_down.set()

    def on_state(state):
        logger.info(
            "%.2f °C -> %.2f °C, %s, battery %d%%",
            state.current_temp,
            state.target_temp,
            state.liquid_state.name,
            state.battery_level,
        )

    def on_error(kind, message):
        logger.warning("%s: %s", kind.value, message)
        if kind != ErrorKind.UNEXPECTED_DISCONNECT:
            link_down.set()

    manager.events.subscribe("connected", on_connected)
    manager.events.subscribe("disconnected", on_disconnected)
    manager.events.subscribe("state_change", on_state)
    manager.events.subscribe("error", on_error)

    try:
        while True:
            link_down.clear()
            logger.info("Looking for the mug...")
            if await manager.start_scanning():
                if drop_every is not None:
                    asyncio.get_running_loop().call_later(drop_every, adapter.drop_connection)
                await link_down.wait()
            logger.info("Retrying in %d seconds...", RETRY_DELAY_SECONDS)
            await asyncio.sleep(RETRY_DELAY_SECONDS)
    finally:
        logger.info("Closing the manager...")
        await manager.close()


def main():
    """Parse arguments and run the reconnection loop until Ctrl-C."""
    logging.basicConfig(level=logging.INFO)
    parser = argparse.ArgumentParser(description="Ember mug reconnection example.")
    parser.add_argument("--mock", action="store_true", help="use a simulated mug")
    args = parser.parse_args()

    if args.mock:
        adapter = SimulatedMug(SimulatorConfig(auto_physics=True, scan_delay=1.0))
        drop_every = 10.0
    else:
        adapter = BleakAdapter()
        drop_every = None

    try:
        asyncio.run(run(adapter, drop_every))
    except KeyboardInterrupt:
        logger.info("Exiting...")


if __name__ == "__main__":
    main()
