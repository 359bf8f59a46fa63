"""
# A Python client for Ember smart mugs over Bluetooth Low Energy

The mug is driven through a `embermug.interfaces.ble.MugManager`, built
around an adapter binding: `BleakAdapter` for real hardware or
`embermug.interfaces.simulator.SimulatedMug` for tests and demos.

Events are delivered through the manager's own pypubsub publisher:

- embermug.scanning(scanning) - a scan started or stopped
- embermug.device_found(name) - the first matching mug was seen
- embermug.connected() - setup finished and the mug is ready
- embermug.disconnected() - the link is down
- embermug.state_change(state) - a full `DeviceState` snapshot after every update
- embermug.error(kind, message) - a terminal failure, reported once

Example usage:
```
import asyncio
from embermug.interfaces.ble import BleakAdapter, MugManager

async def main():
    manager = MugManager(BleakAdapter())
    connected = asyncio.Event()
    def on_connected():
        connected.set()
    manager.events.subscribe("connected", on_connected)
    await manager.start_scanning()
    await asyncio.wait_for(connected.wait(), 60)
    await manager.set_target_temp(57.5)
    print(manager.get_state())
    await manager.close()

asyncio.run(main())
```
"""

from embermug.models import (
    MAX_TEMP_CELSIUS,
    MIN_TEMP_CELSIUS,
    DeviceState,
    LiquidState,
    RGBAColor,
    TemperatureUnit,
)

__version__ = "0.3.0"

__all__ = [
    "DeviceState",
    "LiquidState",
    "MAX_TEMP_CELSIUS",
    "MIN_TEMP_CELSIUS",
    "RGBAColor",
    "TemperatureUnit",
    "__version__",
]
