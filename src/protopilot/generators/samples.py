"""Canned output returned by mock generators."""

from __future__ import annotations

__all__ = ["DEFAULT_GENERATED_CODE"]

DEFAULT_GENERATED_CODE = '''\
import asyncio
import logging
import signal

from sdv.vdb.reply import DataPointReply
from sdv.vehicle_app import VehicleApp
from vehicle import Vehicle, vehicle

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class TestApp(VehicleApp):
    def __init__(self, vehicle_client: Vehicle):
        super().__init__()
        self.Vehicle = vehicle_client

    async def on_start(self):
        await self.Vehicle.Body.Lights.Beam.Low.IsOn.subscribe(self.on_low_beam_changed)
        await self.Vehicle.Body.Lights.Beam.Low.IsOn.set(True)

    async def on_low_beam_changed(self, data: DataPointReply):
        is_on = data.get(self.Vehicle.Body.Lights.Beam.Low.IsOn).value
        logger.info("Low beam is %s", "on" if is_on else "off")


async def main():
    vehicle_app = TestApp(vehicle)
    await vehicle_app.run()


LOOP = asyncio.get_event_loop()
LOOP.add_signal_handler(signal.SIGTERM, LOOP.stop)
LOOP.run_until_complete(main())
LOOP.close()
'''
