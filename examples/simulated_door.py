#!/usr/bin/env python3
"""
Simulated Door Example for PinMon
Runs the daemon against the GPIO simulator and toggles a door contact.

Watch the feed with:  nc localhost 5000
"""
import asyncio
import logging

from pinmon import Config, GPIOReader, PinMonitorServer


async def toggle_door(reader: GPIOReader, pin: int, period: float):
    """Flip the simulated contact every period seconds"""
    level = 1
    while True:
        await asyncio.sleep(period)
        level = 1 - level
        reader.simulator.set_input(pin, level)
        print(f"🚪 Door contact driven {'high' if level else 'low'}")


async def main():
    """Simulated door example"""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    config = Config(
        pin_names={5: "Door", 6: "Window"},
        state_names={0: "open", 1: "closed"},
        gpio_mode="SIMULATOR",
        tcp_port=5000,
        log_changes=True,
    )
    reader = GPIOReader(config)
    server = PinMonitorServer(config, reader)

    print("PinMon simulated door - connect with: nc localhost 5000")
    toggler = asyncio.create_task(toggle_door(reader, 5, period=2.0))
    try:
        await server.start()
    finally:
        toggler.cancel()
        await server.stop()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n✨ Example stopped")
