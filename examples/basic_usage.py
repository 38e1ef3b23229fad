"""Basic usage example for pypowerswitch library."""

import asyncio

from pypowerswitch import PowerSwitchClient


async def main() -> None:
    """Log in, list every relay and toggle the first one."""
    async with PowerSwitchClient() as client:
        result = await client.login("your@email.com", "your_password")
        if result.is_err():
            print(f"Login failed ({result.error.kind.value}): {result.error}")
            return

        print("Connected to PowerSwitch API")

        gateways = await client.request_gateways()
        if gateways.is_err():
            print(f"Could not list gateways: {gateways.error}")
            return

        print(f"Found {len(gateways.value)} gateway(s)")

        first_relay = None
        for gateway in gateways.value:
            print(f"\nGateway: {gateway.name}")
            print(f"  ID: {gateway.client_id}")
            print(f"  Connected: {gateway.connected}")

            relays = await client.request_relay_devices(gateway)
            if relays.is_err():
                print(f"  Could not list relays: {relays.error}")
                continue

            for relay in relays.value:
                print(f"  Relay {relay.instance_id}: {relay.name} ({'on' if relay.on else 'off'})")
                if first_relay is None and gateway.connected:
                    first_relay = relay

        if first_relay is not None:
            print(f"\nSwitching {first_relay.name} {'off' if first_relay.on else 'on'}...")
            switched = await client.set_relay_device_state(first_relay, not first_relay.on)
            print("Done" if switched.is_ok() else f"Failed: {switched.error}")

        await client.logout()


if __name__ == "__main__":
    asyncio.run(main())
