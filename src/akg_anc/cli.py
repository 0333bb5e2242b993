import argparse
import asyncio
import logging
from typing import Awaitable, Callable, Dict

from .client import GattSession
from .config import AncMode, CONNECT_TIMEOUT, DEVICE_NAME, RESPONSE_SETTLE_SECONDS, SCAN_SECONDS
from .errors import AncError, ConnectError

Command = Callable[[GattSession], Awaitable[None]]

COMMANDS: Dict[str, Command] = {
    "on": lambda s: s.enable_anc(AncMode.Anc1),
    "off": lambda s: s.disable_anc(),
    "toggle": lambda s: s.toggle_anc(),
    "passthrough": lambda s: s.enable_pass_through(AncMode.PassThrough1),
    "ambient": lambda s: s.enable_pass_through(AncMode.PassThrough1),
}


def mode_command(name: str) -> Command:
    mode = AncMode.from_name(name)
    if mode.is_pass_through:
        return lambda s: s.enable_pass_through(mode)
    return lambda s: s.enable_anc(mode)


for _name in ("anc1", "anc2", "anc3", "anc4", "passthrough1", "passthrough2", "passthrough3"):
    COMMANDS[_name] = mode_command(_name)


TROUBLESHOOTING = """\
Troubleshooting:
  1. Make sure the headset is powered on and in range
  2. Make sure it is paired in the OS Bluetooth settings
  3. Check that it advertises as {name!r}
  4. Try removing and re-pairing the headset"""


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description="Control ANC on an AKG N9 Hybrid over BLE (Airoha RACE)",
        epilog="examples: akg-anc on | akg-anc off | akg-anc passthrough",
    )
    p.add_argument("command", choices=list(COMMANDS), type=str.lower, help="ANC operation to run")
    p.add_argument("--name", default=DEVICE_NAME, help=f"BLE advertised name (default: {DEVICE_NAME})")
    p.add_argument("--scan-seconds", type=float, default=SCAN_SECONDS, help="BLE scan duration")
    p.add_argument("--timeout", type=float, default=CONNECT_TIMEOUT, help="Connect timeout in seconds")
    p.add_argument(
        "--settle",
        type=float,
        default=RESPONSE_SETTLE_SECONDS,
        help="Seconds to wait for the headset response before disconnecting",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Log RACE traffic")
    return p


async def _amain(args) -> int:
    session = GattSession(
        device_name=args.name,
        timeout_s=args.timeout,
        scan_seconds=args.scan_seconds,
    )

    try:
        print(f"Step 1: connecting to {args.name}")
        try:
            await session.connect()
        except ConnectError as err:
            print(f"\n❌ Connection failed: {err}\n")
            print(TROUBLESHOOTING.format(name=args.name))
            return 1

        print(f"\nStep 2: running '{args.command}'")
        try:
            await COMMANDS[args.command](session)
        except AncError as err:
            print(f"\n✗ Operation failed: {err}")
            return 1

        print("\nWaiting for the headset response...")
        await asyncio.sleep(args.settle)
        print("✓ Done")
        return 0

    finally:
        await session.close()


def main():
    parser = build_parser()
    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    raise SystemExit(asyncio.run(_amain(args)))
