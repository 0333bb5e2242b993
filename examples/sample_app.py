#!/usr/bin/env python3
import argparse
import asyncio
import logging
import signal
import sys
import termios
import tty

from akg_anc import AncError, AncMode, GattSession
from akg_anc.config import CONNECT_TIMEOUT, DEVICE_NAME


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Interactive ANC control using the akg_anc library")
    p.add_argument("--name", default=DEVICE_NAME, help="BLE advertised name")
    p.add_argument("--timeout", type=float, default=CONNECT_TIMEOUT, help="Connect timeout (s)")
    p.add_argument("-v", "--verbose", action="store_true", help="Log RACE traffic")
    return p


KEYS = {
    "0": ("ANC off", lambda s: s.disable_anc()),
    "1": ("ANC 1", lambda s: s.enable_anc(AncMode.Anc1)),
    "2": ("ANC 2", lambda s: s.enable_anc(AncMode.Anc2)),
    "3": ("ANC 3", lambda s: s.enable_anc(AncMode.Anc3)),
    "4": ("ANC 4", lambda s: s.enable_anc(AncMode.Anc4)),
    "7": ("Pass-through 1", lambda s: s.enable_pass_through(AncMode.PassThrough1)),
    "8": ("Pass-through 2", lambda s: s.enable_pass_through(AncMode.PassThrough2)),
    "9": ("Pass-through 3", lambda s: s.enable_pass_through(AncMode.PassThrough3)),
    "t": ("Toggle", lambda s: s.toggle_anc()),
}


def print_prompt():
    sys.stdout.write("> ")
    sys.stdout.flush()


# -------------------------------
# Raw key reader (no Enter)
# -------------------------------

async def keyboard_loop(session: GattSession, stop_event: asyncio.Event):
    """
    Immediate keypress handler (no Enter required).
    The next key is read only after the previous command has finished,
    so at most one write is ever in flight.
    """
    print("\nKeys:")
    for key, (label, _) in KEYS.items():
        print(f"  {key}  → {label}")
    print("  c  → connection status\n  q  → quit\n")
    print_prompt()

    fd = sys.stdin.fileno()
    old_settings = termios.tcgetattr(fd)

    try:
        tty.setcbreak(fd)

        loop = asyncio.get_running_loop()

        while not stop_event.is_set():
            ch = await loop.run_in_executor(None, sys.stdin.read, 1)
            if not ch:
                continue
            ch = ch.lower()

            if ch == "q":
                print("\nQuit requested.")
                stop_event.set()
                return

            if ch == "c":
                print(f"\nConnected: {session.is_connected} ({session.state.value})")
            elif ch in KEYS:
                label, action = KEYS[ch]
                try:
                    await action(session)
                    print(f"\n✓ {label}")
                except AncError as e:
                    print(f"\n❌ {label} failed: {e}")

            print_prompt()

    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, old_settings)


async def app(args) -> None:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _request_stop():
        stop_event.set()

    try:
        loop.add_signal_handler(signal.SIGINT, _request_stop)
        loop.add_signal_handler(signal.SIGTERM, _request_stop)
    except NotImplementedError:
        pass

    session = GattSession(device_name=args.name, timeout_s=args.timeout)
    keyboard_task = None

    try:
        try:
            await session.connect()
        except AncError as e:
            print(f"❌ Connection failed: {e}")
            return
        print(f"Connected to {args.name} ✅")

        keyboard_task = asyncio.create_task(keyboard_loop(session, stop_event))
        await stop_event.wait()

    finally:
        stop_event.set()
        if keyboard_task:
            keyboard_task.cancel()
        await session.close()
        print("\nDisconnected ✅")


def main():
    args = build_parser().parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    with asyncio.Runner() as runner:
        runner.run(app(args))


if __name__ == "__main__":
    main()
