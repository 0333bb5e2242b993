"""Tests for the akg-anc command-line front-end."""

import asyncio
from typing import Any, List

import pytest

import akg_anc.cli as cli_mod
from akg_anc.config import AncMode
from akg_anc.errors import DeviceNotFoundError, WriteRejectedError


class FakeSession:
    instances: List["FakeSession"] = []

    def __init__(self, **kwargs: Any) -> None:
        self.kwargs = kwargs
        self.calls: List[Any] = []
        self.connect_error = None
        self.command_error = None
        self.closed = False
        FakeSession.instances.append(self)

    async def connect(self) -> None:
        if self.connect_error:
            raise self.connect_error

    async def enable_anc(self, mode=AncMode.Anc1) -> None:
        self._record("enable_anc", mode)

    async def disable_anc(self) -> None:
        self._record("disable_anc")

    async def enable_pass_through(self, mode=AncMode.PassThrough1) -> None:
        self._record("enable_pass_through", mode)

    async def toggle_anc(self) -> None:
        self._record("toggle_anc")

    def _record(self, *call: Any) -> None:
        if self.command_error:
            raise self.command_error
        self.calls.append(call)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_session(monkeypatch: pytest.MonkeyPatch):
    FakeSession.instances = []
    monkeypatch.setattr(cli_mod, "GattSession", FakeSession)
    return FakeSession


def _run(argv: List[str]) -> int:
    args = cli_mod.build_parser().parse_args(argv + ["--settle", "0"])
    return asyncio.run(cli_mod._amain(args))


@pytest.mark.parametrize(
    "command,expected",
    [
        ("on", ("enable_anc", AncMode.Anc1)),
        ("off", ("disable_anc",)),
        ("toggle", ("toggle_anc",)),
        ("ambient", ("enable_pass_through", AncMode.PassThrough1)),
        ("anc4", ("enable_anc", AncMode.Anc4)),
        ("passthrough2", ("enable_pass_through", AncMode.PassThrough2)),
        ("PASSTHROUGH3", ("enable_pass_through", AncMode.PassThrough3)),
    ],
)
def test_command_dispatch(fake_session, command, expected):
    assert _run([command]) == 0
    session = fake_session.instances[0]
    assert session.calls == [expected]
    assert session.closed


def test_options_reach_session(fake_session):
    _run(["off", "--name", "Other Headset", "--timeout", "3", "--scan-seconds", "2"])
    kwargs = fake_session.instances[0].kwargs
    assert kwargs == {"device_name": "Other Headset", "timeout_s": 3.0, "scan_seconds": 2.0}


def test_connect_failure_exits_1(fake_session, monkeypatch, capsys):
    def failing(**kwargs):
        s = FakeSession(**kwargs)
        s.connect_error = DeviceNotFoundError("AKG N9 Hybrid")
        return s

    monkeypatch.setattr(cli_mod, "GattSession", failing)
    assert _run(["on"]) == 1
    out = capsys.readouterr().out
    assert "Connection failed" in out
    assert "Troubleshooting" in out
    assert fake_session.instances[0].closed


def test_command_failure_exits_1(fake_session, monkeypatch, capsys):
    def failing(**kwargs):
        s = FakeSession(**kwargs)
        s.command_error = WriteRejectedError(1)
        return s

    monkeypatch.setattr(cli_mod, "GattSession", failing)
    assert _run(["off"]) == 1
    assert "Operation failed" in capsys.readouterr().out
    assert fake_session.instances[0].closed


def test_unknown_command_is_usage_error():
    with pytest.raises(SystemExit) as exc_info:
        cli_mod.build_parser().parse_args(["louder"])
    assert exc_info.value.code == 2


def test_mode_commands_pick_operation_from_mode():
    session = FakeSession()
    asyncio.run(cli_mod.mode_command("anc3")(session))
    asyncio.run(cli_mod.mode_command("passthrough1")(session))
    assert session.calls == [
        ("enable_anc", AncMode.Anc3),
        ("enable_pass_through", AncMode.PassThrough1),
    ]
