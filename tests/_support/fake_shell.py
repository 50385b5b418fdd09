"""
Scripted shell processes for channel and directory tests.

Usage in test code::

    from tests._support.fake_shell import FakeDirectoryShell, Reply

    remote = FakeDirectoryShell()
    remote.add("Building", "b1", "HQ")
    channel = make_channel(remote)

``FakeShellProcess`` speaks the channel protocol: each command line goes to
a script, and the sentinel directive line prints the sentinel back.
``FakeDirectoryShell`` is a script that behaves like the remote place
directory.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from placeops.places.models import PlaceType

# =============================================================================
# Scripted shell process
# =============================================================================

_DIRECTIVE = re.compile(r"^Write-Output '(?P<sentinel>__PLACEOPS_EOC_[0-9a-f]+__)'$")


@dataclass
class Reply:
    """What the fake shell does with one command line."""

    stdout: str = ""
    stderr: str = ""
    hang: bool = False
    exit_code: int | None = None


Script = Callable[[str], "Reply | str | None"]


class _FakeStdin:
    def __init__(self, process: FakeShellProcess) -> None:
        self._process = process
        self.closed = False

    def write(self, data: bytes) -> None:
        if self._process.returncode is not None:
            raise BrokenPipeError("shell has exited")
        self._process.feed_input(data.decode("utf-8"))

    async def drain(self) -> None:
        return None


class FakeShellProcess:
    """Line-oriented fake shell.

    Command lines go to *script*; the sentinel directive prints the sentinel.
    A ``hang`` reply makes the shell stop answering until :meth:`release`,
    which is how a command that outlives its timeout is simulated.
    """

    def __init__(self, script: Script) -> None:
        self.script = script
        self.stdin = _FakeStdin(self)
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        self.commands: list[str] = []
        self._returncode: int | None = None
        self._exited = asyncio.Event()
        self._partial = ""
        self._backlog: list[str] = []
        self._hung = False

    @property
    def returncode(self) -> int | None:
        return self._returncode

    def feed_input(self, text: str) -> None:
        *lines, self._partial = (self._partial + text).split("\n")
        for line in lines:
            self._handle_line(line)

    def _handle_line(self, line: str) -> None:
        if self._returncode is not None:
            return
        if self._hung:
            self._backlog.append(line)
            return
        match = _DIRECTIVE.match(line.strip())
        if match:
            self.stdout.feed_data(f"{match['sentinel']}\n".encode())
            return

        self.commands.append(line)
        reply = self.script(line)
        if reply is None:
            reply = Reply()
        elif isinstance(reply, str):
            reply = Reply(stdout=reply)
        if reply.stderr:
            self.stderr.feed_data(f"{reply.stderr}\n".encode())
        if reply.stdout:
            self.stdout.feed_data(f"{reply.stdout.rstrip(chr(10))}\n".encode())
        if reply.exit_code is not None:
            self.exit(reply.exit_code)
        elif reply.hang:
            self._hung = True

    def release(self, stdout: str = "") -> None:
        """Finish the hung command with *stdout* and process queued input."""
        self._hung = False
        if stdout:
            self.stdout.feed_data(f"{stdout}\n".encode())
        backlog, self._backlog = self._backlog, []
        for line in backlog:
            self._handle_line(line)

    def exit(self, code: int) -> None:
        if self._returncode is not None:
            return
        self._returncode = code
        self.stdout.feed_eof()
        self.stderr.feed_eof()
        self._exited.set()

    def kill(self) -> None:
        self.exit(-9)

    async def wait(self) -> int:
        await self._exited.wait()
        assert self._returncode is not None
        return self._returncode


class FakeShellFactory:
    """Process factory handing out :class:`FakeShellProcess` instances."""

    def __init__(self, script: Script) -> None:
        self.script = script
        self.spawned: list[FakeShellProcess] = []

    async def __call__(self) -> FakeShellProcess:
        process = FakeShellProcess(self.script)
        self.spawned.append(process)
        return process

    @property
    def current(self) -> FakeShellProcess:
        return self.spawned[-1]


def echo_script(command: str) -> Reply | str | None:
    """``echo X`` prints X; ``warn X`` writes X to stderr; anything else is silent."""
    verb, _, rest = command.partition(" ")
    if verb == "echo":
        return rest
    if verb == "warn":
        return Reply(stderr=rest)
    return None


# =============================================================================
# Fake remote directory
# =============================================================================


def record(place_type: str, place_id: str, name: str, parent: str | None = None, **extra: Any) -> dict[str, Any]:
    """A remote listing record as ``ConvertTo-Json`` would print it."""
    data: dict[str, Any] = {
        "PlaceId": place_id,
        "DisplayName": name,
        "Type": place_type,
        "ParentId": parent or "",
    }
    data.update(extra)
    return data


_LIST = re.compile(r"^Get-PlaceV3 -Type (?P<type>\w+) \| ConvertTo-Json")
_NEW = re.compile(r"^New-Place -Type (?P<type>\w+) -Name '(?P<name>(?:[^']|'')*)'")
_PARENT = re.compile(r"-ParentId '(?P<parent>(?:[^']|'')*)'")
_MODULE = re.compile(r"^Get-Module -ListAvailable -Name '(?P<name>[^']*)'")


class FakeDirectoryShell:
    """Script that answers the cmdlets :class:`PlaceDirectory` issues.

    Attributes:
        places: current remote records per place type
        failing: types whose listing answers with an access error
        raw: types whose listing answers with this literal text instead
        installed: module names ``Get-Module`` reports
        connected: whether ``Connect-ExchangeOnline`` ran
    """

    def __init__(self) -> None:
        self.places: dict[str, list[dict[str, Any]]] = {t.value: [] for t in PlaceType}
        self.failing: set[str] = set()
        self.raw: dict[str, str] = {}
        self.installed: set[str] = {"ExchangeOnlineManagement"}
        self.connected = False
        self.deny_connect = False
        self._ids = itertools.count(1)

    def add(self, place_type: str, place_id: str, name: str, parent: str | None = None, **extra: Any) -> None:
        self.places[place_type].append(record(place_type, place_id, name, parent, **extra))

    def remove(self, place_id: str) -> None:
        for records in self.places.values():
            records[:] = [r for r in records if r["PlaceId"] != place_id]

    def __call__(self, command: str) -> Reply | str | None:
        if match := _LIST.match(command):
            place_type = match["type"]
            if place_type in self.failing:
                return Reply(stderr="Get-PlaceV3 : Access Denied")
            if place_type in self.raw:
                return self.raw[place_type]
            return json.dumps(self.places[place_type])
        if match := _NEW.match(command):
            place_type = match["type"]
            parent = _PARENT.search(command)
            new_id = f"new-{next(self._ids)}"
            rec = record(
                place_type,
                new_id,
                match["name"].replace("''", "'"),
                parent["parent"].replace("''", "'") if parent else None,
            )
            self.places[place_type].append(rec)
            return json.dumps(rec)
        if command.startswith("Connect-ExchangeOnline"):
            if self.deny_connect:
                return Reply(stderr="Connect-ExchangeOnline : Access Denied")
            self.connected = True
            return "Successfully connected to Exchange Online"
        if command.startswith("Connect-MicrosoftPlaces"):
            return "Connected to Microsoft Places"
        if match := _MODULE.match(command):
            name = match["name"]
            if name not in self.installed:
                return None
            return json.dumps({"Name": name, "Version": {"Major": 3, "Minor": 4, "Build": 0, "Revision": -1}})
        if command.startswith("Install-Module"):
            name = re.search(r"-Name '([^']*)'", command)[1]
            self.installed.add(name)
            return None
        return echo_script(command)
