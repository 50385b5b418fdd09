"""Process handle protocol and the default subprocess spawner.

The channel only needs a narrow slice of ``asyncio.subprocess.Process``.
Describing that slice as a protocol lets tests hand the channel a scripted
fake instead of a real shell.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import Protocol, runtime_checkable


@runtime_checkable
class ProcessWriter(Protocol):
    def write(self, data: bytes) -> None: ...

    async def drain(self) -> None: ...


@runtime_checkable
class ProcessReader(Protocol):
    async def read(self, n: int = -1) -> bytes: ...


@runtime_checkable
class ShellProcess(Protocol):
    """The parts of a child process the command channel uses."""

    stdin: ProcessWriter
    stdout: ProcessReader
    stderr: ProcessReader

    @property
    def returncode(self) -> int | None: ...

    async def wait(self) -> int: ...

    def kill(self) -> None: ...


ProcessFactory = Callable[[], Awaitable[ShellProcess]]


def subprocess_factory(argv: Sequence[str]) -> ProcessFactory:
    """Return a factory that spawns *argv* with all three standard streams piped."""

    async def spawn() -> ShellProcess:
        return await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

    return spawn
