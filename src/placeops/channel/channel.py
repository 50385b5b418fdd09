"""
Command channel -- one persistent interactive shell, strictly FIFO.

The remote management API is only reachable through an interactive shell
whose session holds the authentication state, so the console keeps exactly
one shell process alive and pipes every command through it. The stream has
no framing of its own: after each command the channel writes a directive
that prints a sentinel line, and everything on stdout before that line is
the command's output.

Manifesto:
    - **One in flight:** Commands never interleave on the process
    - **Explicit lifecycle:** ``open()`` / ``close()``, no module singleton
    - **Failures are typed:** ``ChannelTimeout``, ``ChannelProcessExited``
    - **No hidden retries:** Callers that need a retry resubmit

Architecture:
    ::

        submit(cmd) ──► deque[_PendingCommand] ──► _dispatch_next()
                                                      │ write "cmd\\n<directive>\\n"
                                                      ▼
                                             ┌─────────────────┐
                                             │  shell process  │
                                             └─────────────────┘
                            stdout ◄──────────────┘        └──────► stderr
                              │                                       │
                     _pump_stdout: buffer, find                _pump_stderr:
                     "<sentinel>" line → _on_boundary          accumulate
                              │
                              ▼
                  classify → resolve future → dispatch next

    Timeout: the head fails with ``ChannelTimeout`` and one *stale
    boundary* is recorded. The next sentinel line the channel sees belongs
    to the abandoned command, so the output before it is discarded instead
    of being attributed to the following command. The process is kept,
    which keeps the authenticated remote session.

    Process exit: every queued command fails with ``ChannelProcessExited``
    and a restart runs after ``restart_backoff`` seconds. Submissions made
    while the restart is pending wait for it.

Examples:
    >>> channel = CommandChannel(shell_command=["pwsh", "-NoLogo", "-Command", "-"])
    >>> async with channel:
    ...     result = await channel.submit("Get-Date", timeout=10)
    ...     result.raise_for_status().output

Tags:
    subprocess, asyncio, framing, sentinel, fifo, placeops, channel

Doc-Types:
    - API Reference
    - Architecture Decision Record
"""

from __future__ import annotations

import asyncio
import codecs
import re
import time
import uuid
from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from placeops.channel.classifier import ResultClassifier
from placeops.channel.process import ProcessFactory, ShellProcess, subprocess_factory
from placeops.core.errors import (
    ChannelClosedError,
    ChannelError,
    ChannelProcessExited,
    ChannelTimeout,
    RemoteCommandFailed,
)
from placeops.core.logging import get_logger
from placeops.core.settings import DEFAULT_SHELL_COMMAND, PlaceOpsSettings

logger = get_logger(__name__)

SENTINEL_PREFIX = "__PLACEOPS_EOC_"


class ChannelState(str, Enum):
    NOT_STARTED = "not_started"
    IDLE = "idle"
    BUSY = "busy"
    RESTARTING = "restarting"
    CLOSED = "closed"


@dataclass
class CommandResult:
    """Outcome of one command run through the channel.

    Attributes:
        command: The command text as submitted
        output: Stdout before the sentinel line, trimmed
        error: Stderr accumulated while the command was in flight, trimmed
        succeeded: Verdict of the result classifier
        duration_ms: Time from dispatch to sentinel
        rule: Name of the classifier rule that decided the verdict
    """

    command: str
    output: str
    error: str
    succeeded: bool
    duration_ms: float
    rule: str = ResultClassifier.DEFAULT_RULE

    def raise_for_status(self) -> CommandResult:
        """Raise :class:`RemoteCommandFailed` when the command was classified as failed."""
        if not self.succeeded:
            raise RemoteCommandFailed(
                self.command,
                self.error or self.output,
                output=self.output,
                rule=self.rule,
            )
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "command": self.command,
            "output": self.output,
            "error": self.error or None,
            "succeeded": self.succeeded,
            "duration_ms": round(self.duration_ms, 2),
            "rule": self.rule,
        }


@dataclass(eq=False)
class _PendingCommand:
    command: str
    timeout: float
    future: asyncio.Future[CommandResult]
    enqueued_at: float = field(default_factory=time.monotonic)
    started_at: float | None = None
    timer: asyncio.TimerHandle | None = None

    def resolve(self, result: CommandResult) -> None:
        if not self.future.done():
            self.future.set_result(result)

    def fail(self, exc: BaseException) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None
        if not self.future.done():
            self.future.set_exception(exc)


class CommandChannel:
    """Runs text commands against one persistent interactive shell process.

    Parameters:
        shell_command: argv used to spawn the shell (ignored when
            ``process_factory`` is given)
        sentinel_directive: statement template containing ``{sentinel}``
            that makes the shell print the sentinel on its own line
        default_timeout: seconds a command may take when ``submit`` is
            called without an explicit timeout
        restart_backoff: seconds to wait before respawning a dead shell
        process_factory: coroutine factory returning a :class:`ShellProcess`
        classifier: decides success/failure of each command
    """

    READ_CHUNK = 4096

    def __init__(
        self,
        *,
        shell_command: Sequence[str] = DEFAULT_SHELL_COMMAND,
        sentinel_directive: str = "Write-Output '{sentinel}'",
        default_timeout: float = 30.0,
        restart_backoff: float = 2.0,
        process_factory: ProcessFactory | None = None,
        classifier: ResultClassifier | None = None,
        encoding: str = "utf-8",
    ) -> None:
        if "{sentinel}" not in sentinel_directive:
            raise ValueError("sentinel_directive must contain '{sentinel}'")
        self.sentinel = f"{SENTINEL_PREFIX}{uuid.uuid4().hex}__"
        self.default_timeout = default_timeout
        self.restart_backoff = restart_backoff
        self.classifier = classifier or ResultClassifier()
        self._directive = sentinel_directive.format(sentinel=self.sentinel)
        self._boundary = re.compile(rf"(?m)^[ \t]*{re.escape(self.sentinel)}[ \t]*\r?\n")
        self._process_factory = process_factory or subprocess_factory(list(shell_command))
        self._encoding = encoding

        self._process: ShellProcess | None = None
        self._queue: deque[_PendingCommand] = deque()
        self._in_flight: _PendingCommand | None = None
        self._stdout_buffer = ""
        self._stderr_buffer = ""
        self._stale_boundaries = 0
        self._readers: list[asyncio.Task[None]] = []
        self._restart_task: asyncio.Task[None] | None = None
        self._spawn_lock = asyncio.Lock()
        self._closed = False
        self.restart_count = 0

    @classmethod
    def from_settings(cls, settings: PlaceOpsSettings, **kwargs: Any) -> CommandChannel:
        """Build a channel from :class:`PlaceOpsSettings`; *kwargs* override."""
        options: dict[str, Any] = {
            "shell_command": settings.shell_command,
            "sentinel_directive": settings.sentinel_directive,
            "default_timeout": settings.command_timeout_seconds,
            "restart_backoff": settings.restart_backoff_seconds,
        }
        options.update(kwargs)
        return cls(**options)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def state(self) -> ChannelState:
        if self._closed:
            return ChannelState.CLOSED
        if self._restart_task is not None and not self._restart_task.done():
            return ChannelState.RESTARTING
        if self._process is None:
            return ChannelState.NOT_STARTED
        return ChannelState.BUSY if self._in_flight is not None else ChannelState.IDLE

    @property
    def pending_count(self) -> int:
        return len(self._queue) + (1 if self._in_flight is not None else 0)

    async def open(self) -> CommandChannel:
        """Spawn the shell if it is not running yet."""
        await self._ensure_running()
        return self

    async def close(self) -> None:
        """Fail everything queued, kill the shell and stop the readers."""
        if self._closed:
            return
        self._closed = True
        if self._restart_task is not None:
            self._restart_task.cancel()
        self._fail_all(lambda cmd: ChannelClosedError("Command channel closed").with_context(command=cmd))

        process, self._process = self._process, None
        if process is not None and process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()
        for task in self._readers:
            task.cancel()
        await asyncio.gather(*self._readers, return_exceptions=True)
        self._readers.clear()
        logger.info("channel_closed", restarts=self.restart_count)

    async def __aenter__(self) -> CommandChannel:
        return await self.open()

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(self, command: str, timeout: float | None = None) -> CommandResult:
        """Queue *command* and wait for its result.

        Raises:
            ChannelTimeout: no sentinel within *timeout* seconds
            ChannelProcessExited: the shell died while the command was queued
            ChannelClosedError: the channel is closed
        """
        if not command.strip():
            raise ValueError("command must not be empty")
        if self._closed:
            raise ChannelClosedError("Command channel closed").with_context(command=command)

        await self._ensure_running()

        loop = asyncio.get_running_loop()
        pending = _PendingCommand(
            command=command,
            timeout=timeout if timeout is not None else self.default_timeout,
            future=loop.create_future(),
        )
        self._queue.append(pending)
        self._dispatch_next()
        return await pending.future

    async def _ensure_running(self) -> None:
        if self._closed:
            raise ChannelClosedError("Command channel closed")
        restart = self._restart_task
        if restart is not None and not restart.done():
            await asyncio.shield(restart)
        if self._process is None:
            await self._spawn()

    async def _spawn(self) -> None:
        async with self._spawn_lock:
            if self._process is not None or self._closed:
                return
            try:
                process = await self._process_factory()
            except OSError as exc:
                logger.error("shell_spawn_failed", error=str(exc))
                raise ChannelError("Failed to start shell process", cause=exc) from exc

            self._process = process
            self._stdout_buffer = ""
            self._stderr_buffer = ""
            self._stale_boundaries = 0
            self._readers = [
                asyncio.create_task(self._pump_stdout(process)),
                asyncio.create_task(self._pump_stderr(process)),
            ]
            logger.info("shell_started", restarts=self.restart_count)

    def _dispatch_next(self) -> None:
        process = self._process
        if self._in_flight is not None or process is None:
            return
        while self._queue:
            pending = self._queue.popleft()
            if pending.future.done():
                # caller went away before dispatch
                continue
            self._in_flight = pending
            pending.started_at = time.monotonic()
            payload = f"{pending.command}\n{self._directive}\n".encode(self._encoding)
            try:
                process.stdin.write(payload)
            except (BrokenPipeError, ConnectionResetError) as exc:
                logger.warning("shell_write_failed", error=str(exc))
                # the stdout reader sees EOF and fails the queue
                return
            asyncio.ensure_future(self._drain(process))
            pending.timer = asyncio.get_running_loop().call_later(
                pending.timeout, self._on_timeout, pending
            )
            logger.debug("command_dispatched", command=_short(pending.command), timeout=pending.timeout)
            return

    async def _drain(self, process: ShellProcess) -> None:
        try:
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            logger.warning("shell_drain_failed", error=str(exc))

    # ------------------------------------------------------------------
    # Stream handling
    # ------------------------------------------------------------------

    async def _pump_stdout(self, process: ShellProcess) -> None:
        decoder = codecs.getincrementaldecoder(self._encoding)(errors="replace")
        while True:
            chunk = await process.stdout.read(self.READ_CHUNK)
            if not chunk:
                break
            self._stdout_buffer += decoder.decode(chunk)
            while True:
                match = self._boundary.search(self._stdout_buffer)
                if match is None:
                    break
                segment = self._stdout_buffer[: match.start()]
                self._stdout_buffer = self._stdout_buffer[match.end():]
                # let stderr written before the sentinel land in its buffer
                await asyncio.sleep(0)
                self._on_boundary(segment)
        await self._on_process_exit(process)

    async def _pump_stderr(self, process: ShellProcess) -> None:
        decoder = codecs.getincrementaldecoder(self._encoding)(errors="replace")
        while True:
            chunk = await process.stderr.read(self.READ_CHUNK)
            if not chunk:
                break
            self._stderr_buffer += decoder.decode(chunk)

    def _on_boundary(self, segment: str) -> None:
        if self._stale_boundaries:
            self._stale_boundaries -= 1
            self._stderr_buffer = ""
            logger.debug("stale_output_discarded", chars=len(segment))
            return

        pending = self._in_flight
        if pending is None:
            logger.warning("unexpected_boundary", chars=len(segment))
            self._stderr_buffer = ""
            return

        self._in_flight = None
        if pending.timer is not None:
            pending.timer.cancel()
            pending.timer = None

        output = segment.strip()
        error = self._stderr_buffer.strip()
        self._stderr_buffer = ""
        verdict = self.classifier.classify(pending.command, output, error)
        started = pending.started_at or pending.enqueued_at
        result = CommandResult(
            command=pending.command,
            output=output,
            error=error,
            succeeded=verdict.succeeded,
            duration_ms=(time.monotonic() - started) * 1000,
            rule=verdict.rule,
        )
        logger.debug(
            "command_completed",
            command=_short(pending.command),
            succeeded=result.succeeded,
            rule=result.rule,
            duration_ms=round(result.duration_ms, 1),
        )
        pending.resolve(result)
        self._dispatch_next()

    def _on_timeout(self, pending: _PendingCommand) -> None:
        if pending is not self._in_flight:
            return
        self._in_flight = None
        pending.timer = None
        self._stale_boundaries += 1
        logger.warning(
            "command_timed_out",
            command=_short(pending.command),
            timeout=pending.timeout,
            stale_boundaries=self._stale_boundaries,
        )
        pending.fail(ChannelTimeout(pending.command, pending.timeout))
        self._dispatch_next()

    async def _on_process_exit(self, process: ShellProcess) -> None:
        if process is not self._process:
            return
        returncode = await process.wait()
        self._process = None
        self._stale_boundaries = 0
        self._fail_all(
            lambda cmd: ChannelProcessExited(returncode=returncode, command=cmd)
        )
        if self._closed:
            return
        logger.warning("shell_exited", returncode=returncode, backoff=self.restart_backoff)
        self._restart_task = asyncio.create_task(self._restart_after(self.restart_backoff))

    async def _restart_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        if self._closed:
            return
        try:
            await self._spawn()
        except ChannelError:
            # next submit retries the spawn and reports the failure
            return
        self.restart_count += 1
        logger.info("shell_restarted", restarts=self.restart_count)
        self._dispatch_next()

    def _fail_all(self, make_error: Any) -> None:
        failed = []
        if self._in_flight is not None:
            failed.append(self._in_flight)
            self._in_flight = None
        failed.extend(self._queue)
        self._queue.clear()
        for pending in failed:
            pending.fail(make_error(pending.command))
        if failed:
            logger.warning("commands_failed", count=len(failed))


def _short(command: str, limit: int = 120) -> str:
    line = command.strip().splitlines()[0] if command.strip() else ""
    return line if len(line) <= limit else line[: limit - 3] + "..."


__all__ = ["ChannelState", "CommandChannel", "CommandResult"]
