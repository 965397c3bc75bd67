from __future__ import annotations

import asyncio
import codecs
import logging
import re
from enum import Enum
from typing import Sequence

from chat_runtime.core.config import RuntimeConfig
from chat_runtime.core.errors import (
    NotInitializedError,
    ProcessExitedError,
    SessionBusyError,
    SessionClosedError,
    StartupTimeoutError,
)

log = logging.getLogger("chat-runtime.session")

READY_MARKER = ">"
# escape sequence at a line start, the rest of that line, then a fresh prompt
END_OF_TURN = re.compile(r"^\x1b.*\n>\s?", re.MULTILINE)
READ_CHUNK_SIZE = 4096


class SessionState(str, Enum):
    CLOSED = "closed"
    STARTING = "starting"
    READY = "ready"


def strip_prompt_marker(text: str) -> str:
    if text.endswith(READY_MARKER):
        return text[: -len(READY_MARKER)]
    return text


class ChatSession:
    """Owns one chat subprocess and turns its stdout into prompt replies.

    A single reader task drains stdout. Until the first ``>`` is seen the
    output is start-up noise; afterwards every chunk goes to the queue of the
    prompt currently in flight, or is dropped when nobody is waiting.
    """

    def __init__(self, argv: Sequence[str], config: RuntimeConfig | None = None) -> None:
        self.argv = list(argv)
        self.config = config or RuntimeConfig()
        self._state = SessionState.CLOSED
        self._proc: asyncio.subprocess.Process | None = None
        self._reader: asyncio.Task | None = None
        self._ready: asyncio.Future | None = None
        self._subscriber: asyncio.Queue | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def pid(self) -> int | None:
        return self._proc.pid if self._proc is not None else None

    @property
    def busy(self) -> bool:
        return self._subscriber is not None

    async def open(self) -> None:
        if self._proc is not None:
            await self.aclose()

        log.info("session.open", extra={"argv": self.argv})
        self._state = SessionState.STARTING
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except BaseException:
            self._state = SessionState.CLOSED
            raise
        ready = asyncio.get_running_loop().create_future()
        self._proc = proc
        self._ready = ready
        self._reader = asyncio.create_task(self._pump(proc, ready))

        try:
            await asyncio.wait_for(ready, timeout=self.config.startup_timeout_sec)
        except asyncio.TimeoutError:
            if self._proc is proc:
                self.close()
            raise StartupTimeoutError(
                f"Chat process did not print its prompt within {self.config.startup_timeout_sec}s"
            ) from None
        except BaseException:
            if self._proc is proc:
                self.close()
            raise

        self._state = SessionState.READY
        log.info("session.ready", extra={"pid": proc.pid})

    def close(self) -> None:
        """Terminate the process without waiting for it to exit."""
        proc = self._proc
        self._state = SessionState.CLOSED
        if proc is None:
            return
        self._proc = None

        reader, self._reader = self._reader, None
        if reader is not None:
            reader.cancel()
        ready, self._ready = self._ready, None
        if ready is not None and not ready.done():
            ready.set_exception(SessionClosedError("Session closed during start-up."))
        subscriber, self._subscriber = self._subscriber, None
        if subscriber is not None:
            subscriber.put_nowait(SessionClosedError("Session closed while a prompt was in flight."))

        if proc.returncode is None:
            try:
                proc.terminate()
            except ProcessLookupError:
                pass
        log.info("session.close", extra={"pid": proc.pid})

    async def aclose(self) -> None:
        """Terminate the process and wait until it has actually exited."""
        proc = self._proc
        self.close()
        if proc is None:
            return
        try:
            await asyncio.wait_for(proc.wait(), timeout=self.config.shutdown_grace_sec)
        except asyncio.TimeoutError:
            log.warning("session.kill", extra={"pid": proc.pid})
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            await proc.wait()

    def prompt(self, text: str) -> "asyncio.Task[str]":
        """Send one prompt and return a task resolving to the reply.

        Errors for a missing or busy session are raised right here, before
        anything is written to the process.
        """
        proc = self._proc
        if self._state is not SessionState.READY or proc is None or proc.stdin is None:
            raise NotInitializedError("Chat session is not initialized; call open() first.")
        if self._subscriber is not None:
            raise SessionBusyError("A prompt is already in flight on this session.")

        queue: asyncio.Queue = asyncio.Queue()
        self._subscriber = queue
        proc.stdin.write((text + "\n").encode("utf-8"))
        log.debug("prompt.sent", extra={"pid": proc.pid, "chars": len(text)})
        return asyncio.ensure_future(self._collect(queue, proc.stdin))

    async def _collect(self, queue: asyncio.Queue, stdin: asyncio.StreamWriter) -> str:
        buffered: list[str] = []
        idle_armed = False
        try:
            await stdin.drain()
            while True:
                timeout = self.config.idle_timeout_sec if idle_armed else None
                try:
                    item = await asyncio.wait_for(queue.get(), timeout=timeout)
                except asyncio.TimeoutError:
                    log.debug("prompt.idle_timeout", extra={"chunks": len(buffered)})
                    break
                if isinstance(item, BaseException):
                    raise item
                if END_OF_TURN.search(item):
                    log.debug("prompt.end_of_turn", extra={"chunks": len(buffered)})
                    break
                buffered.append(item)
                idle_armed = True
        finally:
            if self._subscriber is queue:
                self._subscriber = None
        return strip_prompt_marker("".join(buffered))

    async def _pump(self, proc: asyncio.subprocess.Process, ready: asyncio.Future) -> None:
        assert proc.stdout is not None
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            while True:
                data = await proc.stdout.read(READ_CHUNK_SIZE)
                if not data:
                    break
                text = decoder.decode(data)
                if not text:
                    continue
                if not ready.done():
                    if READY_MARKER in text:
                        ready.set_result(None)
                    continue
                if self._subscriber is not None:
                    self._subscriber.put_nowait(text)
                else:
                    log.debug("session.output_dropped", extra={"chars": len(text)})
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            log.warning("session.read_error", extra={"pid": proc.pid, "error": str(exc)})
            self._fail(proc, ready, exc)
            return

        log.info("session.eof", extra={"pid": proc.pid, "returncode": proc.returncode})
        self._fail(proc, ready, ProcessExitedError("Chat process closed its output stream.", proc.returncode))

    def _fail(self, proc: asyncio.subprocess.Process, ready: asyncio.Future, exc: BaseException) -> None:
        if not ready.done():
            ready.set_exception(exc)
            return
        if self._proc is not proc:
            return
        # no reader is left, so later prompts could never resolve
        self._state = SessionState.CLOSED
        if self._subscriber is not None:
            self._subscriber.put_nowait(exc)

    async def __aenter__(self) -> "ChatSession":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
