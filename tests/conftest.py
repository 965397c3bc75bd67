from __future__ import annotations

import asyncio

import pytest

from chat_runtime.core.config import RuntimeConfig


class FakeStdin:
    def __init__(self) -> None:
        self.writes: list[bytes] = []

    def write(self, data: bytes) -> None:
        self.writes.append(data)

    async def drain(self) -> None:
        return None

    @property
    def text(self) -> str:
        return b"".join(self.writes).decode("utf-8")


class FakeProcess:
    """Stands in for asyncio.subprocess.Process; tests feed stdout by hand."""

    _next_pid = 4000

    def __init__(self, argv: list[str], banner: bytes | None) -> None:
        FakeProcess._next_pid += 1
        self.pid = FakeProcess._next_pid
        self.argv = argv
        self.stdin = FakeStdin()
        self.stdout = asyncio.StreamReader()
        self.returncode: int | None = None
        self.terminated = False
        self.killed = False
        if banner:
            self.stdout.feed_data(banner)

    def terminate(self) -> None:
        self.terminated = True
        self._exit(-15)

    def kill(self) -> None:
        self.killed = True
        self._exit(-9)

    def _exit(self, code: int) -> None:
        if self.returncode is None:
            self.returncode = code
            self.stdout.feed_eof()

    async def wait(self) -> int:
        while self.returncode is None:
            await asyncio.sleep(0.001)
        return self.returncode

    async def emit(self, text: str) -> None:
        self.stdout.feed_data(text.encode("utf-8"))
        await asyncio.sleep(0.01)


class FakeSpawner:
    def __init__(self, banner: bytes | None = b"== Running in chat mode ==\n> ") -> None:
        self.banner = banner
        self.processes: list[FakeProcess] = []
        self.kwargs: list[dict] = []

    async def __call__(self, *argv: str, **kwargs) -> FakeProcess:
        proc = FakeProcess(list(argv), self.banner)
        self.processes.append(proc)
        self.kwargs.append(kwargs)
        return proc

    @property
    def last(self) -> FakeProcess:
        return self.processes[-1]


@pytest.fixture
def config(tmp_path) -> RuntimeConfig:
    return RuntimeConfig(
        artifact_dir=str(tmp_path / ".nomic"),
        idle_timeout_sec=0.2,
        startup_timeout_sec=2.0,
        shutdown_grace_sec=0.5,
        show_progress=False,
        log_dir=str(tmp_path / "logs"),
    )


@pytest.fixture
def spawner(monkeypatch) -> FakeSpawner:
    fake = FakeSpawner()
    monkeypatch.setattr(asyncio, "create_subprocess_exec", fake)
    return fake
