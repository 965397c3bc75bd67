from __future__ import annotations

import sys
from pathlib import Path

import pytest

from chat_runtime import ChatClient, SessionState

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="uses a POSIX shell wrapper")

FAKE_CHAT = Path(__file__).with_name("fake_chat.py")


@pytest.fixture
def installed_client(config):
    config.idle_timeout_sec = 0.3
    client = ChatClient(decoder_options={"temp": 0.5}, config=config)
    client.paths.directory.mkdir(parents=True)
    client.executable_path.write_text(
        f'#!/bin/sh\nexec "{sys.executable}" "{FAKE_CHAT}" "$@"\n', encoding="utf-8"
    )
    client.executable_path.chmod(0o755)
    client.model_path.write_bytes(b"weights")
    return client


@pytest.mark.asyncio
async def test_conversation_with_real_subprocess(installed_client):
    client = installed_client
    await client.init()
    await client.open()
    try:
        assert client.state is SessionState.READY
        assert await client.prompt("hello") == "echo: hello"
        assert await client.prompt("args") == f"--model {client.model_path} --temp 0.5"
        assert await client.prompt("quiet") == "thinking..."
    finally:
        proc = client.session._proc
        await client.aclose()
    assert proc is not None and proc.returncode is not None
    assert client.state is SessionState.CLOSED
