from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import httpx

from chat_runtime.catalog import DEFAULT_MODEL, validate_model
from chat_runtime.core.config import RuntimeConfig
from chat_runtime.core.logging import pop_log_context, push_log_context
from chat_runtime.core.provisioner import Provisioner
from chat_runtime.core.session import ChatSession, SessionState
from chat_runtime.types import ArtifactPaths, DecoderOptions, build_argv

class ChatClient:
    """Local chat model driven through the upstream command-line binary.

    Typical use::

        client = ChatClient("gpt4all-lora-quantized", decoder_options={"temp": 0.2})
        await client.init()
        await client.open()
        reply = await client.prompt("Write a haiku about pipes")
        await client.aclose()
    """

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        force_download: bool = False,
        decoder_options: Optional[DecoderOptions] = None,
        *,
        config: RuntimeConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.model = validate_model(model)
        self.force_download = force_download
        self.decoder_options = dict(decoder_options or {})
        self.config = config or RuntimeConfig.load()
        self.paths = ArtifactPaths.for_model(self.model, self.config)
        self.provisioner = Provisioner(self.model, self.paths, self.config, http_client=http_client)
        self.session = ChatSession(self.argv, self.config)

    @property
    def argv(self) -> list[str]:
        return build_argv(self.paths.executable, self.paths.model, self.decoder_options)

    @property
    def executable_path(self) -> Path:
        return self.paths.executable

    @property
    def model_path(self) -> Path:
        return self.paths.model

    @property
    def state(self) -> SessionState:
        return self.session.state

    async def ensure_ready(self, force_download: bool | None = None) -> None:
        if force_download is None:
            force_download = self.force_download
        await self.provisioner.ensure_ready(force_download)

    init = ensure_ready

    async def open(self) -> None:
        self.session.argv = self.argv
        token = push_log_context(model=self.model)
        try:
            await self.session.open()
        finally:
            pop_log_context(token)

    def close(self) -> None:
        self.session.close()

    async def aclose(self) -> None:
        await self.session.aclose()

    def prompt(self, text: str) -> "asyncio.Task[str]":
        # the reply task copies the current context, so its records carry these
        token = push_log_context(model=self.model, pid=self.session.pid)
        try:
            return self.session.prompt(text)
        finally:
            pop_log_context(token)

    async def __aenter__(self) -> "ChatClient":
        await self.ensure_ready()
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
