from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Awaitable

import httpx
from tqdm import tqdm

from chat_runtime.catalog import executable_url, model_url
from chat_runtime.core.config import RuntimeConfig
from chat_runtime.core.errors import DownloadFailedError, PermissionChangeError
from chat_runtime.core.platform import detect_platform
from chat_runtime.types import ArtifactPaths

log = logging.getLogger("chat-runtime.provisioner")

EXECUTABLE_MODE = 0o755


class Provisioner:
    """Makes sure the chat binary and the model weights exist locally.

    Missing artifacts (or all of them, when a refresh is forced) are streamed
    from their upstream URLs straight to disk. Both downloads run
    concurrently. A failed download leaves whatever was written so far on
    disk; the next forced refresh overwrites it.
    """

    def __init__(
        self,
        model: str,
        paths: ArtifactPaths,
        config: RuntimeConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.model = model
        self.paths = paths
        self.config = config or RuntimeConfig()
        self._http_client = http_client

    def missing(self) -> list[Path]:
        return [p for p in (self.paths.executable, self.paths.model) if not p.exists()]

    async def ensure_ready(self, force_download: bool = False) -> None:
        if not force_download and not self.missing():
            log.debug("provision.skip", extra={"directory": str(self.paths.directory)})
            return

        client = self._http_client
        owns_client = client is None
        if client is None:
            client = httpx.AsyncClient(timeout=httpx.Timeout(self.config.download_timeout_sec))
        jobs: list[Awaitable[None]] = []
        if force_download or not self.paths.executable.exists():
            jobs.append(self.download_executable(client))
        if force_download or not self.paths.model.exists():
            jobs.append(self.download_model(client))
        tasks = [asyncio.ensure_future(job) for job in jobs]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            # the sibling download must not outlive the shared client
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        finally:
            if owns_client:
                await client.aclose()

    async def download_executable(self, client: httpx.AsyncClient) -> None:
        upstream = executable_url(detect_platform())
        destination = self.paths.executable
        await self.download_file(client, upstream, destination)
        try:
            os.chmod(destination, EXECUTABLE_MODE)
        except OSError as exc:
            raise PermissionChangeError(
                f"Unable to mark {destination} as executable: {exc}"
            ) from exc
        log.info("download.complete", extra={"path": str(destination), "artifact": "executable"})

    async def download_model(self, client: httpx.AsyncClient) -> None:
        destination = self.paths.model
        await self.download_file(client, model_url(self.model), destination)
        log.info("download.complete", extra={"path": str(destination), "artifact": "model"})

    async def download_file(self, client: httpx.AsyncClient, url: str, destination: Path) -> None:
        log.info("download.start", extra={"url": url, "path": str(destination)})
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            async with client.stream("GET", url, follow_redirects=True) as response:
                response.raise_for_status()
                total = int(response.headers.get("content-length", 0)) or None
                with destination.open("wb") as fh, tqdm(
                    desc=destination.name,
                    total=total,
                    unit="iB",
                    unit_scale=True,
                    unit_divisor=1024,
                    disable=not self.config.show_progress,
                ) as bar:
                    async for chunk in response.aiter_bytes():
                        fh.write(chunk)
                        bar.update(len(chunk))
        except (httpx.HTTPError, OSError) as exc:
            log.error("download.failed", extra={"url": url, "path": str(destination), "error": str(exc)})
            raise DownloadFailedError(url, str(destination), str(exc) or type(exc).__name__) from exc
