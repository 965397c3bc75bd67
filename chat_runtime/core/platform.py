from __future__ import annotations

import platform as platform_module

from chat_runtime.core.errors import UnsupportedPlatformError


def detect_platform() -> str:
    system = platform_module.system().lower()
    machine = platform_module.machine().lower()
    if system == "darwin":
        arch = "arm64" if machine in {"arm64", "aarch64"} else "x64"
        return f"darwin-{arch}"
    if system == "linux":
        return "linux-x64"
    if system == "windows":
        return "windows-x64"
    raise UnsupportedPlatformError(
        f"Your platform is not supported: {system or 'unknown'}. "
        "Current binaries supported are for OSX (ARM and Intel), Linux and Windows."
    )
