from __future__ import annotations


class ChatRuntimeError(Exception):
    """Base class for every failure raised by the chat runtime."""


class UnsupportedModelError(ChatRuntimeError, ValueError):
    pass


class UnsupportedPlatformError(ChatRuntimeError):
    pass


class DownloadFailedError(ChatRuntimeError):
    def __init__(self, url: str, destination: str, reason: str) -> None:
        super().__init__(f"Failed to download {url} to {destination}: {reason}")
        self.url = url
        self.destination = destination


class PermissionChangeError(ChatRuntimeError):
    pass


class NotInitializedError(ChatRuntimeError):
    pass


class SessionBusyError(ChatRuntimeError):
    pass


class StartupTimeoutError(ChatRuntimeError, TimeoutError):
    pass


class ProcessExitedError(ChatRuntimeError):
    def __init__(self, message: str, returncode: int | None = None) -> None:
        super().__init__(message)
        self.returncode = returncode


class SessionClosedError(ChatRuntimeError):
    pass
