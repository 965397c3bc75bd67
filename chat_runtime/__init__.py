from chat_runtime.catalog import AVAILABLE_MODELS
from chat_runtime.client import ChatClient
from chat_runtime.core.session import SessionState

__all__ = ["AVAILABLE_MODELS", "ChatClient", "SessionState"]
