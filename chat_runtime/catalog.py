from __future__ import annotations

from typing import Literal

from chat_runtime.core.errors import UnsupportedModelError

AVAILABLE_MODELS = (
    "gpt4all-lora-quantized",
    "gpt4all-lora-unfiltered-quantized",
)

ModelName = Literal["gpt4all-lora-quantized", "gpt4all-lora-unfiltered-quantized"]

DEFAULT_MODEL: ModelName = "gpt4all-lora-quantized"

EXECUTABLE_BASE_URL = "https://github.com/nomic-ai/gpt4all/blob/main/chat"
MODEL_BASE_URL = "https://the-eye.eu/public/AI/models/nomic-ai/gpt4all"

# platform id -> upstream chat binary
EXECUTABLE_URLS = {
    "darwin-arm64": f"{EXECUTABLE_BASE_URL}/gpt4all-lora-quantized-OSX-m1?raw=true",
    "darwin-x64": f"{EXECUTABLE_BASE_URL}/gpt4all-lora-quantized-OSX-intel?raw=true",
    "linux-x64": f"{EXECUTABLE_BASE_URL}/gpt4all-lora-quantized-linux-x86?raw=true",
    "windows-x64": f"{EXECUTABLE_BASE_URL}/gpt4all-lora-quantized-win64.exe?raw=true",
}


def validate_model(name: str) -> ModelName:
    if name not in AVAILABLE_MODELS:
        supported = ",\n".join(AVAILABLE_MODELS)
        raise UnsupportedModelError(
            f"Model {name} is not supported. Current models supported are:\n{supported}"
        )
    return name  # type: ignore[return-value]


def model_url(name: str) -> str:
    return f"{MODEL_BASE_URL}/{validate_model(name)}.bin"


def executable_url(platform_id: str) -> str:
    return EXECUTABLE_URLS[platform_id]
