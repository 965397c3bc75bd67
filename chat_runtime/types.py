from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Union

from chat_runtime.core.config import RuntimeConfig

DecoderValue = Union[str, int, float, bool]
# forwarded verbatim; the upstream binary knows seed, threads, n_predict, top_k,
# top_p, temp, repeat_last_n, repeat_penalty, ctx_size and batch_size
DecoderOptions = Mapping[str, DecoderValue]


@dataclass(frozen=True)
class ArtifactPaths:
    directory: Path
    executable: Path
    model: Path

    @classmethod
    def for_model(cls, model: str, config: RuntimeConfig | None = None) -> "ArtifactPaths":
        config = config or RuntimeConfig()
        directory = config.artifact_path
        return cls(
            directory=directory,
            executable=directory / config.executable_name,
            model=directory / f"{model}.bin",
        )


def format_decoder_value(value: DecoderValue) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_argv(executable: Path, model_path: Path, options: DecoderOptions | None = None) -> list[str]:
    argv = [str(executable), "--model", str(model_path)]
    for key, value in (options or {}).items():
        argv += [f"--{key}", format_decoder_value(value)]
    return argv
