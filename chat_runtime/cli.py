from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from chat_runtime.catalog import AVAILABLE_MODELS, DEFAULT_MODEL
from chat_runtime.client import ChatClient
from chat_runtime.core.config import RuntimeConfig
from chat_runtime.core.errors import ChatRuntimeError
from chat_runtime.core.logging import configure_logging, shutdown_logging

EXIT_WORDS = {"exit", "quit"}


def parse_option(raw: str) -> tuple[str, str]:
    key, sep, value = raw.partition("=")
    if not sep or not key.strip():
        raise argparse.ArgumentTypeError(f"expected key=value, got {raw!r}")
    return key.strip(), value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chat-runtime", description="Chat with a local model.")
    parser.add_argument("--model", default=DEFAULT_MODEL, choices=AVAILABLE_MODELS)
    parser.add_argument("--force-download", action="store_true")
    parser.add_argument("--download-only", action="store_true")
    parser.add_argument(
        "--opt",
        dest="options",
        action="append",
        type=parse_option,
        default=[],
        metavar="KEY=VALUE",
        help="decoder option forwarded as --KEY VALUE (repeatable)",
    )
    parser.add_argument("--prompt", help="send a single prompt and exit")
    parser.add_argument("--config", help="path to a JSON runtime config")
    parser.add_argument("--verbose", action="store_true")
    return parser


async def _interactive(client: ChatClient) -> None:
    loop = asyncio.get_running_loop()
    while True:
        line = await loop.run_in_executor(None, sys.stdin.readline)
        if not line:
            break
        text = line.rstrip("\n")
        if text.strip().lower() in EXIT_WORDS:
            break
        if not text.strip():
            continue
        reply = await client.prompt(text)
        print(reply.strip(), flush=True)


async def run(args: argparse.Namespace, config: RuntimeConfig) -> int:
    client = ChatClient(
        args.model,
        force_download=args.force_download,
        decoder_options=dict(args.options),
        config=config,
    )
    await client.ensure_ready()
    if args.download_only:
        return 0
    await client.open()
    try:
        if args.prompt is not None:
            reply = await client.prompt(args.prompt)
            print(reply.strip(), flush=True)
        else:
            await _interactive(client)
    finally:
        await client.aclose()
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    config = RuntimeConfig.load(args.config)
    logger = configure_logging(logging.DEBUG if args.verbose else logging.WARNING, config.log_dir)
    try:
        return asyncio.run(run(args, config))
    except ChatRuntimeError as exc:
        logger.error("cli.failed", extra={"error": str(exc)})
        print(f"[chat-runtime] {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130
    finally:
        shutdown_logging()


if __name__ == "__main__":
    sys.exit(main())
