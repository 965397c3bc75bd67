"""Minimal stand-in for the upstream chat binary used by the end-to-end test."""

import sys
import time


def emit(text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.flush()


def main() -> None:
    emit("== Running in chat mode. ==\n> ")
    while True:
        line = sys.stdin.readline()
        if not line:
            return
        text = line.rstrip("\n")
        if text == "quiet":
            emit("thinking...")
            continue
        if text == "args":
            emit(" ".join(sys.argv[1:]))
        else:
            emit(f"echo: {text}")
        time.sleep(0.05)
        emit("\x1b[0m\n> ")


if __name__ == "__main__":
    main()
