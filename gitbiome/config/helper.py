"""Editor program git runs during a config edit session.

git invokes it as ``<helper command> <socket path> <config file path>``. The
helper reports the absolute file path over the socket, waits for the
editor's verdict and exits 0 when the edit succeeded, 1 otherwise.

It can also be run through the CLI as ``gitbiome config-edit-helper``.
"""

from __future__ import annotations

import socket
import sys
from pathlib import Path

import msgspec

from .protocol import EditRequest, decode_response, encode_message

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


def run(socket_path: str, file_path: str) -> int:
    """Report ``file_path`` to the editor at ``socket_path`` and await its verdict."""
    request = EditRequest(path=str(Path(file_path).resolve()))
    try:
        with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as conn:
            conn.connect(socket_path)
            conn.sendall(encode_message(request))
            with conn.makefile("rb") as stream:
                line = stream.readline()
    except OSError as exc:
        print(f"gitbiome: config edit helper failed: {exc}", file=sys.stderr)
        return EXIT_FAILED

    if not line:
        print("gitbiome: config editor closed the session", file=sys.stderr)
        return EXIT_FAILED
    try:
        response = decode_response(line)
    except msgspec.DecodeError as exc:
        print(f"gitbiome: bad reply from config editor: {exc}", file=sys.stderr)
        return EXIT_FAILED
    if not response.ok:
        print(f"gitbiome: {response.error}", file=sys.stderr)
        return EXIT_FAILED
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    """Entry point for ``python -m gitbiome.config.helper``."""
    args = sys.argv[1:] if argv is None else argv
    if len(args) != 2:
        print("usage: gitbiome-config-helper <socket> <file>", file=sys.stderr)
        return EXIT_USAGE
    return run(args[0], args[1])


if __name__ == "__main__":
    raise SystemExit(main())
