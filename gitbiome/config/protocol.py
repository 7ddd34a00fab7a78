"""Wire messages exchanged between the config editor and its helper.

The helper process connects to the editor's Unix socket, writes one
:class:`EditRequest` and blocks until it reads one :class:`EditResponse`.
Each message is a single line of JSON encoded with msgspec.
"""

from __future__ import annotations

import msgspec


class EditRequest(msgspec.Struct, kw_only=True):
    """Sent by the helper: the config file path git asked it to edit."""

    path: str


class EditResponse(msgspec.Struct, kw_only=True):
    """Sent by the editor once the edit has been applied or rejected."""

    ok: bool
    error: str | None = None


_request_decoder = msgspec.json.Decoder(EditRequest)
_response_decoder = msgspec.json.Decoder(EditResponse)


def encode_message(message: EditRequest | EditResponse) -> bytes:
    """Encode ``message`` as one newline-terminated JSON line."""
    return msgspec.json.encode(message) + b"\n"


def decode_request(line: bytes) -> EditRequest:
    """Decode an :class:`EditRequest` line.

    Raises
    ------
    msgspec.DecodeError
        If the line is not a valid request.

    """
    return _request_decoder.decode(line.strip())


def decode_response(line: bytes) -> EditResponse:
    """Decode an :class:`EditResponse` line.

    Raises
    ------
    msgspec.DecodeError
        If the line is not a valid response.

    """
    return _response_decoder.decode(line.strip())
