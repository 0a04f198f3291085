# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

import io
import logging
from collections.abc import AsyncIterable, Iterable
from typing import Final

from .exceptions import UnreadableBodyException
from .interfaces.http import Request
from .interfaces.io import ByteStream, Seekable

logger: Final = logging.getLogger(__name__)


def read_and_replace_body(request: Request) -> bytes:
    """Read the full request body without consuming it for the transport.

    Streams and iterables are read once and ``request.body`` is replaced with an
    ``io.BytesIO`` snapshot of the same bytes, so the transport sends exactly what
    was hashed and calling this again returns identical content. Seekable streams
    are read from their current position and rewound to it before being replaced.
    ``None`` is treated as an empty body and left untouched.

    :param request: The request whose body should be hashed.
    :returns: The raw bytes of the body.
    :raises TypeError: If the body is an async iterable.
    :raises UnreadableBodyException: If reading the underlying stream fails.
    """
    body = request.body

    if body is None:
        return b""
    if isinstance(body, bytes | bytearray):
        return bytes(body)
    if isinstance(body, str):
        return body.encode("utf-8")
    if isinstance(body, AsyncIterable):
        raise TypeError(
            "An async body was attached to a synchronous signer. Please ensure "
            "your body is of type bytes, a readable stream, or Iterable[bytes]."
        )

    # Closed file objects raise ValueError rather than OSError.
    try:
        if _is_rewindable(body):
            position = body.tell()
            content = body.read()
            body.seek(position)
        else:
            content = _drain(body)
    except (OSError, ValueError) as e:
        raise UnreadableBodyException(f"Unable to read request body: {e}") from e

    logger.debug("Buffered %d bytes of request body for signing.", len(content))
    request.body = io.BytesIO(content)
    return content


def _drain(body: Iterable[bytes] | ByteStream) -> bytes:
    if isinstance(body, ByteStream):
        return body.read()

    buffer = io.BytesIO()
    for chunk in body:
        buffer.write(chunk)
    return buffer.getvalue()


def _is_rewindable(body: object) -> bool:
    if not (isinstance(body, ByteStream) and isinstance(body, Seekable)):
        return False
    # File objects over pipes and sockets expose seek() but refuse to use it.
    seekable = getattr(body, "seekable", None)
    return seekable is None or bool(seekable())
