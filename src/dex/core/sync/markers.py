"""
Metadata value codec for marker lines.

Marker lines are single-line HTML comments, so a value is embedded
literally only when it cannot break the comment. Anything else is
replaced by a ``base64:`` blob that always round-trips exactly.
"""

from __future__ import annotations

import base64
import binascii

ENCODED_PREFIX = "base64:"
COMMENT_TERMINATOR = "-->"


def needs_encoding(value: str) -> bool:
    """Whether *value* must be encoded before being embedded in a marker."""
    return (
        "\n" in value
        or "\r" in value
        or COMMENT_TERMINATOR in value
        or value.startswith(ENCODED_PREFIX)
    )


def encode_value(value: str) -> str:
    """
    Encode a value for a marker line.

    Args:
        value: Arbitrary string

    Returns:
        The value unchanged when safe, else ``base64:<blob>``

    Example:
        >>> encode_value("fix parser")
        'fix parser'
        >>> encode_value("a\\nb")
        'base64:YQpi'
    """
    if needs_encoding(value):
        blob = base64.b64encode(value.encode("utf-8")).decode("ascii")
        return f"{ENCODED_PREFIX}{blob}"
    return value


def decode_value(token: str) -> str:
    """
    Decode a marker value.

    Identity for values without the ``base64:`` prefix. A corrupted blob is
    returned as-is rather than raising, since marker bodies can be edited
    by hand on the remote.
    """
    if not token.startswith(ENCODED_PREFIX):
        return token
    try:
        return base64.b64decode(token[len(ENCODED_PREFIX) :], validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return token
