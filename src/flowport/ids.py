"""Identifier generator for regenerated flow, step, transition and tkey values.

Identifiers are 26 characters of Crockford base32: a two-character version
tag, the low-order 8 characters of the millisecond timestamp and a 16
character random suffix. The timestamp portion repeats within a millisecond,
so uniqueness inside a batch rests on the random suffix alone (80 bits). That
is probabilistic, not cryptographic, uniqueness.
"""

from __future__ import annotations

import re
import secrets
import time

ENCODING = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
VERSION_TAG = "01"
ID_LENGTH = 26

TIME_LENGTH = 10
TIME_CHARS_KEPT = 8
RANDOM_LENGTH = 16

_ID_RE = re.compile(rf"^[{ENCODING}]{{{ID_LENGTH}}}$")


def encode_time(ms: int, length: int = TIME_LENGTH) -> str:
    """Encode a millisecond timestamp, most significant character first."""
    chars = []
    for _ in range(length):
        ms, remainder = divmod(ms, 32)
        chars.append(ENCODING[remainder])
    return "".join(reversed(chars))


def encode_random(length: int = RANDOM_LENGTH) -> str:
    return "".join(secrets.choice(ENCODING) for _ in range(length))


def new_id(now_ms: int | None = None) -> str:
    """Return a fresh 26-character identifier."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    timestamp = encode_time(now_ms)[-TIME_CHARS_KEPT:]
    return f"{VERSION_TAG}{timestamp}{encode_random()}"


def is_id(value: object) -> bool:
    return isinstance(value, str) and bool(_ID_RE.match(value))
