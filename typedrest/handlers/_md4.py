"""
MD4 message digest (RFC 1320), needed for the NTLM password hash.

OpenSSL 3 moved MD4 into its legacy provider, so ``hashlib.new("md4")`` is not
available on most current interpreters.
"""

from __future__ import annotations

import struct
from collections.abc import Callable, Sequence

MASK = 0xFFFFFFFF

_ROUND_2_ORDER = (0, 4, 8, 12, 1, 5, 9, 13, 2, 6, 10, 14, 3, 7, 11, 15)
_ROUND_3_ORDER = (0, 8, 4, 12, 2, 10, 6, 14, 1, 9, 5, 13, 3, 11, 7, 15)


def _rotl(value: int, shift: int) -> int:
    return ((value << shift) | (value >> (32 - shift))) & MASK


def _f(x: int, y: int, z: int) -> int:
    return (x & y) | (~x & z)


def _g(x: int, y: int, z: int) -> int:
    return (x & y) | (x & z) | (y & z)


def _h(x: int, y: int, z: int) -> int:
    return x ^ y ^ z


def _round(
    fn: Callable[[int, int, int], int],
    state: tuple[int, int, int, int],
    words: Sequence[int],
    order: Sequence[int],
    shifts: Sequence[int],
    constant: int,
) -> tuple[int, int, int, int]:
    a, b, c, d = state
    for i, k in enumerate(order):
        a = _rotl((a + fn(b, c, d) + words[k] + constant) & MASK, shifts[i % 4])
        a, b, c, d = d, a, b, c
    return a, b, c, d


def md4(data: bytes) -> bytes:
    message = bytearray(data)
    bit_length = (len(data) * 8) & 0xFFFFFFFFFFFFFFFF
    message.append(0x80)
    while len(message) % 64 != 56:
        message.append(0)
    message += struct.pack("<Q", bit_length)

    state = (0x67452301, 0xEFCDAB89, 0x98BADCFE, 0x10325476)
    for offset in range(0, len(message), 64):
        words = struct.unpack("<16I", bytes(message[offset : offset + 64]))
        block = _round(_f, state, words, range(16), (3, 7, 11, 19), 0)
        block = _round(_g, block, words, _ROUND_2_ORDER, (3, 5, 9, 13), 0x5A827999)
        block = _round(_h, block, words, _ROUND_3_ORDER, (3, 9, 11, 15), 0x6ED9EBA1)
        state = tuple(  # type: ignore[assignment]
            (old + new) & MASK for old, new in zip(state, block)
        )

    return struct.pack("<4I", *state)
