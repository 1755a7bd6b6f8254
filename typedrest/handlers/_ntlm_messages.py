"""
NTLM message codec.

Builds the Type-1 (negotiate) and Type-3 (authenticate) messages and parses
the server's Type-2 (challenge) message, as exchanged in
``Authorization: NTLM <base64>`` / ``WWW-Authenticate: NTLM <base64>``
headers.

Responses are NTLMv1 (LM + NT) unless the challenge negotiates extended
session security, in which case NTLM2 session responses are computed. Given
fixed inputs, and a fixed client challenge for the NTLM2 case, every message
is deterministic.
"""

from __future__ import annotations

import base64
import binascii
import enum
import hashlib
import os
import struct
from dataclasses import dataclass

from cryptography.hazmat.decrepit.ciphers.algorithms import TripleDES
from cryptography.hazmat.primitives.ciphers import Cipher, modes

from .._exceptions import AuthenticationHandshakeError
from ._md4 import md4

NTLM_SIGNATURE = b"NTLMSSP\x00"
NTLM_SCHEME = "NTLM"

TYPE1_HEADER_LENGTH = 32
TYPE2_MINIMUM_LENGTH = 32
TYPE3_HEADER_LENGTH = 64

LM_MAGIC = b"KGS!@#$%"


class NegotiateFlags(enum.IntFlag):
    NEGOTIATE_UNICODE = 0x00000001
    NEGOTIATE_OEM = 0x00000002
    REQUEST_TARGET = 0x00000004
    NEGOTIATE_SIGN = 0x00000010
    NEGOTIATE_SEAL = 0x00000020
    NEGOTIATE_LM_KEY = 0x00000080
    NEGOTIATE_NTLM = 0x00000200
    NEGOTIATE_ANONYMOUS = 0x00000800
    NEGOTIATE_OEM_DOMAIN_SUPPLIED = 0x00001000
    NEGOTIATE_OEM_WORKSTATION_SUPPLIED = 0x00002000
    NEGOTIATE_ALWAYS_SIGN = 0x00008000
    TARGET_TYPE_DOMAIN = 0x00010000
    TARGET_TYPE_SERVER = 0x00020000
    NEGOTIATE_EXTENDED_SESSIONSECURITY = 0x00080000
    NEGOTIATE_TARGET_INFO = 0x00800000
    NEGOTIATE_VERSION = 0x02000000
    NEGOTIATE_128 = 0x20000000
    NEGOTIATE_KEY_EXCH = 0x40000000
    NEGOTIATE_56 = 0x80000000


TYPE1_FLAGS = (
    NegotiateFlags.NEGOTIATE_UNICODE
    | NegotiateFlags.NEGOTIATE_OEM
    | NegotiateFlags.NEGOTIATE_NTLM
    | NegotiateFlags.NEGOTIATE_OEM_DOMAIN_SUPPLIED
    | NegotiateFlags.NEGOTIATE_OEM_WORKSTATION_SUPPLIED
    | NegotiateFlags.NEGOTIATE_ALWAYS_SIGN
)


@dataclass(frozen=True)
class Type2Message:
    flags: int
    challenge: bytes
    target_name: bytes = b""
    target_info: bytes = b""

    @property
    def is_unicode(self) -> bool:
        return bool(self.flags & NegotiateFlags.NEGOTIATE_UNICODE)

    @property
    def uses_extended_session_security(self) -> bool:
        return bool(self.flags & NegotiateFlags.NEGOTIATE_EXTENDED_SESSIONSECURITY)


# ---------------------------------------------------------------------------
# Encoding helpers
# ---------------------------------------------------------------------------


def _oem(value: str) -> bytes:
    return value.encode("ascii", errors="replace")


def _security_buffer(length: int, offset: int) -> bytes:
    return struct.pack("<HHI", length, length, offset)


def _read_security_buffer(data: bytes, position: int) -> bytes:
    length, _, offset = struct.unpack_from("<HHI", data, position)
    if offset + length > len(data):
        raise AuthenticationHandshakeError("NTLM challenge field points outside the message")
    return data[offset : offset + length]


def _to_header(message: bytes) -> str:
    return f"{NTLM_SCHEME} {base64.b64encode(message).decode('ascii')}"


# ---------------------------------------------------------------------------
# Cryptographic primitives
# ---------------------------------------------------------------------------


def _expand_des_key(key: bytes) -> bytes:
    # 56 key bits spread over 8 bytes, low (parity) bit of each left clear.
    bits = int.from_bytes(key, "big")
    return bytes(((bits >> (49 - 7 * i)) & 0x7F) << 1 for i in range(8))


def des_encrypt(key: bytes, block: bytes) -> bytes:
    """DES-ECB encrypt one 8-byte block with a 7-byte key.

    Three copies of the same DES key make EDE 3DES collapse to single DES.
    """
    cipher = Cipher(TripleDES(_expand_des_key(key) * 3), modes.ECB())
    encryptor = cipher.encryptor()
    return encryptor.update(block) + encryptor.finalize()


def lm_hash(password: str) -> bytes:
    secret = _oem(password.upper())[:14].ljust(14, b"\x00")
    return des_encrypt(secret[:7], LM_MAGIC) + des_encrypt(secret[7:], LM_MAGIC)


def nt_hash(password: str) -> bytes:
    return md4(password.encode("utf-16-le"))


def calc_response(password_hash: bytes, challenge: bytes) -> bytes:
    key = password_hash.ljust(21, b"\x00")
    return b"".join(des_encrypt(key[i : i + 7], challenge) for i in (0, 7, 14))


def ntlm2_session_response(
    password: str, server_challenge: bytes, client_challenge: bytes
) -> tuple[bytes, bytes]:
    lm_response = client_challenge + b"\x00" * 16
    session_hash = hashlib.md5(server_challenge + client_challenge).digest()[:8]
    return lm_response, calc_response(nt_hash(password), session_hash)


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


def create_type1_message(workstation: str = "", domain: str = "") -> str:
    """Return the ``Authorization`` header value for the negotiate message."""
    workstation_bytes = _oem(workstation.upper())
    domain_bytes = _oem(domain.upper())

    flags = TYPE1_FLAGS
    if not domain_bytes:
        flags &= ~NegotiateFlags.NEGOTIATE_OEM_DOMAIN_SUPPLIED
    if not workstation_bytes:
        flags &= ~NegotiateFlags.NEGOTIATE_OEM_WORKSTATION_SUPPLIED

    message = b"".join([
        NTLM_SIGNATURE,
        struct.pack("<II", 1, int(flags)),
        _security_buffer(len(domain_bytes), TYPE1_HEADER_LENGTH + len(workstation_bytes)),
        _security_buffer(len(workstation_bytes), TYPE1_HEADER_LENGTH),
        workstation_bytes,
        domain_bytes,
    ])
    return _to_header(message)


def parse_type2_message(value: str) -> Type2Message:
    """Parse a ``WWW-Authenticate`` challenge value (``NTLM <base64>``)."""
    token = value.strip()
    if token[: len(NTLM_SCHEME)].upper() == NTLM_SCHEME:
        token = token[len(NTLM_SCHEME) :].strip()
    if not token:
        raise AuthenticationHandshakeError("NTLM challenge is empty")

    try:
        data = base64.b64decode(token, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise AuthenticationHandshakeError("NTLM challenge is not valid base64") from exc

    if len(data) < TYPE2_MINIMUM_LENGTH or data[:8] != NTLM_SIGNATURE:
        raise AuthenticationHandshakeError("NTLM challenge has an invalid signature")

    (message_type,) = struct.unpack_from("<I", data, 8)
    if message_type != 2:
        raise AuthenticationHandshakeError(
            f"Expected an NTLM type 2 message, got type {message_type}"
        )

    (flags,) = struct.unpack_from("<I", data, 20)
    return Type2Message(
        flags=flags,
        challenge=data[24:32],
        target_name=_read_security_buffer(data, 12),
        target_info=_read_security_buffer(data, 40) if len(data) >= 48 else b"",
    )


def create_type3_message(
    challenge: Type2Message,
    username: str,
    password: str,
    workstation: str = "",
    domain: str = "",
    client_challenge: bytes | None = None,
) -> str:
    """Return the ``Authorization`` header value for the authenticate message."""
    if challenge.uses_extended_session_security:
        lm_response, nt_response = ntlm2_session_response(
            password, challenge.challenge, client_challenge or os.urandom(8)
        )
    else:
        lm_response = calc_response(lm_hash(password), challenge.challenge)
        nt_response = calc_response(nt_hash(password), challenge.challenge)

    encoding = "utf-16-le" if challenge.is_unicode else "ascii"
    domain_bytes = domain.upper().encode(encoding, errors="replace")
    user_bytes = username.encode(encoding, errors="replace")
    workstation_bytes = workstation.upper().encode(encoding, errors="replace")

    domain_offset = TYPE3_HEADER_LENGTH
    user_offset = domain_offset + len(domain_bytes)
    workstation_offset = user_offset + len(user_bytes)
    lm_offset = workstation_offset + len(workstation_bytes)
    nt_offset = lm_offset + len(lm_response)
    session_key_offset = nt_offset + len(nt_response)

    message = b"".join([
        NTLM_SIGNATURE,
        struct.pack("<I", 3),
        _security_buffer(len(lm_response), lm_offset),
        _security_buffer(len(nt_response), nt_offset),
        _security_buffer(len(domain_bytes), domain_offset),
        _security_buffer(len(user_bytes), user_offset),
        _security_buffer(len(workstation_bytes), workstation_offset),
        _security_buffer(0, session_key_offset),
        struct.pack("<I", challenge.flags),
        domain_bytes,
        user_bytes,
        workstation_bytes,
        lm_response,
        nt_response,
    ])
    return _to_header(message)
