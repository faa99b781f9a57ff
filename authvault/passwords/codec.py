"""
Password Hash Codec

Encodes and decodes self-describing Argon2id hash strings:

    $argon2id$v=19$m=<memory KiB>,t=<iterations>,p=<parallelism>$<salt>$<hash>

Salt and hash are standard base64 without padding, which makes the output
interchangeable with argon2-cffi's own PasswordHasher strings. Parameters
travel with the hash, so they can be tuned later without invalidating
hashes that are already stored.

Pure functions, no I/O.
"""

import base64
import binascii
import re
from dataclasses import dataclass
from typing import Tuple

from argon2.low_level import ARGON2_VERSION

from ..errors import HashFormatError


ALGORITHM_TAG = "argon2id"
SUPPORTED_VERSION = ARGON2_VERSION  # 0x13 == 19

# Bounds enforced by the Argon2 reference implementation
MIN_SALT_LEN = 8
MIN_HASH_LEN = 4
MIN_MEMORY_PER_LANE = 8   # KiB
MAX_COST = 2 ** 32 - 1
MAX_LANES = 2 ** 24 - 1

_PARAMS_RE = re.compile(r"^m=(\d+),t=(\d+),p=(\d+)$")
_VERSION_RE = re.compile(r"^v=(\d+)$")


@dataclass(frozen=True)
class HashParameters:
    """Argon2id cost parameters embedded in an encoded hash."""
    memory_cost: int    # KiB
    time_cost: int      # iterations
    parallelism: int
    salt_len: int = 16
    hash_len: int = 32
    version: int = SUPPORTED_VERSION


def b64_encode(data: bytes) -> str:
    """Standard base64 with the '=' padding stripped."""
    return base64.b64encode(data).decode('ascii').rstrip('=')


def b64_decode(encoded: str) -> bytes:
    """Inverse of b64_encode; raises HashFormatError on bad input."""
    padding = -len(encoded) % 4
    try:
        return base64.b64decode(encoded + '=' * padding, validate=True)
    except (binascii.Error, ValueError) as e:
        raise HashFormatError(f"invalid base64 segment: {e}") from e


def encode_hash(params: HashParameters, salt: bytes, digest: bytes) -> str:
    """
    Build the encoded hash string.

    Args:
        params: Cost parameters used to derive the digest
        salt: Random salt
        digest: Raw Argon2id output

    Returns:
        $argon2id$v=..$m=..,t=..,p=..$salt$hash
    """
    return "$%s$v=%d$m=%d,t=%d,p=%d$%s$%s" % (
        ALGORITHM_TAG,
        params.version,
        params.memory_cost,
        params.time_cost,
        params.parallelism,
        b64_encode(salt),
        b64_encode(digest),
    )


def decode_hash(encoded: str) -> Tuple[HashParameters, bytes, bytes]:
    """
    Parse an encoded hash string.

    Args:
        encoded: String produced by encode_hash (or argon2-cffi)

    Returns:
        Tuple of (parameters, salt, digest)

    Raises:
        HashFormatError: Wrong field count, unknown algorithm, unsupported
            version, malformed parameters, undecodable salt/hash, or values
            outside Argon2's limits
    """
    if not isinstance(encoded, str):
        raise HashFormatError("encoded hash must be a string")

    parts = encoded.split('$')
    # leading '$' yields an empty first field
    if len(parts) != 6 or parts[0] != '':
        raise HashFormatError("invalid hash format")

    _, algorithm, version_part, params_part, salt_b64, hash_b64 = parts

    if algorithm != ALGORITHM_TAG:
        raise HashFormatError(f"unsupported algorithm: {algorithm!r}")

    version_match = _VERSION_RE.match(version_part)
    if not version_match:
        raise HashFormatError("invalid version field")
    version = int(version_match.group(1))
    if version != SUPPORTED_VERSION:
        raise HashFormatError(f"incompatible version: {version}")

    params_match = _PARAMS_RE.match(params_part)
    if not params_match:
        raise HashFormatError("invalid parameter field")
    memory_cost, time_cost, parallelism = (int(g) for g in params_match.groups())
    if memory_cost <= 0 or time_cost <= 0 or parallelism <= 0:
        raise HashFormatError("parameters must be positive")
    if max(memory_cost, time_cost) > MAX_COST or parallelism > MAX_LANES:
        raise HashFormatError("parameters out of range")
    if memory_cost < MIN_MEMORY_PER_LANE * parallelism:
        raise HashFormatError("memory cost too small for parallelism")

    salt = b64_decode(salt_b64)
    digest = b64_decode(hash_b64)
    if len(salt) < MIN_SALT_LEN:
        raise HashFormatError("salt too short")
    if len(digest) < MIN_HASH_LEN:
        raise HashFormatError("hash too short")

    params = HashParameters(
        memory_cost=memory_cost,
        time_cost=time_cost,
        parallelism=parallelism,
        salt_len=len(salt),
        hash_len=len(digest),
        version=version,
    )
    return params, salt, digest
