from typing import List
import hashlib

HASH_INPUT_DELIMITER = b"$"


def sha512_256_util(h, in_data: List[bytes]) -> bytes:
    """Hashes a delimiter-joined list of byte strings into `h`."""
    if not in_data:
        raise ValueError("Nothing to hash: at least one input is required")
    data = bytearray()
    for b in in_data:
        data.extend(b)
        data.extend(HASH_INPUT_DELIMITER)
    h.update(data)
    return h.digest()


def sha512_256(*in_data: bytes) -> bytes:
    """Computes the SHA-512/256 hash of one or more byte strings.

    Inputs are unambiguously joined with a delimiter before hashing to prevent
    collisions between different combinations of inputs (e.g., H(a,b) != H(ab)).
    """
    h = hashlib.new("sha512_256")
    return sha512_256_util(h, list(in_data))


def _to_bytes(value) -> bytes:
    if isinstance(value, bytes):
        return value
    if isinstance(value, str):
        return value.encode("utf-8")
    if isinstance(value, int) and not isinstance(value, bool):
        # An explicit check for 0 is needed as (0).bit_length() is 0.
        return value.to_bytes((value.bit_length() + 7) // 8, "big") if value else b""
    raise TypeError(f"Cannot hash value of type {type(value).__name__}")


def sha512_256_tagged(tag: bytes, *in_data) -> bytes:
    """Computes a domain-separated SHA-512/256 hash over ints, strings and bytes.

    The construction is H(H(tag) || H(tag) || data), so digests made for one
    purpose cannot be replayed as digests for another.
    """
    tag_bz = sha512_256(tag)
    h = hashlib.new("sha512_256")
    h.update(tag_bz)
    h.update(tag_bz)
    return sha512_256_util(h, [_to_bytes(v) for v in in_data])


def sha512_256_tagged_hex(tag: bytes, *in_data) -> str:
    return sha512_256_tagged(tag, *in_data).hex()
