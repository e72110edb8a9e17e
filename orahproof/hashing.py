"""
Hashing for orahproof proofs.

All digests are SHA-256 rendered as lowercase hexadecimal without a prefix,
which is the form stored in the registry contract's proofHash field.
"""

import hashlib
import hmac
from typing import Any, Union

from .canonicalization import canonicalize

HASH_ALGORITHM = "sha256"


def sha256_hex(data: Union[bytes, str]) -> str:
    """Compute SHA-256 hash and return as lowercase hex string."""
    if isinstance(data, str):
        data = data.encode('utf-8')
    return hashlib.sha256(data).hexdigest()


def canonical_hash(obj: Any) -> str:
    """
    Hash the canonical JSON encoding of an object.

    canonical_hash = SHA-256(CJE(obj))
    """
    return sha256_hex(canonicalize(obj))


def verify_hash(declared_hash: str, obj: Any) -> bool:
    """
    Verify that an object matches a declared hash.

    Verifiers recompute hashes from source data; comparison is constant time.
    """
    if not isinstance(declared_hash, str):
        return False
    computed = canonical_hash(obj)
    return hmac.compare_digest(computed, declared_hash.lower())
