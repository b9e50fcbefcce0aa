"""In-memory key store deriving short keys from content digests.

This module holds the value ↔ key mapping and the collision-resolving
derivation that turns any value into a short, URL-safe key.

Flow Diagram — create()
=======================
::
    ┌─────────────┐
    │ create(v)   │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ len(v) >    │──── YES ──▶ ValueTooLargeError
    │ max_len ?   │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ D = b64url( │
    │  md5(v) )   │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ acquire lock│
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ window fits?│──── NO ──▶ size += 1, offset = 0
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ k = D[offset│
    │ :offset+size]│
    └──────┬──────┘
    STORED?│
    ┌──────┼──────────────┐
    │ NO   │ SAME VALUE    │ OTHER VALUE
    ▼      ▼               ▼
 insert  return k     offset += 1, retry
 return k

Window Order
===========
For ``"12345"`` the digest is ``gnzLDuqKcGxMNKFokfhOew`` and the candidates
are ``gnzLDu``, ``nzLDuq``, ... ``kfhOew`` (width 6, offsets 0-16), then
``gnzLDuq`` and the other width 7 windows, and so on up to the full digest. A value
always retraces the same sequence, so replaying the same creates against an
empty store yields the same keys.

How to Use
===========
**Step 1 — Build a store**::
    store = KeyStore(max_len=2083, min_key_size=6)

**Step 2 — Create and look up**::
    key = store.create("12345")       # "gnzLDu"
    value = store.lookup(key)         # "12345"

Key Behaviours
===============
- Re-creating a stored value returns its existing key without a new entry.
- Distinct values never share a key.
- A single lock serializes every create and lookup, window search included.
- The store never logs; collaborators observe calls through ``listener``.
"""

import base64
import hashlib
import threading
import warnings
from typing import Callable, Optional

from short.errors import InternalError, KeyNotFoundError, ValueTooLargeError

__all__ = [
    "DEFAULT_MAX_LEN",
    "DEFAULT_MIN_KEY_SIZE",
    "CreateListener",
    "KeyStore",
    "digest_value",
    "md5_digest",
]

DEFAULT_MAX_LEN = 2083
DEFAULT_MIN_KEY_SIZE = 6

Hasher = Callable[[bytes], bytes]
# Called with (key, collisions, created) after every successful create.
CreateListener = Callable[[str, int, bool], None]


def md5_digest(data: bytes) -> bytes:
    return hashlib.md5(data, usedforsecurity=False).digest()


def digest_value(value: str, hasher: Hasher = md5_digest) -> str:
    """Return the URL-safe, unpadded base-64 digest of ``value``.

    Raises:
        InternalError: If the hash function fails.
    """
    try:
        raw = hasher(value.encode("utf-8"))
    except Exception as exc:
        raise InternalError(f"failed to write hash: {exc}") from exc
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


class KeyStore:
    """Thread-safe mapping from derived short keys to their values.

    Args:
        max_len: Maximum UTF-8 length accepted for values and keys. Must be
            at least the digest length so every issued key can be looked up.
        min_key_size: Width of the first candidate window.
        hasher: Digest function applied to the encoded value.
        listener: Optional hook receiving ``(key, collisions, created)``.
            Exceptions it raises are turned into a ``RuntimeWarning``.
    """

    def __init__(
        self,
        max_len: int = DEFAULT_MAX_LEN,
        min_key_size: int = DEFAULT_MIN_KEY_SIZE,
        hasher: Hasher = md5_digest,
        listener: Optional[CreateListener] = None,
    ) -> None:
        assert max_len > 0, f"max_len must be positive, got {max_len!r}"
        assert min_key_size > 0, f"min_key_size must be positive, got {min_key_size!r}"
        digest_size = len(digest_value("", hasher))
        assert max_len >= digest_size, (
            f"max_len must allow keys as wide as the digest ({digest_size}), got {max_len!r}"
        )
        self._max_len = max_len
        self._min_key_size = min_key_size
        self._hasher = hasher
        self._listener = listener
        self._entries: dict[str, str] = {}
        self._lock = threading.Lock()

    @property
    def max_len(self) -> int:
        return self._max_len

    @property
    def min_key_size(self) -> int:
        return self._min_key_size

    def create(self, value: str) -> str:
        """Derive and reserve a short key for ``value``.

        Returns:
            str: The newly claimed key, or the existing key if ``value`` is
            already stored.

        Raises:
            ValueTooLargeError: If ``value`` exceeds ``max_len``.
            InternalError: If hashing fails or every window of the digest is
                taken by other values.
        """
        self._check_length(value)
        digest = digest_value(value, self._hasher)

        with self._lock:
            key, collisions, created = self._claim(digest, value)

        if self._listener is not None:
            # The entry is already stored; a failing listener must not fail the create.
            try:
                self._listener(key, collisions, created)
            except Exception as exc:
                warnings.warn(f"create listener failed for key {key!r}: {exc}", RuntimeWarning, stacklevel=2)
        return key

    def lookup(self, key: str) -> str:
        """Return the value stored under ``key``.

        Raises:
            ValueTooLargeError: If ``key`` exceeds ``max_len``.
            KeyNotFoundError: If no value was ever stored under ``key``.
        """
        self._check_length(key)
        with self._lock:
            value = self._entries.get(key)
        if value is None:
            raise KeyNotFoundError()
        return value

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def _check_length(self, s: str) -> None:
        if len(s.encode("utf-8")) > self._max_len:
            raise ValueTooLargeError()

    def _claim(self, digest: str, value: str) -> tuple[str, int, bool]:
        # Caller holds self._lock.
        size = self._min_key_size
        offset = 0
        collisions = 0
        while True:
            if offset + size > len(digest):
                size += 1
                offset = 0
                if size > len(digest):
                    raise InternalError(
                        f"no free key in digest {digest!r} after {collisions} collisions"
                    )
            key = digest[offset : offset + size]

            existing = self._entries.get(key)
            if existing is None:
                self._entries[key] = value
                return key, collisions, True
            if existing == value:
                return key, collisions, False
            collisions += 1
            offset += 1
