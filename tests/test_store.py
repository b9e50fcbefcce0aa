"""Unit tests for key derivation and the in-memory key store."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from short.errors import InternalError, KeyNotFoundError, ValueTooLargeError
from short.store import KeyStore, digest_value

ZERO_DIGEST = bytes(16)  # encodes to "A" * 22
ONE_DIGEST = bytes(15) + b"\x01"  # encodes to "A" * 20 + "AQ"


def table_hasher(table: dict[str, bytes]):
    """Digest function returning fixed digests for known values."""

    def hasher(data: bytes) -> bytes:
        return table.get(data.decode("utf-8"), ZERO_DIGEST)

    return hasher


# ============================================================================
# DIGEST
# ============================================================================


def test_digest_value_is_unpadded_urlsafe_md5():
    assert digest_value("12345") == "gnzLDuqKcGxMNKFokfhOew"


def test_digest_value_length_for_md5():
    for value in ["", "a", "https://example.com/some/long/path?q=1", "ü" * 50]:
        digest = digest_value(value)
        assert len(digest) == 22
        assert "=" not in digest
        assert "+" not in digest and "/" not in digest


def test_digest_value_hasher_failure_is_internal():
    def broken(data: bytes) -> bytes:
        raise ValueError("digest disabled")

    with pytest.raises(InternalError, match="failed to write hash"):
        digest_value("x", broken)


def test_unexpected_hasher_exception_is_internal():
    calls = []

    def flaky(data: bytes) -> bytes:
        calls.append(data)
        if len(calls) > 1:
            raise RuntimeError("backend gone")
        return ZERO_DIGEST

    store = KeyStore(hasher=flaky)
    with pytest.raises(InternalError, match="backend gone") as exc_info:
        store.create("x")
    assert isinstance(exc_info.value.__cause__, RuntimeError)
    assert len(store) == 0


# ============================================================================
# CREATE / LOOKUP
# ============================================================================


def test_create_worked_example():
    store = KeyStore()
    assert store.create("12345") == "gnzLDu"
    assert store.lookup("gnzLDu") == "12345"


def test_create_is_idempotent():
    store = KeyStore()
    first = store.create("https://example.com")
    second = store.create("https://example.com")
    assert first == second
    assert len(store) == 1


def test_round_trip_for_many_values():
    store = KeyStore()
    values = [f"https://example.com/{i}" for i in range(500)] + ["", " ", "ünïcödé"]
    keys = {value: store.create(value) for value in values}
    for value, key in keys.items():
        assert store.lookup(key) == value
        assert len(key) >= 6


def test_distinct_values_get_distinct_keys():
    store = KeyStore()
    keys = {store.create(f"value-{i}") for i in range(1000)}
    assert len(keys) == 1000
    assert len(store) == 1000


def test_create_value_at_max_len_succeeds():
    store = KeyStore(max_len=22)
    key = store.create("a" * 22)
    assert store.lookup(key) == "a" * 22


def test_create_value_too_large_does_not_mutate():
    store = KeyStore(max_len=22)
    with pytest.raises(ValueTooLargeError):
        store.create("a" * 23)
    assert len(store) == 0


def test_length_is_measured_in_utf8_bytes():
    store = KeyStore(max_len=22)
    store.create("é" * 11)
    with pytest.raises(ValueTooLargeError):
        store.create("é" * 12)


def test_lookup_key_too_large():
    store = KeyStore(max_len=22)
    with pytest.raises(ValueTooLargeError):
        store.lookup("k" * 23)


def test_max_len_shorter_than_digest_is_rejected():
    # Keys can grow to the full 22 character digest and must stay looked up.
    with pytest.raises(AssertionError, match="max_len"):
        KeyStore(max_len=21)
    assert KeyStore(max_len=22).max_len == 22


def test_lookup_unknown_key():
    store = KeyStore()
    store.create("12345")
    with pytest.raises(KeyNotFoundError):
        store.lookup("nosuch")


def test_contains():
    store = KeyStore()
    store.create("12345")
    assert "gnzLDu" in store
    assert "gnzLDv" not in store


# ============================================================================
# COLLISIONS
# ============================================================================


def test_collision_slides_window_until_free():
    store = KeyStore(hasher=table_hasher({"a": ZERO_DIGEST, "b": ONE_DIGEST}))
    assert store.create("a") == "AAAAAA"
    # Every width 6 window of "b" is "AAAAAA" until the last one.
    assert store.create("b") == "AAAAAQ"
    assert store.lookup("AAAAAA") == "a"
    assert store.lookup("AAAAAQ") == "b"


def test_collided_value_recreate_returns_same_key():
    store = KeyStore(hasher=table_hasher({"a": ZERO_DIGEST, "b": ONE_DIGEST}))
    store.create("a")
    key = store.create("b")
    assert store.create("b") == key
    assert store.create("a") == "AAAAAA"
    assert len(store) == 2


def test_collision_widens_window_when_exhausted():
    same = {v: ZERO_DIGEST for v in "abc"}
    store = KeyStore(hasher=table_hasher(same))
    assert store.create("a") == "A" * 6
    assert store.create("b") == "A" * 7
    assert store.create("c") == "A" * 8


def test_exhausted_digest_raises_internal_error():
    same = {v: ZERO_DIGEST for v in "abcd"}
    store = KeyStore(min_key_size=20, hasher=table_hasher(same))
    assert store.create("a") == "A" * 20
    assert store.create("b") == "A" * 21
    assert store.create("c") == "A" * 22
    with pytest.raises(InternalError):
        store.create("d")
    assert len(store) == 3


def test_min_key_size_larger_than_digest():
    store = KeyStore(min_key_size=23)
    with pytest.raises(InternalError):
        store.create("12345")
    assert len(store) == 0


def test_key_sequence_is_reproducible():
    table = {"a": ZERO_DIGEST, "b": ONE_DIGEST, "c": ZERO_DIGEST}
    first, second = KeyStore(hasher=table_hasher(table)), KeyStore(hasher=table_hasher(table))
    keys_first = [first.create(v) for v in "abc"]
    keys_second = [second.create(v) for v in "abc"]
    assert keys_first == keys_second


def test_listener_reports_collisions_and_creation():
    events = []
    store = KeyStore(
        hasher=table_hasher({"a": ZERO_DIGEST, "b": ONE_DIGEST}),
        listener=lambda key, collisions, created: events.append((key, collisions, created)),
    )
    store.create("a")
    store.create("b")
    store.create("b")
    assert events == [
        ("AAAAAA", 0, True),
        ("AAAAAQ", 16, True),
        ("AAAAAQ", 16, False),
    ]


def test_failing_listener_does_not_fail_create():
    def listener(key, collisions, created):
        raise RuntimeError("metrics down")

    store = KeyStore(listener=listener)
    with pytest.warns(RuntimeWarning, match="metrics down"):
        key = store.create("12345")
    assert key == "gnzLDu"
    assert store.lookup(key) == "12345"


def test_listener_not_called_on_failure():
    events = []
    store = KeyStore(max_len=22, listener=lambda *args: events.append(args))
    with pytest.raises(ValueTooLargeError):
        store.create("a" * 23)
    assert events == []


# ============================================================================
# CONCURRENCY
# ============================================================================


def test_concurrent_distinct_creates_get_unique_keys():
    store = KeyStore()
    values = [f"https://example.com/{i}" for i in range(200)]
    barrier = threading.Barrier(20)

    def create(value: str) -> str:
        if int(value.rsplit("/", 1)[1]) < 20:
            barrier.wait()
        return store.create(value)

    with ThreadPoolExecutor(max_workers=20) as pool:
        keys = list(pool.map(create, values))

    assert len(set(keys)) == len(values)
    assert len(store) == len(values)
    for value, key in zip(values, keys):
        assert store.lookup(key) == value


def test_concurrent_same_value_creates_share_one_entry():
    store = KeyStore()
    barrier = threading.Barrier(16)

    def create(_: int) -> str:
        barrier.wait()
        return store.create("12345")

    with ThreadPoolExecutor(max_workers=16) as pool:
        keys = set(pool.map(create, range(16)))

    assert keys == {"gnzLDu"}
    assert len(store) == 1


def test_concurrent_colliding_creates_never_share_a_key():
    values = [f"v{i}" for i in range(10)]
    store = KeyStore(hasher=table_hasher({v: ZERO_DIGEST for v in values}))

    with ThreadPoolExecutor(max_workers=10) as pool:
        keys = list(pool.map(store.create, values))

    assert len(set(keys)) == len(values)
    assert sorted(len(k) for k in keys) == list(range(6, 16))
