import threading

import pytest

from bioreactor_opt.cache import TTLCache


def test_entries_expire_after_ttl(fake_clock) -> None:
    cache = TTLCache(10.0, clock=fake_clock)
    cache.put("a", 1)

    fake_clock.advance(9.99)
    assert cache.get("a") == 1

    fake_clock.advance(0.01)
    assert cache.get("a") is None
    assert len(cache) == 0


def test_get_or_compute_reuses_until_expiry(fake_clock) -> None:
    cache = TTLCache(5.0, clock=fake_clock)
    calls = []

    def factory() -> int:
        calls.append(1)
        return len(calls)

    first = cache.get_or_compute("key", factory)
    second = cache.get_or_compute("key", factory)
    assert (first.value, first.reused) == (1, False)
    assert (second.value, second.reused) == (1, True)

    fake_clock.advance(5.0)
    third = cache.get_or_compute("key", factory)
    assert (third.value, third.reused) == (2, False)


def test_purge_and_max_entries(fake_clock) -> None:
    cache = TTLCache(5.0, clock=fake_clock, max_entries=2)
    cache.put("a", 1)
    fake_clock.advance(1.0)
    cache.put("b", 2)
    fake_clock.advance(1.0)
    cache.put("c", 3)
    assert len(cache) == 2
    assert cache.get("a") is None

    fake_clock.advance(10.0)
    assert cache.purge_expired() == 2
    assert len(cache) == 0


def test_invalid_ttl_rejected() -> None:
    with pytest.raises(ValueError):
        TTLCache(0)


def test_concurrent_writers_leave_consistent_state() -> None:
    cache: TTLCache[int] = TTLCache(60.0)

    def worker(offset: int) -> None:
        for index in range(200):
            cache.put(index % 20, offset)
            cache.get(index % 20)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(cache) == 20
    assert all(cache.get(key) in range(8) for key in range(20))
