import pytest

from cvgrab.core.dedupe import ProcessedMessageCache, build_correlation_key


def test_correlation_key_is_stable_for_uid() -> None:
    assert build_correlation_key(42) == "uid_42"
    assert build_correlation_key("42") == build_correlation_key(42)
    assert build_correlation_key(b"7") == "uid_7"


def test_cache_evicts_oldest_entry() -> None:
    cache = ProcessedMessageCache(max_size=3)
    for uid in (1, 2, 3):
        cache.add(uid)

    cache.add(1)  # refreshed, 2 is now the oldest
    cache.add(4)

    assert len(cache) == 3
    assert 2 not in cache
    assert all(uid in cache for uid in (1, 3, 4))


def test_cache_requires_positive_size() -> None:
    with pytest.raises(ValueError):
        ProcessedMessageCache(max_size=0)
