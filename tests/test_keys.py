"""Tests for cache key generation."""

from meme_cache.keys import (
    asset_list_key,
    hash_string,
    image_embedding_key,
    search_results_key,
    text_embedding_key,
    user_key_prefixes,
    user_keys,
)


def test_hash_string_empty():
    """Empty input hashes to "0"."""
    assert hash_string("") == "0"


def test_hash_string_known_values():
    """Hash matches the 31-multiplier string hash rendered in base 36."""
    # 99162322 in base 36
    assert hash_string("hello") == "1n1e4y"
    assert hash_string("a") == "2p"  # 97


def test_hash_string_min_int_is_positive():
    """A hash of exactly -2**31 keeps its full magnitude."""
    assert hash_string("polygenelubricants") == "zik0zk"


def test_hash_string_consistent():
    """Same input always gives the same token."""
    assert hash_string("funny cat") == hash_string("funny cat")
    assert hash_string("funny cat") != hash_string("funny dog")


def test_hash_string_bounded_length():
    """Long input folds into a short token."""
    token = hash_string("x" * 100_000)
    assert 0 < len(token) <= 7
    assert all(c in "0123456789abcdefghijklmnopqrstuvwxyz" for c in token)


def test_hash_string_non_bmp_characters():
    """Characters outside the BMP hash as two UTF-16 code units."""
    # surrogate pair D83D DE02: 55357 * 31 + 56834 = 1772901
    assert hash_string("\U0001F602") == "11zz9"


def test_key_prefixes():
    """Each key type lands in its namespace."""
    assert text_embedding_key("hi").startswith("txt:")
    assert image_embedding_key("abc123") == "img:abc123"
    assert search_results_key("usr_1", "cats").startswith("search:usr_1:")
    assert asset_list_key("usr_1", {"page": 1}).startswith("assets:usr_1:")


def test_search_key_ignores_filter_order():
    """Equal filter dicts produce equal keys regardless of insertion order."""
    key1 = search_results_key("usr_1", "cats", {"a": 1, "b": 2})
    key2 = search_results_key("usr_1", "cats", {"b": 2, "a": 1})
    assert key1 == key2


def test_search_key_user_scoped():
    """Same query for different users never shares a key."""
    assert search_results_key("usr_1", "cats") != search_results_key("usr_2", "cats")


def test_user_key_prefixes():
    prefixes = user_key_prefixes("usr_1")
    assert prefixes == ["search:usr_1:", "assets:usr_1:"]


def test_user_keys_are_exact():
    """Single-entry user keys carry no trailing delimiter."""
    assert user_keys("usr_1") == ["count:usr_1", "recent:usr_1"]


def test_hash_string_lone_surrogate():
    """Unpaired surrogates hash as single code units instead of raising."""
    assert hash_string("\ud800") == "16o0"  # 55296
    assert hash_string("\ud83d") != hash_string("\ud800")
    assert hash_string("cat \ud83d") != hash_string("cat ")


def test_hash_string_surrogate_pair_matches_astral_char():
    """Two surrogates in sequence hash the same as the character they encode."""
    assert hash_string("\ud83d\ude00") == hash_string("\U0001f600")
