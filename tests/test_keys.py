"""Tests for cache key derivation."""

import pytest

from dbcache.services.querycache import (
    KeyedIdentifier,
    derive_cache_keys,
    identifier_token,
    is_numeric,
    versioned_key,
)


@pytest.mark.parametrize("value", [0, 12, -3, "12", "-7", "007"])
def test_strict_numeric_accepts(value):
    assert is_numeric(value)


@pytest.mark.parametrize("value", [True, "abc", "1.5", "", " 1", 1.5, None, "1e3"])
def test_strict_numeric_rejects(value):
    assert not is_numeric(value)


@pytest.mark.parametrize("value", [1.5, "1.5", ".5", "1e3", "-2.5E-2"])
def test_loose_numeric_accepts_decimals(value):
    assert is_numeric(value, strict=False)


def test_loose_numeric_rejects_nan_and_bool():
    assert not is_numeric(float("nan"), strict=False)
    assert not is_numeric(False, strict=False)


def test_identifier_token():
    assert identifier_token(12) == "12"
    assert identifier_token(b"ab") == "ab"
    assert identifier_token("x") == "x"


class TestDeriveCacheKeys:

    def test_prefix_plus_identifier(self):
        keyed = derive_cache_keys([1, 2], "item_")
        assert keyed == {
            "1": KeyedIdentifier(identifier=1, cache_key="item_1"),
            "2": KeyedIdentifier(identifier=2, cache_key="item_2"),
        }

    def test_numeric_only_drops_non_numeric(self):
        keyed = derive_cache_keys(["12", "abc", "7"], "item_", numeric_only=True)
        assert [k.cache_key for k in keyed.values()] == ["item_12", "item_7"]

    def test_non_numeric_kept_without_gating(self):
        keyed = derive_cache_keys(["abc"], "user_")
        assert keyed["abc"].cache_key == "user_abc"

    def test_none_is_skipped(self):
        assert derive_cache_keys([None], "item_") == {}

    def test_duplicates_collapse_on_first(self):
        keyed = derive_cache_keys([12, "12", 3], "item_")
        assert list(keyed) == ["12", "3"]
        assert keyed["12"].identifier == 12

    def test_empty(self):
        assert derive_cache_keys([], "item_") == {}


def test_versioned_key():
    assert versioned_key("items", "17000000001234") == "items_17000000001234"


def test_numeric_token_is_canonical():
    assert identifier_token("01", numeric=True) == "1"
    assert identifier_token(b"-007", numeric=True) == "-7"
    assert identifier_token("01") == "01"
    assert identifier_token("abc", numeric=True) == "abc"


def test_zero_padded_identifiers_share_a_key():
    keyed = derive_cache_keys(["01", 1, "001"], "item_", numeric_only=True)
    assert keyed == {"1": KeyedIdentifier(identifier="01", cache_key="item_1")}


def test_undecodable_bytes():
    assert not is_numeric(b"\xff")
    assert not is_numeric(b"\xff", strict=False)
    assert identifier_token(b"\xff") == "\\xff"
    assert derive_cache_keys([b"\xff"], "item_", numeric_only=True) == {}
