"""Tests for key validation and durable key naming."""

import pytest

from cidcache.core.cache import MAX_KEY_LENGTH, CacheKeyspace, validate_key
from cidcache.core.exceptions import InvalidKeyError


class TestValidateKey:
    def test_accepts_content_identifiers(self):
        cid = "bafybeigdyrzt5sfp7udm7hu76uh7y26nf3efuylqabf3oclgtqy55fbzdi"
        assert validate_key(cid) == cid

    @pytest.mark.parametrize("key", ["", "   ", "with space", "tab\there", "x" * (MAX_KEY_LENGTH + 1), None, 42])
    def test_rejects_malformed_keys(self, key):
        with pytest.raises(InvalidKeyError):
            validate_key(key)


class TestCacheKeyspace:
    def test_key_layout(self):
        keyspace = CacheKeyspace("edge:")

        assert keyspace.blob("cid") == "edge:blob:cid"
        assert keyspace.pin("cid") == "edge:pin:cid"
        assert keyspace.blob_prefix == "edge:blob:"

    def test_reverse_mapping(self):
        keyspace = CacheKeyspace()

        assert keyspace.cid_from_blob(b"blob:abc") == "abc"
        assert keyspace.cid_from_pin("pin:abc") == "abc"
        assert keyspace.cid_from_blob("pin:abc") is None
