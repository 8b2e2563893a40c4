"""Tests for cache entry models and the durable wire format."""

import json
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from cidcache.core.cache import decode_entry, encode_entry
from cidcache.core.exceptions import CacheError
from cidcache.core.models import BlobPayload, CacheEntry, CacheStats, LocalStoreStats, WarmReport


class TestBlobPayload:
    def test_text_is_utf8_encoded(self):
        payload = BlobPayload(data="héllo", content_type="text/plain")
        assert payload.data == "héllo".encode()

    def test_accepts_camel_case_content_type(self):
        payload = BlobPayload.model_validate({"data": "x", "contentType": "text/plain"})
        assert payload.content_type == "text/plain"

    def test_default_content_type(self):
        assert BlobPayload(data=b"\x00").content_type == "application/octet-stream"


class TestCacheEntry:
    def test_size_derived_from_data(self):
        entry = CacheEntry(key="cid", data=b"12345")
        assert entry.size == 5

    def test_negative_size_rejected(self):
        with pytest.raises(ValidationError):
            CacheEntry(key="cid", data=b"x", size=-5)

    def test_negative_ttl_rejected(self):
        with pytest.raises(ValidationError):
            CacheEntry(key="cid", data=b"x", ttl_seconds=-1)

    def test_expiry_helpers(self):
        cached_at = datetime(2024, 1, 1, tzinfo=timezone.utc)
        entry = CacheEntry(key="cid", data=b"x", cached_at=cached_at, ttl_seconds=10)

        assert entry.expires_at == cached_at + timedelta(seconds=10)
        assert entry.remaining_ttl(cached_at + timedelta(seconds=4)) == pytest.approx(6)
        assert not entry.is_expired(cached_at + timedelta(seconds=9))
        assert entry.is_expired(cached_at + timedelta(seconds=10))

    def test_zero_ttl_never_expires(self):
        entry = CacheEntry(key="cid", data=b"x", ttl_seconds=0)
        assert entry.expires_at is None
        assert entry.remaining_ttl() is None
        assert not entry.is_expired(datetime(2999, 1, 1, tzinfo=timezone.utc))

    def test_from_payload_and_back(self):
        payload = BlobPayload(data=b"abc", content_type="image/png")
        entry = CacheEntry.from_payload("cid", payload, 30)

        assert entry.size == 3
        assert entry.ttl_seconds == 30
        assert entry.payload == payload


class TestCodec:
    def test_round_trip_preserves_binary_data(self):
        entry = CacheEntry(key="cid", data=bytes(range(256)), content_type="application/x-bin", ttl_seconds=5)

        decoded = decode_entry(encode_entry(entry).encode("ascii"))

        assert decoded == entry

    def test_document_layout(self):
        entry = CacheEntry(key="cid", data=b"hi", content_type="text/plain")
        document = json.loads(encode_entry(entry))

        assert document["v"] == 1
        assert document["data"] == "aGk="
        assert document["size"] == 2

    @pytest.mark.parametrize(
        "raw",
        [
            b"not json",
            b'{"data": "aGk="}',
            b'{"key": "cid", "data": "***", "cached_at": "2024-01-01T00:00:00+00:00"}',
            b'{"key": "cid", "data": "aGk=", "cached_at": "yesterday"}',
        ],
    )
    def test_corrupt_documents_raise_cache_error(self, raw):
        with pytest.raises(CacheError) as exc_info:
            decode_entry(raw)
        assert exc_info.value.error_code == "CORRUPT_ENTRY"


class TestStatsModels:
    def test_cache_stats_to_dict_includes_hit_rate(self):
        stats = CacheStats(local=LocalStoreStats(entries=1, capacity=10, hits=3, misses=1))
        data = stats.to_dict()

        assert data["local"]["hit_rate"] == 0.75
        assert data["durable"]["reachable"] is False
        assert data["backend"] == "local"

    def test_warm_report_merge(self):
        merged = WarmReport(requested=2, hits=1, misses=1).merge(
            WarmReport(requested=1, failed=1, failed_keys=["bad"])
        )
        assert merged.requested == 3
        assert merged.failed_keys == ["bad"]
