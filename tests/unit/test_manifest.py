"""Tests for manifest building, persistence and validation."""

import json

import pytest

from chunkstore.crypto.cipher import KdfParams
from chunkstore.errors import ConfigurationError, IOFailure, MalformedManifest
from chunkstore.file.chunker import hash_chunk
from chunkstore.file.manifest import (
    ChunkRecord, Destination, DistributionMode, Manifest,
    create_manifest, deserialize, serialize, update_distribution,
)


def _record(index, encrypted=False, size=4):
    digest = hash_chunk(f"chunk-{index}".encode())
    return ChunkRecord(id=digest[:16], content_hash=digest, index=index,
                       encrypted=encrypted, size=size)


def _manifest(n=3, encrypted=False):
    kdf = KdfParams(salt=b"s" * 16) if encrypted else None
    return create_manifest([_record(i, encrypted) for i in range(n)], "file.bin", encrypted, kdf)


def _dest(account="a"):
    return Destination(provider="folder", remote_path="chunks/x.chunk",
                       remote_id="chunks/x.chunk", account=account)


# ---------------------------------------------------------------------------
# create_manifest
# ---------------------------------------------------------------------------


def test_create_manifest_defaults():
    manifest = _manifest(3)
    assert manifest.chunk_count == 3
    assert manifest.total_size == 12
    assert manifest.distribution_mode == DistributionMode.LOCAL
    assert manifest.created_at.endswith("+00:00")


def test_create_manifest_sorts_chunks():
    records = [_record(2), _record(0), _record(1)]
    manifest = create_manifest(records, "f", encrypted=False)
    assert [c.index for c in manifest.chunks] == [0, 1, 2]


def test_create_manifest_mixed_encryption_rejected():
    records = [_record(0, encrypted=True), _record(1, encrypted=False)]
    with pytest.raises(ConfigurationError):
        create_manifest(records, "f", encrypted=True, kdf=KdfParams(salt=b"s" * 16))


def test_create_manifest_encrypted_needs_kdf():
    with pytest.raises(ConfigurationError):
        create_manifest([_record(0, encrypted=True)], "f", encrypted=True)


def test_create_manifest_gap_rejected():
    with pytest.raises(ConfigurationError):
        create_manifest([_record(0), _record(2)], "f", encrypted=False)


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def test_serialize_round_trip():
    manifest = _manifest(3, encrypted=True)
    update_distribution(manifest, 1, _dest())

    restored = deserialize(serialize(manifest))

    assert restored == manifest
    assert restored.kdf == manifest.kdf


def test_serialized_fields():
    doc = json.loads(serialize(_manifest(2)))
    assert doc["original_name"] == "file.bin"
    assert doc["chunk_count"] == 2
    assert doc["total_size"] == 8
    assert doc["distribution_mode"] == "local"
    assert set(doc["chunks"][0]) >= {"id", "content_hash", "index", "encrypted", "size", "destinations"}


def test_stored_totals_are_recomputed():
    doc = json.loads(serialize(_manifest(2)))
    doc["chunk_count"] = 99
    doc["total_size"] = 1

    manifest = deserialize(json.dumps(doc).encode())
    assert manifest.chunk_count == 2
    assert manifest.total_size == 8


def test_not_json():
    with pytest.raises(MalformedManifest):
        deserialize(b"{not json")


def test_not_utf8():
    with pytest.raises(MalformedManifest):
        deserialize(b"\xff\xfe\x00")


def test_not_an_object():
    with pytest.raises(MalformedManifest):
        deserialize(b"[1, 2]")


def test_missing_field():
    doc = json.loads(serialize(_manifest(1)))
    del doc["chunks"][0]["content_hash"]
    with pytest.raises(MalformedManifest):
        deserialize(json.dumps(doc).encode())


def test_bad_content_hash():
    doc = json.loads(serialize(_manifest(1)))
    doc["chunks"][0]["content_hash"] = "zz"
    with pytest.raises(MalformedManifest):
        deserialize(json.dumps(doc).encode())


def test_duplicate_index():
    doc = json.loads(serialize(_manifest(2)))
    doc["chunks"][1]["index"] = 0
    with pytest.raises(MalformedManifest):
        deserialize(json.dumps(doc).encode())


def test_non_contiguous_indices():
    doc = json.loads(serialize(_manifest(2)))
    doc["chunks"][1]["index"] = 5
    with pytest.raises(MalformedManifest):
        deserialize(json.dumps(doc).encode())


def test_mixed_encryption_flags():
    doc = json.loads(serialize(_manifest(2)))
    doc["chunks"][0]["encrypted"] = True
    with pytest.raises(MalformedManifest):
        deserialize(json.dumps(doc).encode())


def test_encrypted_without_kdf():
    doc = json.loads(serialize(_manifest(1, encrypted=True)))
    doc["kdf"] = None
    with pytest.raises(MalformedManifest):
        deserialize(json.dumps(doc).encode())


def test_unknown_mode():
    doc = json.loads(serialize(_manifest(1)))
    doc["distribution_mode"] = "orbit"
    with pytest.raises(MalformedManifest):
        deserialize(json.dumps(doc).encode())


def test_save_and_load(tmp_path):
    manifest = _manifest(2)
    path = tmp_path / "nested" / "manifest.json"
    manifest.save(path)
    assert Manifest.load(path) == manifest


def test_load_missing(tmp_path):
    with pytest.raises(IOFailure):
        Manifest.load(tmp_path / "missing.json")


# ---------------------------------------------------------------------------
# Intent and distribution
# ---------------------------------------------------------------------------


def test_check_intent():
    _manifest(1).check_intent(decrypt=False)
    _manifest(1, encrypted=True).check_intent(decrypt=True)

    with pytest.raises(ConfigurationError):
        _manifest(1, encrypted=True).check_intent(decrypt=False)
    with pytest.raises(ConfigurationError):
        _manifest(1).check_intent(decrypt=True)


def test_update_distribution_records_replica():
    manifest = _manifest(2)
    update_distribution(manifest, 0, _dest("a"))

    chunk = manifest.get_chunk(0)
    assert chunk.destinations == [_dest("a")]
    assert chunk.uploaded_at is not None
    assert manifest.distribution_mode == DistributionMode.HYBRID


def test_update_distribution_dedupes():
    manifest = _manifest(1)
    update_distribution(manifest, 0, _dest("a"))
    update_distribution(manifest, 0, _dest("a"))
    update_distribution(manifest, 0, _dest("b"))
    assert len(manifest.get_chunk(0).destinations) == 2


def test_update_distribution_keeps_identity():
    manifest = _manifest(1)
    before = (manifest.chunks[0].id, manifest.chunks[0].content_hash, manifest.chunks[0].index)
    update_distribution(manifest, 0, _dest())
    assert (manifest.chunks[0].id, manifest.chunks[0].content_hash, manifest.chunks[0].index) == before


def test_update_distribution_unknown_index():
    with pytest.raises(ConfigurationError):
        update_distribution(_manifest(1), 7, _dest())


def test_refresh_distribution_mode():
    manifest = _manifest(2)
    assert manifest.refresh_distribution_mode(pass_complete=True) == DistributionMode.LOCAL

    update_distribution(manifest, 0, _dest())
    assert manifest.refresh_distribution_mode(pass_complete=True) == DistributionMode.HYBRID

    update_distribution(manifest, 1, _dest())
    assert manifest.refresh_distribution_mode(pass_complete=False) == DistributionMode.HYBRID
    assert manifest.refresh_distribution_mode(pass_complete=True) == DistributionMode.CLOUD


def test_pending_chunks():
    manifest = _manifest(3)
    update_distribution(manifest, 1, _dest())
    assert [c.index for c in manifest.pending_chunks()] == [0, 2]
